"""Splitting a card list into sheets and composing each sheet side."""
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from PIL import Image

from . import diagnostics as diag
from .cards import CardSlot
from .diagnostics import Diagnostic
from .grid import REFERENCE_GRID, GridTemplate
from .render import ImageDecodeError, aspect_deviation, default_back as builtin_back, inset_size, load_image, new_page, render_cell
from .settings import ExportSettings

PageGroup = Tuple[CardSlot, ...]


class Side(str, Enum):
    FRONT = "Front"
    BACK = "Back"


class PageRenderError(Exception):
    """The sheet raster for one page side could not be produced."""


class ExportCancelled(Exception):
    pass


@dataclass
class RenderedPage:
    page_index: int
    side: Side
    image: Image.Image
    diagnostics: List[Diagnostic] = field(default_factory=list)


@dataclass
class _Placement:
    slot_index: int
    cell_index: int
    source: object  # bytes to decode or an already decoded image
    border: bool
    label: str


def paginate(cards: Sequence[CardSlot], page_size: int) -> List[PageGroup]:
    if page_size < 1:
        raise ValueError(f"Page size must be at least 1, got {page_size}")
    cards = tuple(cards)
    return [cards[i:i + page_size] for i in range(0, len(cards), page_size)]


def layout_preview(cards, template=REFERENCE_GRID, page_size=None):
    """
    Describe where each card lands without rendering anything.

    Returns one dict per page with `front` and `back` grids of display
    names, `None` for empty cells. Backs are at mirrored positions.
    """
    page_size = page_size or template.capacity
    if page_size > template.capacity:
        raise ValueError(f"Page size {page_size} exceeds the {template.capacity} cells of the sheet")
    pages = []
    for group in paginate(cards, page_size):
        front = [None] * template.capacity
        back = [None] * template.capacity
        for i, slot in enumerate(group):
            front[i] = slot.display_name
            back[template.mirror_index(i)] = slot.display_name
        pages.append({"front": front, "back": back})
    return pages


def _decode(source):
    if isinstance(source, Image.Image):
        return source
    return load_image(source)


def _front_placements(group):
    placements = []
    missing = []
    for i, slot in enumerate(group):
        if slot.front_image is None:
            missing.append(slot)
            continue
        placements.append(_Placement(i, i, slot.front_image, slot.front_border, slot.display_name))
    return placements, missing


def _back_placements(group, template, universal_back, fallback_back):
    placements = []
    for i, slot in enumerate(group):
        if slot.has_own_back:
            source = slot.back_image
        elif universal_back is not None:
            source = universal_back
        else:
            source = fallback_back
        placements.append(
            _Placement(i, template.mirror_index(i), source, slot.back_border, slot.display_name)
        )
    return placements


def build_page(
    group: Sequence[CardSlot],
    side: Side,
    template: GridTemplate = REFERENCE_GRID,
    universal_back=None,
    page_index: int = 0,
    settings: Optional[ExportSettings] = None,
    default_back=None,
    log=None,
    cancel_event=None,
) -> RenderedPage:
    """
    Compose one side of one sheet.

    Every image for the page is decoded in parallel first; drawing then
    happens one cell at a time in cell order on this thread only.
    """
    settings = settings or ExportSettings()
    side = Side(side)
    if len(group) > template.capacity:
        raise ValueError(f"{len(group)} cards do not fit a {template.capacity}-cell sheet")

    found = []

    def note(reason, card=None, detail=""):
        entry = Diagnostic(reason=reason, card=card, page=page_index, side=side.value, detail=detail)
        found.append(entry)
        if log is not None:
            log(str(entry))

    if side is Side.FRONT:
        placements, missing = _front_placements(group)
        for slot in missing:
            note(diag.MISSING_FRONT, slot.display_name, "no front image available")
    else:
        fallback_back = default_back if default_back is not None else builtin_back()
        needs_shared_back = any(not slot.has_own_back for slot in group)
        if universal_back is not None and needs_shared_back and not isinstance(universal_back, Image.Image):
            try:
                universal_back = load_image(universal_back)
            except ImageDecodeError as e:
                note(diag.DECODE_FAILED, "universal back", f"{e}; using the default back")
                universal_back = None
        placements = _back_placements(group, template, universal_back, fallback_back)

    with ThreadPoolExecutor(max_workers=settings.decode_workers) as executor:
        futures = [executor.submit(_decode, p.source) for p in placements]
        if cancel_event is not None and cancel_event.is_set():
            for future in futures:
                future.cancel()
            raise ExportCancelled(f"Cancelled while decoding sheet {page_index + 1} {side.value}")
        decoded = []
        for placement, future in zip(placements, futures):
            try:
                decoded.append((placement, future.result()))
            except ImageDecodeError as e:
                note(diag.DECODE_FAILED, placement.label, str(e))

    if cancel_event is not None and cancel_event.is_set():
        raise ExportCancelled(f"Cancelled before drawing sheet {page_index + 1} {side.value}")

    try:
        page = new_page(template.page_size)
    except (MemoryError, ValueError) as e:
        raise PageRenderError(
            f"Could not allocate sheet {page_index + 1} {side.value}: {e}"
        ) from e

    decoded.sort(key=lambda item: item[0].cell_index)
    for placement, image in decoded:
        cell = template.cell(placement.cell_index)
        if settings.warn_on_aspect_mismatch:
            target = (cell.height, cell.width)
            if placement.border:
                target = inset_size(target, settings.border_size)
            deviation = aspect_deviation(image, target)
            if deviation > settings.aspect_tolerance:
                note(diag.ASPECT_MISMATCH, placement.label, f"stretched by {deviation:.0%}")
        render_cell(
            page,
            cell,
            image,
            border=placement.border,
            is_back_side=side is Side.BACK,
            border_size=settings.border_size,
            corner_radius=settings.corner_radius,
            overdraw=settings.mask_overdraw,
        )

    return RenderedPage(page_index=page_index, side=side, image=page, diagnostics=found)
