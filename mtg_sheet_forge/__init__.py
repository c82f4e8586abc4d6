"""
Compose trading card images into print-ready duplex sheet images.

Modules:
    - grid: sheet geometry and the duplex mirror mapping
    - cards: card entries and per-run card slots
    - render: drawing one card face into one cell
    - pages: pagination and building one side of a sheet
    - encoder: size-bounded lossy encoding of a finished sheet
    - sources: Scryfall and upload image resolution
    - decklist: decklist text and CSV loading
    - engine: the export job driving everything above
"""

from .cards import CardSlot, CustomCard, RemoteCard, ResolvedImages
from .diagnostics import Diagnostic
from .encoder import BudgetExceededError, EncodedSheet, encode_page
from .engine import ExportedSheet, SheetEngine, sheet_filename
from .grid import REFERENCE_GRID, CellBox, GridTemplate, mirror_index
from .pages import ExportCancelled, PageRenderError, RenderedPage, Side, build_page, layout_preview, paginate
from .render import ImageDecodeError, default_back, render_cell
from .settings import ExportSettings

__all__ = [
    "CardSlot",
    "CustomCard",
    "RemoteCard",
    "ResolvedImages",
    "Diagnostic",
    "BudgetExceededError",
    "EncodedSheet",
    "encode_page",
    "ExportedSheet",
    "SheetEngine",
    "sheet_filename",
    "REFERENCE_GRID",
    "CellBox",
    "GridTemplate",
    "mirror_index",
    "ExportCancelled",
    "PageRenderError",
    "RenderedPage",
    "Side",
    "build_page",
    "layout_preview",
    "paginate",
    "ImageDecodeError",
    "default_back",
    "render_cell",
    "ExportSettings",
]
