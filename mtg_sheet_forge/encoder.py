from dataclasses import dataclass, field
from io import BytesIO
from typing import Callable, List, Optional

from .settings import MAX_SHEET_BYTES, QUALITY_FLOOR, QUALITY_STEP, SHEET_DPI, START_QUALITY

MB = 1024 * 1024


@dataclass(frozen=True)
class EncodeAttempt:
    quality: float
    size: int

    @property
    def size_mb(self):
        return self.size / MB


@dataclass
class EncodedSheet:
    data: bytes
    quality: float
    attempts: List[EncodeAttempt] = field(default_factory=list)
    within_budget: bool = True

    @property
    def size(self):
        return len(self.data)


class BudgetExceededError(Exception):
    def __init__(self, sheet: EncodedSheet, max_bytes: int):
        self.sheet = sheet
        self.max_bytes = max_bytes
        super().__init__(
            f"{sheet.size / MB:.2f}MB at quality floor {sheet.quality:.2f} "
            f"exceeds the {max_bytes / MB:.2f}MB budget"
        )


def quality_steps(start=START_QUALITY, step=QUALITY_STEP, floor=QUALITY_FLOOR):
    """Qualities tried from `start` down to `floor`, both inclusive."""
    if floor > start:
        raise ValueError("Quality floor is above the start quality")
    count = int(round((start - floor) / step + 1e-9))
    qualities = [round(start - i * step, 6) for i in range(count + 1)]
    return [q for q in qualities if q >= floor - 1e-9]


def encode_once(image, quality, image_format="JPEG", dpi=SHEET_DPI):
    buf = BytesIO()
    image.save(
        buf,
        format=image_format,
        quality=max(1, min(100, int(round(quality * 100)))),
        dpi=(dpi, dpi),
    )
    return buf.getvalue()


def encode_page(
    image,
    max_bytes: int = MAX_SHEET_BYTES,
    start_quality: float = START_QUALITY,
    quality_step: float = QUALITY_STEP,
    quality_floor: float = QUALITY_FLOOR,
    image_format: str = "JPEG",
    dpi: int = SHEET_DPI,
    strict: bool = False,
    report: Optional[Callable[[EncodeAttempt], None]] = None,
) -> EncodedSheet:
    """
    Encode a finished sheet, lowering quality until it fits `max_bytes`.

    Only the encoding is repeated, the raster is never redrawn. When even
    the floor quality is over budget the floor encoding is returned with
    `within_budget=False`, or BudgetExceededError is raised if `strict`.
    """
    attempts = []
    data = b""
    quality = start_quality
    for quality in quality_steps(start_quality, quality_step, quality_floor):
        data = encode_once(image, quality, image_format=image_format, dpi=dpi)
        attempt = EncodeAttempt(quality=quality, size=len(data))
        attempts.append(attempt)
        if report is not None:
            report(attempt)
        if len(data) <= max_bytes:
            return EncodedSheet(data=data, quality=quality, attempts=attempts)

    sheet = EncodedSheet(data=data, quality=quality, attempts=attempts, within_budget=False)
    if strict:
        raise BudgetExceededError(sheet, max_bytes)
    return sheet
