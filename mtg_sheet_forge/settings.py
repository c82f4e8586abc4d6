from typing import Literal

from pydantic import BaseModel, Field, model_validator

# --- CONFIGURATION ---
CARDS_PER_SHEET = 18
MAX_SHEET_BYTES = 25 * 1024 * 1024

START_QUALITY = 0.9
QUALITY_STEP = 0.1
QUALITY_FLOOR = 0.1

SHEET_DPI = 300

BORDER_SIZE = 37.5
CORNER_RADIUS = 46
MASK_OVERDRAW = 1

DECODE_WORKERS = 4
ASPECT_TOLERANCE = 0.05

IMAGE_EXTENSIONS = {"JPEG": "jpg", "WEBP": "webp"}


class ExportSettings(BaseModel):
    page_size: int = Field(CARDS_PER_SHEET, ge=1)
    max_bytes: int = Field(MAX_SHEET_BYTES, ge=1)
    start_quality: float = Field(START_QUALITY, gt=0.0, le=1.0)
    quality_step: float = Field(QUALITY_STEP, gt=0.0, le=1.0)
    quality_floor: float = Field(QUALITY_FLOOR, gt=0.0, le=1.0)
    strict_budget: bool = False
    image_format: Literal["JPEG", "WEBP"] = "JPEG"
    dpi: int = Field(SHEET_DPI, ge=1)
    border_size: float = Field(BORDER_SIZE, ge=0.0)
    corner_radius: int = Field(CORNER_RADIUS, ge=0)
    mask_overdraw: int = Field(MASK_OVERDRAW, ge=0)
    decode_workers: int = Field(DECODE_WORKERS, ge=1)
    aspect_tolerance: float = Field(ASPECT_TOLERANCE, ge=0.0)
    warn_on_aspect_mismatch: bool = True
    abort_on_page_error: bool = False

    @model_validator(mode="after")
    def check_quality_range(self):
        if self.quality_floor > self.start_quality:
            raise ValueError("quality_floor must not exceed start_quality")
        return self

    @property
    def extension(self):
        return IMAGE_EXTENSIONS[self.image_format]
