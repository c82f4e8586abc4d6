from io import BytesIO

import pytest
from PIL import Image

from mtg_sheet_forge.grid import GridTemplate
from mtg_sheet_forge.settings import ExportSettings

RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)
WHITE = (255, 255, 255)
BLACK = (0, 0, 0)


def png_bytes(color, size=(64, 90), mode="RGB"):
    buf = BytesIO()
    Image.new(mode, size, color).save(buf, format="PNG")
    return buf.getvalue()


def split_png(top, bottom, size=(64, 90)):
    """Portrait image, `top` color above `bottom` color."""
    img = Image.new("RGB", size, bottom)
    img.paste(Image.new("RGB", (size[0], size[1] // 2), top), (0, 0))
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def cell_center(cell):
    return (cell.x0 + cell.width // 2, cell.y0 + cell.height // 2)


@pytest.fixture
def small_grid():
    # 3 columns x 2 rows of 110x80 cells, same landscape shape as the reference sheet
    return GridTemplate.from_origins(360, 200, (10, 125, 240), (20, 110), 110, 80)


@pytest.fixture
def small_settings():
    return ExportSettings(
        page_size=6,
        border_size=8,
        corner_radius=10,
        mask_overdraw=1,
        warn_on_aspect_mismatch=False,
    )
