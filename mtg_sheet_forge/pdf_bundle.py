from io import BytesIO

from PIL import Image
from reportlab import rl_config
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from .settings import SHEET_DPI

PT_PER_INCH = 72


def sheet_page_size(pixel_size, dpi=SHEET_DPI):
    width, height = pixel_size
    return (width / dpi * PT_PER_INCH, height / dpi * PT_PER_INCH)


def write_sheet_pdf(sheets, output_path, dpi=SHEET_DPI):
    """
    Write encoded sheets into one PDF, one sheet per page, in the given order.

    Each page takes the physical size of its sheet at `dpi`, so printing at
    100% scale keeps the cut grid true.
    """
    rl_config.pageCompression = 1
    c = None
    for sheet in sheets:
        with Image.open(BytesIO(sheet.data)) as img:
            page_size = sheet_page_size(img.size, dpi)
        if c is None:
            c = canvas.Canvas(str(output_path), pagesize=page_size)
        else:
            c.setPageSize(page_size)
        c.drawImage(ImageReader(BytesIO(sheet.data)), 0, 0, width=page_size[0], height=page_size[1])
        c.showPage()
    if c is None:
        raise ValueError("No sheets to write")
    c.save()
    return output_path
