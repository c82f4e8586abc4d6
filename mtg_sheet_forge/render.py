"""Drawing one card face into one grid cell of a sheet."""
from functools import lru_cache
from io import BytesIO

from PIL import Image, ImageDraw

from .settings import BORDER_SIZE, CORNER_RADIUS, MASK_OVERDRAW

BACKGROUND = (255, 255, 255)
BORDER_COLOR = (0, 0, 0)

# Scryfall "png" version size, used for the built-in back
DEFAULT_BACK_SIZE = (745, 1040)


class ImageDecodeError(Exception):
    pass


def new_page(size):
    """Return a blank white sheet raster."""
    return Image.new("RGB", size, BACKGROUND)


def load_image(data):
    if not data:
        raise ImageDecodeError("No image data")
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
                return img.convert("RGBA")
            return img.convert("RGB")
    except (OSError, EOFError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"{type(e).__name__}: {e}") from e


def rounded_mask(size, radius, overdraw=0):
    """
    Build an "L" mask that is opaque inside a rounded rectangle of `size`.

    The rounded outline is pushed `overdraw` px outward, so the curve sits
    slightly beyond the nominal radius on every corner.
    """
    width, height = size
    mask = Image.new("L", size, 0)
    draw = ImageDraw.Draw(mask)
    if radius <= 0:
        draw.rectangle((0, 0, width - 1, height - 1), fill=255)
        return mask
    draw.rounded_rectangle(
        (-overdraw, -overdraw, width - 1 + overdraw, height - 1 + overdraw),
        radius=radius + overdraw,
        fill=255,
    )
    return mask


def aspect_deviation(image, size):
    """Relative difference between the image aspect ratio and the target's."""
    src_w, src_h = image.size
    dst_w, dst_h = size
    return abs((src_w / src_h) / (dst_w / dst_h) - 1.0)


def _stretch(image, size, matte):
    # Stretch to fit; the source aspect ratio is not kept.
    resized = image.resize(size, resample=Image.Resampling.LANCZOS)
    if resized.mode == "RGBA":
        flat = Image.new("RGB", size, matte)
        flat.paste(resized, (0, 0), resized)
        return flat
    return resized


def border_inset(border_size):
    """Whole-pixel border width, halves rounded up."""
    return int(border_size + 0.5)


def inset_size(size, border_size):
    width, height = size
    inset = border_inset(border_size)
    inner = (width - 2 * inset, height - 2 * inset)
    if inner[0] <= 0 or inner[1] <= 0:
        raise ValueError(f"Border of {border_size}px leaves no room in a {width}x{height} cell")
    return inner


def compose_face(image, size, border=True, border_size=BORDER_SIZE,
                 corner_radius=CORNER_RADIUS, overdraw=MASK_OVERDRAW):
    """Lay out an upright card face of `size` (width, height)."""
    if not border:
        return _stretch(image, size, BACKGROUND)

    inner_size = inset_size(size, border_size)
    inset = border_inset(border_size)

    face = Image.new("RGB", size, BORDER_COLOR)
    inner = _stretch(image, inner_size, BORDER_COLOR)
    face.paste(inner, (inset, inset), rounded_mask(inner_size, corner_radius))

    shaped = Image.new("RGB", size, BACKGROUND)
    shaped.paste(face, (0, 0), rounded_mask(size, corner_radius, overdraw))
    return shaped


def render_cell(page, cell, image, border=True, is_back_side=False,
                border_size=BORDER_SIZE, corner_radius=CORNER_RADIUS,
                overdraw=MASK_OVERDRAW):
    """
    Draw `image` into `cell` of `page`.

    The card is portrait while the cell is landscape, so the face is built
    at (cell.height, cell.width) and turned a quarter clockwise. Back faces
    get an extra half turn so they read upright after the duplex flip.
    """
    face = compose_face(
        image,
        (cell.height, cell.width),
        border=border,
        border_size=border_size,
        corner_radius=corner_radius,
        overdraw=overdraw,
    )
    if is_back_side:
        face = face.transpose(Image.Transpose.ROTATE_90)
    else:
        face = face.transpose(Image.Transpose.ROTATE_270)
    page.paste(face, cell.origin)


@lru_cache(maxsize=1)
def _default_back():
    width, height = DEFAULT_BACK_SIZE
    img = Image.new("RGB", DEFAULT_BACK_SIZE, (28, 22, 18))
    draw = ImageDraw.Draw(img)
    draw.rounded_rectangle((24, 24, width - 25, height - 25), radius=36, fill=(92, 58, 32))
    draw.rounded_rectangle((48, 48, width - 49, height - 49), radius=28, outline=(196, 160, 92), width=6)
    draw.ellipse((110, 210, width - 111, height - 211), fill=(26, 48, 96), outline=(196, 160, 92), width=10)
    draw.ellipse((210, 380, width - 211, height - 381), fill=(150, 40, 34))
    return img


def default_back():
    """The built-in card back used when no other back is available."""
    return _default_back().copy()
