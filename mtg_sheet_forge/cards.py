import base64
import binascii
import re
from dataclasses import dataclass
from typing import Optional, Union

DOUBLE_FACED_LAYOUTS = {"transform", "modal_dfc", "double_faced_token", "reversible_card"}

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[\w-]+=[\w.-]+)*);base64,(?P<payload>.*)$", re.DOTALL)


@dataclass(frozen=True)
class RemoteCard:
    """A card looked up in the Scryfall catalog."""

    name: str
    set_code: Optional[str] = None
    collector_number: Optional[str] = None
    scryfall_id: Optional[str] = None
    border: bool = True
    back_border: bool = True

    @property
    def lookup_key(self):
        if self.scryfall_id:
            return ("id", self.scryfall_id)
        if self.set_code and self.collector_number:
            return ("print", self.set_code.lower(), self.collector_number)
        return ("name", self.name.lower())


@dataclass(frozen=True)
class CustomCard:
    """A card whose images were uploaded by the user."""

    name: str
    front_image: Optional[bytes]
    back_image: Optional[bytes] = None
    is_double_faced: bool = False
    back_face_name: Optional[str] = None
    border: bool = True
    back_border: bool = True

    @property
    def has_back(self):
        return self.is_double_faced and self.back_image is not None


CardEntry = Union[RemoteCard, CustomCard]


@dataclass(frozen=True)
class ResolvedImages:
    front: Optional[bytes]
    back: Optional[bytes] = None
    is_double_faced: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class CardSlot:
    """One physical card for one export run."""

    display_name: str
    front_image: Optional[bytes]
    back_image: Optional[bytes] = None
    is_double_faced: bool = False
    front_border: bool = True
    back_border: bool = True

    @property
    def has_own_back(self):
        return self.is_double_faced and self.back_image is not None

    @classmethod
    def from_resolved(cls, entry: CardEntry, images: ResolvedImages) -> "CardSlot":
        return cls(
            display_name=entry.name,
            front_image=images.front,
            back_image=images.back,
            is_double_faced=images.is_double_faced,
            front_border=entry.border,
            back_border=entry.back_border,
        )


def is_double_faced_layout(card_data):
    return card_data.get("layout") in DOUBLE_FACED_LAYOUTS


def decode_data_url(value: str) -> bytes:
    """Decode an uploaded image given as a base64 data URL or bare base64."""
    value = value.strip()
    match = _DATA_URL_RE.match(value)
    payload = match.group("payload") if match else value
    if value.startswith("data:") and not match:
        raise ValueError("Only base64 data URLs are supported")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 image data: {e}") from e
    if not data:
        raise ValueError("Image data is empty")
    return data
