from dataclasses import asdict, dataclass
from typing import Optional

RESOLVE_FAILED = "resolve-failed"
MISSING_FRONT = "missing-front"
DECODE_FAILED = "decode-failed"
ASPECT_MISMATCH = "aspect-mismatch"
BUDGET_UNMET = "budget-unmet"
PAGE_FAILED = "page-failed"


@dataclass(frozen=True)
class Diagnostic:
    """A recovered anomaly of an export run."""

    reason: str
    card: Optional[str] = None
    page: Optional[int] = None
    side: Optional[str] = None
    detail: str = ""

    def as_dict(self):
        return asdict(self)

    def __str__(self):
        where = []
        if self.page is not None:
            where.append(f"Sheet{self.page + 1}")
        if self.side:
            where.append(self.side)
        location = " ".join(where) or "Run"
        card = f" [{self.card}]" if self.card else ""
        detail = f": {self.detail}" if self.detail else ""
        return f"{location}{card} {self.reason}{detail}"
