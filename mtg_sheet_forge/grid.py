from dataclasses import dataclass
from typing import Sequence, Tuple

# --- CONFIGURATION ---
PAGE_WIDTH = 3600
PAGE_HEIGHT = 5400

CELL_WIDTH = 1101
CELL_HEIGHT = 804

COLUMN_X0 = (127, 1249, 2373)
ROW_Y0 = (288, 1092, 1896, 2700, 3504, 4308)


@dataclass(frozen=True)
class CellBox:
    x0: int
    y0: int
    x1: int
    y1: int

    @property
    def width(self):
        return self.x1 - self.x0

    @property
    def height(self):
        return self.y1 - self.y0

    @property
    def origin(self):
        return (self.x0, self.y0)

    def overlaps(self, other):
        return (
            self.x0 < other.x1 and other.x0 < self.x1
            and self.y0 < other.y1 and other.y0 < self.y1
        )


def mirror_index(index, columns):
    """Cell that holds the back of the card at `index` after a flip on the long edge."""
    row = index // columns
    col = index % columns
    return row * columns + (columns - 1 - col)


@dataclass(frozen=True)
class GridTemplate:
    page_width: int
    page_height: int
    columns: int
    rows: int
    cells: Tuple[CellBox, ...]

    def __post_init__(self):
        if self.columns < 1 or self.rows < 1:
            raise ValueError("Grid needs at least one row and one column")
        if len(self.cells) != self.rows * self.columns:
            raise ValueError(
                f"Expected {self.rows * self.columns} cells, got {len(self.cells)}"
            )
        first = self.cells[0]
        for i, cell in enumerate(self.cells):
            if cell.width <= 0 or cell.height <= 0:
                raise ValueError(f"Cell {i} is empty")
            if (cell.width, cell.height) != (first.width, first.height):
                raise ValueError(f"Cell {i} differs in size from cell 0")
            if cell.x0 < 0 or cell.y0 < 0 or cell.x1 > self.page_width or cell.y1 > self.page_height:
                raise ValueError(f"Cell {i} lies outside the {self.page_width}x{self.page_height} page")
        for i, cell in enumerate(self.cells):
            for j in range(i + 1, len(self.cells)):
                if cell.overlaps(self.cells[j]):
                    raise ValueError(f"Cells {i} and {j} overlap")

    @classmethod
    def from_origins(
        cls,
        page_width: int,
        page_height: int,
        column_x0: Sequence[int],
        row_y0: Sequence[int],
        cell_width: int,
        cell_height: int,
    ) -> "GridTemplate":
        cells = tuple(
            CellBox(x, y, x + cell_width, y + cell_height)
            for y in row_y0
            for x in column_x0
        )
        return cls(
            page_width=page_width,
            page_height=page_height,
            columns=len(column_x0),
            rows=len(row_y0),
            cells=cells,
        )

    @property
    def capacity(self):
        return len(self.cells)

    @property
    def page_size(self):
        return (self.page_width, self.page_height)

    @property
    def cell_size(self):
        return (self.cells[0].width, self.cells[0].height)

    def cell(self, index: int) -> CellBox:
        return self.cells[index]

    def mirror_index(self, index: int) -> int:
        if not 0 <= index < self.capacity:
            raise IndexError(f"Cell index {index} outside grid of {self.capacity}")
        return mirror_index(index, self.columns)


REFERENCE_GRID = GridTemplate.from_origins(
    PAGE_WIDTH, PAGE_HEIGHT, COLUMN_X0, ROW_Y0, CELL_WIDTH, CELL_HEIGHT
)
