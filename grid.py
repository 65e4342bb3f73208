"""2D symbol grid with 3x3 neighbourhood access."""

import string
from typing import List, Optional, Tuple

import numpy as np


FILL_CHAR = "#"
FILL_CODE = ord(FILL_CHAR)
# Palette and rule letters; the grid stores one ASCII byte per cell.
SYMBOLS = string.ascii_uppercase

# Window slots 1-9, row-major with y growing downwards; slot 5 is the center.
OFFSETS_3X3: Tuple[Tuple[int, int], ...] = (
    (-1, -1), (0, -1), (1, -1),
    (-1, 0), (0, 0), (1, 0),
    (-1, 1), (0, 1), (1, 1),
)


class CharGrid:
    """Fixed-size grid of single-character symbols, unset cells hold FILL_CHAR."""

    def __init__(self, width: int = 32, height: int = 32):
        self.width = max(1, int(width))
        self.height = max(1, int(height))
        self.pixels = np.full((self.height, self.width), FILL_CODE, dtype=np.uint8)
        self.changed = True

    @property
    def size(self) -> int:
        return self.width * self.height

    def resize(self, width: int, height: int):
        """Reallocate the grid. Old contents are discarded."""
        self.width = max(1, int(width))
        self.height = max(1, int(height))
        self.pixels = np.full((self.height, self.width), FILL_CODE, dtype=np.uint8)
        self.changed = True

    def get(self, x: int, y: int) -> str:
        return chr(self.pixels[y, x])

    def set(self, x: int, y: int, symbol: str):
        self.pixels[y, x] = ord(symbol)
        self.changed = True

    def fill(self, symbols: np.ndarray):
        """Overwrite every cell from a (height, width) array of ASCII codes."""
        self.pixels[:, :] = symbols
        self.changed = True

    def index_from_xy(self, x: int, y: int) -> int:
        return y * self.width + x

    def xy_from_index(self, index: int) -> Tuple[int, int]:
        return index % self.width, index // self.width

    def in_range(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def neighbourhood_offsets(self, x: int, y: int) -> List[Optional[Tuple[int, int]]]:
        """Absolute coordinates of the 9 window slots, None where off-grid."""
        result: List[Optional[Tuple[int, int]]] = []
        for dx, dy in OFFSETS_3X3:
            nx, ny = x + dx, y + dy
            result.append((nx, ny) if self.in_range(nx, ny) else None)
        return result

    def window_string(self, x: int, y: int) -> str:
        return "".join(
            chr(self.pixels[loc[1], loc[0]]) if loc is not None else FILL_CHAR
            for loc in self.neighbourhood_offsets(x, y)
        )

    def windows(self) -> np.ndarray:
        """Per-cell window codes as a (height, width, 9) array, FILL padded."""
        padded = np.pad(self.pixels, 1, mode="constant", constant_values=FILL_CODE)
        layers = [
            padded[1 + dy:1 + dy + self.height, 1 + dx:1 + dx + self.width]
            for dx, dy in OFFSETS_3X3
        ]
        return np.stack(layers, axis=-1)

    def flatten(self) -> str:
        """Concatenated window strings of every cell in index order."""
        return self.windows().tobytes().decode("ascii")

    def count(self, symbol: str) -> int:
        return int(np.sum(self.pixels == ord(symbol)))

    def population_by_symbol(self) -> dict:
        """Count cells holding each symbol."""
        unique, counts = np.unique(self.pixels, return_counts=True)
        return {chr(s): int(c) for s, c in zip(unique, counts)}

    def to_rows(self) -> List[str]:
        return [row.tobytes().decode("ascii") for row in self.pixels]

    @classmethod
    def from_rows(cls, rows: List[str]) -> "CharGrid":
        """Build a grid from equal-length text rows, top row first."""
        grid = cls(len(rows[0]), len(rows))
        grid.fill(np.array([[ord(c) for c in row] for row in rows], dtype=np.uint8))
        return grid


def is_symbol(symbol) -> bool:
    return isinstance(symbol, str) and len(symbol) == 1 and symbol in SYMBOLS
