"""Discrete overlay grid used for stromal placement and chemokine sampling.

The continuous tract maps onto an integer grid. Neighborhood queries are
toroidal on both axes; callers drop candidates that wrap across the bounded
X axis with ``crosses_x_boundary``.
"""

from __future__ import annotations

import math
from typing import Iterator, List, Optional, Tuple

import numpy as np

from PatchSimulation.errors import InvariantViolation

GridCell = Tuple[int, int]

# Center slot of a distance-1 Moore neighborhood.
CENTER_INDEX = 4


def round_coordinate(value: float, extent: float) -> int:
    """Round half up, except on the exact far edge where the value is floored."""
    if int(value) != extent:
        return int(math.floor(value + 0.5))
    return int(math.floor(value))


def moore_neighborhood(col: int, row: int, distance: int, width: int, height: int) -> List[GridCell]:
    """Return the ``(2d+1)^2`` toroidal neighbors of ``(col, row)``, center included.

    Ordering is x-major then y, so for ``distance=1`` index 4 is the center,
    index 1 is ``(col-1, row)`` and index 7 is ``(col+1, row)``.
    """
    if distance < 0:
        raise InvariantViolation(f"Neighborhood distance must be non-negative; got {distance}")
    if width <= 0 or height <= 0:
        raise InvariantViolation(f"Grid dimensions must be positive; got {width}x{height}")
    cells: List[GridCell] = []
    for dx in range(-distance, distance + 1):
        for dy in range(-distance, distance + 1):
            cells.append(((col + dx) % width, (row + dy) % height))
    return cells


def crosses_x_boundary(source_col: int, candidate_col: int, distance: int, grid_width: int) -> bool:
    """True when reaching ``candidate_col`` from ``source_col`` implies wrapping across X.

    A toroidal neighbor that wrapped lies further than ``distance`` columns
    away once unwrapped. Grids too narrow to hold the whole neighborhood
    reject every off-center column.
    """
    offset = abs(candidate_col - source_col)
    if offset > distance:
        return True
    return offset + distance >= grid_width and offset != 0


class OverlayGrid:
    """Integer grid holding at most one occupant per cell."""

    def __init__(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise InvariantViolation(f"Overlay grid dimensions must be positive; got {width}x{height}")
        self.width = int(width)
        self.height = int(height)
        self._cells = np.full((self.width, self.height), None, dtype=object)

    def get(self, col: int, row: int) -> Optional[object]:
        return self._cells[col, row]

    def set(self, col: int, row: int, occupant: object) -> None:
        self._cells[col, row] = occupant

    def clear(self, col: int, row: int) -> None:
        self._cells[col, row] = None

    def is_free(self, col: int, row: int) -> bool:
        return self._cells[col, row] is None

    def occupied_count(self) -> int:
        return sum(1 for occupant in self._cells.flat if occupant is not None)

    def free_cells(self) -> Iterator[GridCell]:
        for col in range(self.width):
            for row in range(self.height):
                if self._cells[col, row] is None:
                    yield col, row

    def moore_neighborhood(self, col: int, row: int, distance: int) -> List[GridCell]:
        return moore_neighborhood(col, row, distance, self.width, self.height)

    def round_location(self, x: float, y: float, env_width: float, env_height: float) -> GridCell:
        """Map a continuous location onto this grid (one cell per unit)."""
        col = min(round_coordinate(x, env_width), self.width - 1)
        row = round_coordinate(y, env_height) % self.height
        return max(col, 0), row
