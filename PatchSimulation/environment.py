"""Growing intestinal tract environment.

The tract is a continuous 2D field: X is the tract length (bounded) and Y the
circumference (toroidal). Dimensions grow linearly toward their targets after
an optional delay. Agent positions are never remapped on growth, so growth
dilutes density rather than stretching the tissue.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Tuple

from PatchSimulation.config import SECONDS_PER_HOUR, EnvironmentConfig
from PatchSimulation.errors import InvariantViolation

logger = logging.getLogger(__name__)

Position = Tuple[float, float]

# Bucket size of the continuous field, one stromal diameter.
FIELD_DISCRETIZATION = 6.0


# -----------------------------------------------------------------------------
# Continuous field
# -----------------------------------------------------------------------------

class SpatialField:
    """Continuous 2D position store with bucketed radius queries.

    Agents are returned in the order they were first placed, which keeps the
    random draw order stable between runs with the same seed.
    """

    def __init__(self, discretization: float = FIELD_DISCRETIZATION) -> None:
        if discretization <= 0:
            raise InvariantViolation("Field discretization must be positive")
        self.discretization = float(discretization)
        self._locations: Dict[object, Position] = {}
        self._order: Dict[object, int] = {}
        self._buckets: Dict[Tuple[int, int], List[object]] = {}
        self._next_order = 0

    def _bucket(self, x: float, y: float) -> Tuple[int, int]:
        return int(math.floor(x / self.discretization)), int(math.floor(y / self.discretization))

    def place(self, agent: object, x: float, y: float) -> None:
        """Insert the agent or move it to ``(x, y)``."""
        if agent in self._locations:
            old = self._bucket(*self._locations[agent])
            self._buckets[old].remove(agent)
            if not self._buckets[old]:
                del self._buckets[old]
        else:
            self._order[agent] = self._next_order
            self._next_order += 1
        self._locations[agent] = (float(x), float(y))
        self._buckets.setdefault(self._bucket(x, y), []).append(agent)

    def remove(self, agent: object) -> None:
        location = self._locations.pop(agent, None)
        if location is None:
            return
        key = self._bucket(*location)
        self._buckets[key].remove(agent)
        if not self._buckets[key]:
            del self._buckets[key]
        del self._order[agent]

    def location_of(self, agent: object) -> Optional[Position]:
        return self._locations.get(agent)

    def agents(self) -> List[object]:
        return list(self._locations)

    def __contains__(self, agent: object) -> bool:
        return agent in self._locations

    def __len__(self) -> int:
        return len(self._locations)

    def neighbors_within_radius(
        self,
        x: float,
        y: float,
        radius: float,
        height: Optional[float] = None,
        toroidal_y: bool = True,
    ) -> List[object]:
        """Agents whose position lies within ``radius`` of ``(x, y)``.

        When ``toroidal_y`` is set, ``height`` is the circumference Y wraps over.
        """
        if radius < 0:
            raise InvariantViolation(f"Query radius must be non-negative; got {radius}")
        wrap = toroidal_y and height is not None and height > 0
        offsets = (0.0, height, -height) if wrap else (0.0,)
        found: Dict[object, None] = {}
        for offset in offsets:
            qy = y + offset
            bx0, by0 = self._bucket(x - radius, qy - radius)
            bx1, by1 = self._bucket(x + radius, qy + radius)
            for bx in range(bx0, bx1 + 1):
                for by in range(by0, by1 + 1):
                    for agent in self._buckets.get((bx, by), ()):
                        ax, ay = self._locations[agent]
                        if math.hypot(ax - x, ay - qy) <= radius:
                            found[agent] = None
        return sorted(found, key=self._order.__getitem__)


# -----------------------------------------------------------------------------
# Environment
# -----------------------------------------------------------------------------

class Environment:
    """Tract dimensions over time plus the field holding every agent."""

    def __init__(self, config: EnvironmentConfig, seconds_per_step: float) -> None:
        self.config = config
        self.initial_width = float(config.initial_length)
        self.initial_height = float(config.initial_circumference)
        self.target_width = float(config.target_length)
        self.target_height = float(config.target_circumference)
        self.width = self.initial_width
        self.height = self.initial_height
        growth_steps = config.growth_hours * SECONDS_PER_HOUR / seconds_per_step
        self.growth_delay_steps = int(round(config.growth_delay_hours * SECONDS_PER_HOUR / seconds_per_step))
        self.growth_per_step = (
            self._axis_growth(self.initial_width, self.target_width, growth_steps),
            self._axis_growth(self.initial_height, self.target_height, growth_steps),
        )
        self.growth_steps_applied = 0
        self.field = SpatialField()

    @staticmethod
    def _axis_growth(initial: float, target: float, growth_steps: float) -> float:
        if target <= initial:
            return 0.0
        if growth_steps <= 0:
            return target - initial
        return (target - initial) / growth_steps

    def grow(self, step: int) -> None:
        """Advance one growth step once the delay has passed."""
        if step < self.growth_delay_steps:
            return
        if self.width >= self.target_width and self.height >= self.target_height:
            return
        self.growth_steps_applied += 1
        dx, dy = self.growth_per_step
        n = self.growth_steps_applied
        self.width = max(self.width, min(self.initial_width + n * dx, self.target_width))
        self.height = max(self.height, min(self.initial_height + n * dy, self.target_height))

    def wrap_y(self, y: float) -> float:
        return y % self.height

    def contains_x(self, x: float) -> bool:
        return 0.0 <= x < self.width

    def distance(self, a: Position, b: Position) -> float:
        """Euclidean distance with Y measured the short way round the circumference."""
        dy = abs(a[1] - b[1]) % self.height
        dy = min(dy, self.height - dy)
        return math.hypot(a[0] - b[0], dy)

    def relocate(self, agent) -> None:
        """Mirror the agent's own position into the field."""
        x, y = agent.position
        self.field.place(agent, x, y)

    def remove(self, agent) -> None:
        self.field.remove(agent)

    def neighbors_within_radius(self, x: float, y: float, radius: float, toroidal_y: bool = True) -> list:
        return self.field.neighbors_within_radius(x, y, radius, height=self.height, toroidal_y=toroidal_y)
