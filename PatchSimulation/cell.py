"""Agent state shared by stromal and migrating cells.

Holds position, state code, lifetime counters and the expressor list. The
dynamics live in the subclasses; this module only defines the common
contract and the track record used by cell tracking.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from PatchSimulation.expressors import find_expressor

Position = Tuple[float, float]


@dataclass
class TrackRecord:
    """Mutable path summary of a migrating cell within a tracking window."""
    start: Optional[Position] = None
    end: Optional[Position] = None
    length: float = 0.0
    time_tracked: int = 0

    def reset(self, position: Position) -> None:
        self.start = position
        self.end = None
        self.length = 0.0
        self.time_tracked = 0


class Agent:
    """Base cell agent driven once per tick by the scheduler."""

    cell_type = "Agent"
    cell_diameter = 6.0

    def __init__(self, position: Position, state: int, expressors: Optional[List[object]] = None) -> None:
        self.position: Position = (float(position[0]), float(position[1]))
        self.state = int(state)
        self.stopped = False
        self.active_steps = 0
        # Shared by reference with daughter cells.
        self.expressors: List[object] = expressors if expressors is not None else []

    def __repr__(self) -> str:
        return f"{self.cell_type}(state={self.state}, position=({self.position[0]:.2f}, {self.position[1]:.2f}))"

    def step(self, context) -> None:
        raise NotImplementedError

    def stop(self, context=None) -> None:
        """Terminal: the scheduler drops stopped agents before the next tick."""
        self.stopped = True

    def clone_state_into(self, target: "Agent") -> None:
        """Copy what a daughter inherits: state, expressors (shared) and age plus one."""
        target.state = self.state
        target.expressors = self.expressors
        target.active_steps = self.active_steps + 1

    def find_expressor(self, kind: type):
        return find_expressor(self.expressors, kind)
