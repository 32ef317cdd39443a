"""Per-run simulation state passed to every component.

Owns the random generator, the clock, the environment, the stromal grid,
the agent registries and population counters. Built once at setup and torn
down at run end.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import List, Optional, Tuple

import numpy as np

from PatchSimulation.config import SECONDS_PER_HOUR, SimulationConfig
from PatchSimulation.environment import Environment
from PatchSimulation.expressors import ChemokineLigand
from PatchSimulation.grid import OverlayGrid
from PatchSimulation.stromal import CHEMOKINE_STATES

logger = logging.getLogger(__name__)


class SimulationContext:
    """Mutable state of one simulation run."""

    def __init__(self, config: SimulationConfig, seed: Optional[int] = None) -> None:
        self.config = config
        self.seed = config.random_seed if seed is None else int(seed)
        self.rng = np.random.default_rng(self.seed)
        self.seconds_per_step = float(config.seconds_per_step)
        self.total_steps = config.total_steps
        self.step_count = 0
        self.environment = Environment(config.environment, self.seconds_per_step)
        self.stromal_grid: Optional[OverlayGrid] = None
        self.stromal_diameter = config.stromal_cells[0].cell_diameter if config.stromal_cells else 0.0
        self.stromal_cells: list = []
        # Insertion-ordered set of activated stromal cells.
        self.active_stromal_cells: dict = {}
        self.migrating_cells: list = []
        self.population: Counter = Counter()
        self.cell_tracker = None
        self.agents: list = []
        self._incoming: list = []
        self._chemokine_grid: Optional[OverlayGrid] = None

    # -------------------------------------------------------------------------
    # Clock
    # -------------------------------------------------------------------------

    def hours_to_steps(self, hours: float) -> int:
        return int(round(hours * SECONDS_PER_HOUR / self.seconds_per_step))

    def elapsed_seconds(self) -> float:
        return self.step_count * self.seconds_per_step

    def elapsed_hours(self) -> float:
        return self.elapsed_seconds() / SECONDS_PER_HOUR

    def is_finished(self) -> bool:
        return self.step_count >= self.total_steps

    # -------------------------------------------------------------------------
    # Scheduling and registries
    # -------------------------------------------------------------------------

    def schedule(self, agent) -> None:
        """Queue an agent; it is stepped from the next tick on."""
        self._incoming.append(agent)

    def commit_schedule(self) -> None:
        """Merge agents created this tick and drop those that stopped."""
        self.agents = [agent for agent in self.agents if not agent.stopped]
        self.agents.extend(agent for agent in self._incoming if not agent.stopped)
        self._incoming = []

    def register_stromal(self, cell) -> None:
        self.stromal_cells.append(cell)
        self.population[cell.cell_type] += 1

    def register_active(self, cell) -> None:
        self.active_stromal_cells[cell] = None

    def register_migrating(self, cell) -> None:
        self.migrating_cells.append(cell)
        self.population[cell.cell_type] += 1
        if self.cell_tracker is not None:
            self.cell_tracker.enrol(cell)

    def live_migrating_cells(self, cell_type: Optional[str] = None) -> list:
        return [
            cell for cell in self.migrating_cells
            if not cell.stopped and (cell_type is None or cell.cell_type == cell_type)
        ]

    # -------------------------------------------------------------------------
    # Chemokine field
    # -------------------------------------------------------------------------

    def chemokine_grid(self) -> OverlayGrid:
        """One-unit grid sized to the current tract dimensions."""
        width = max(int(self.environment.width), 1)
        height = max(int(self.environment.height), 1)
        grid = self._chemokine_grid
        if grid is None or grid.width != width or grid.height != height:
            grid = OverlayGrid(width, height)
            self._chemokine_grid = grid
        return grid

    def chemokine_sources(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Positions and ligand parameters of every expressing, non-stopped active stromal cell."""
        positions: List[Tuple[float, float]] = []
        linear_adjust: List[float] = []
        sig_threshold: List[float] = []
        for cell in self.active_stromal_cells:
            if cell.stopped or cell.state not in CHEMOKINE_STATES:
                continue
            ligand = cell.find_expressor(ChemokineLigand)
            if ligand is None:
                continue
            positions.append(cell.position)
            linear_adjust.append(ligand.linear_adjust)
            sig_threshold.append(ligand.sigmoid_threshold)
        return (
            np.asarray(positions, dtype=np.float64).reshape(-1, 2),
            np.asarray(linear_adjust, dtype=np.float64),
            np.asarray(sig_threshold, dtype=np.float64),
        )

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def teardown(self) -> None:
        """Stop every agent and clear the registries."""
        for agent in self.agents + self._incoming:
            agent.stop(self)
        logger.info(
            "Run finished at step %d: %s",
            self.step_count,
            ", ".join(f"{k}={v}" for k, v in sorted(self.population.items())) or "no cells",
        )
        self.agents = []
        self._incoming = []
        self.stromal_cells = []
        self.active_stromal_cells = {}
        self.migrating_cells = []
