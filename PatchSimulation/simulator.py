"""Peyer's Patch organogenesis simulator.

Builds the run context, seeds the stroma with organizer and decoy cells,
wires the input controller and statistics collectors into the scheduler, and
runs the fixed-step simulation to completion.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence

from PatchSimulation.config import SimulationConfig, StromalCellConfig
from PatchSimulation.context import SimulationContext
from PatchSimulation.errors import PlacementExhaustion
from PatchSimulation.grid import OverlayGrid
from PatchSimulation.input_control import CellInputController
from PatchSimulation.registry import resolve_stromal
from PatchSimulation.scheduler import Scheduler
from PatchSimulation.statistics import CellTracker, PatchStatistics, PopulationRecorder
from PatchSimulation.stromal import StromalState

logger = logging.getLogger(__name__)

# Absorbs float noise in percentage products before rounding up.
COUNT_TOLERANCE = 1e-9


def stromal_cell_counts(total_cells: int, density_percent: float, ret_ligand_percent: float) -> tuple[int, int]:
    """Potential stromal cells, and how many of them start active.

    Partial cells round up, so 1000 grid cells at 5 % give exactly 50.
    """
    potential = math.ceil(total_cells / 100 * density_percent - COUNT_TOLERANCE)
    active = math.ceil(potential * ret_ligand_percent / 100 - COUNT_TOLERANCE)
    return max(potential, 0), max(active, 0)


def build_stromal_grid(context, cell_diameter: float) -> OverlayGrid:
    env = context.environment
    width = int(env.initial_width / cell_diameter)
    height = int(env.initial_height / cell_diameter)
    return OverlayGrid(width, height)


def distribute_stromal_cells(context, config: StromalCellConfig) -> list:
    """Place one stromal population on random free grid cells.

    Exhausting ``max_placement_attempts`` for any cell aborts setup.
    """
    grid = context.stromal_grid
    cls = resolve_stromal(config.key)
    potential, active = stromal_cell_counts(grid.width * grid.height, config.density_percent, config.ret_ligand_percent)
    if potential > sum(1 for _ in grid.free_cells()):
        raise PlacementExhaustion(f"{config.key}: {potential} cells requested but the stromal grid is too full")
    d = config.cell_diameter
    placed = []
    for k in range(potential):
        for _ in range(context.config.max_placement_attempts):
            col = int(context.rng.integers(grid.width))
            row = int(context.rng.integers(grid.height))
            if grid.is_free(col, row):
                break
        else:
            raise PlacementExhaustion(
                f"{config.key}: no free grid cell after {context.config.max_placement_attempts} attempts"
            )
        cell = cls.from_config(
            config,
            context,
            position=(col * d + d / 2, row * d + d / 2),
            grid_location=(col, row),
            initially_active=k < active,
        )
        grid.set(col, row, cell)
        context.environment.relocate(cell)
        context.register_stromal(cell)
        if cell.state == StromalState.IMMATURE_ACTIVE:
            context.register_active(cell)
        context.schedule(cell)
        placed.append(cell)
    logger.info("Placed %d %s cells (%d initially active) on a %dx%d grid", potential, config.key, active, grid.width, grid.height)
    return placed


class PatchSimulator:
    """Runs one seeded Peyer's Patch simulation."""

    def __init__(self, config: SimulationConfig, seed: Optional[int] = None) -> None:
        self.config = config
        self.context = SimulationContext(config, seed=seed)
        self.collectors: List[object] = []
        self.tracker: Optional[CellTracker] = None
        self.patch_stats: Optional[PatchStatistics] = None
        self.population = PopulationRecorder(self.context)
        self.setup()
        self.scheduler = Scheduler(self.context, self.input_controller, self.collectors)

    def setup(self) -> None:
        context = self.context
        if self.config.stromal_cells:
            context.stromal_grid = build_stromal_grid(context, self.config.stromal_cells[0].cell_diameter)
            for stromal_config in self.config.stromal_cells:
                distribute_stromal_cells(context, stromal_config)
        self.input_controller = CellInputController(context, self.config.migrating_cells)
        if self.config.cell_tracking_enabled:
            self.tracker = CellTracker(context, self.config.tracking_hour_ranges)
            context.cell_tracker = self.tracker
            self.collectors.append(self.tracker)
        if self.config.patch_stats_enabled:
            self.patch_stats = PatchStatistics(context, self.config.patch_stats_output_hours)
            self.collectors.append(self.patch_stats)
        self.collectors.append(self.population)
        if self.config.snapshots_enabled:
            logger.info("snapshots_enabled is set; image snapshots are not produced")
        logger.info(
            "Simulation set up: %d steps of %.0f s, seed %d",
            context.total_steps,
            context.seconds_per_step,
            context.seed,
        )

    def run(self) -> Sequence[dict]:
        """Run to completion and return the population history."""
        self.scheduler.run()
        return self.population.history
