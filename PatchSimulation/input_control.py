"""Admission of migrating cells into the tract over time.

The per-step input rate of each migrating cell type is the number of cells
needed to cover ``area_percent`` of the tract in 24 hours. The ``exp`` and
``sqrt`` graphs instead follow a cumulative curve and admit its increment each
step. Whole cells are admitted immediately; fractions carry over per type.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Tuple

from PatchSimulation.config import SECONDS_PER_HOUR, MigratingCellConfig
from PatchSimulation.errors import ConfigurationError, PlacementExhaustion
from PatchSimulation.migrating import MigratingCell
from PatchSimulation.registry import resolve_migrating

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * SECONDS_PER_HOUR


def base_input_rate(config: MigratingCellConfig, initial_width: float, initial_height: float, seconds_per_step: float) -> float:
    """Cells per step needed to reach ``area_percent`` of the tract after one day."""
    total_cells = int(initial_width / config.cell_diameter) * int(initial_height / config.cell_diameter)
    required = total_cells / 100 * config.area_percent
    return required / (SECONDS_PER_DAY / seconds_per_step)


def graph_input_rate(graph: str, constant: float, step: int) -> float:
    """Increment of the cumulative input curve between ``step - 1`` and ``step``."""
    if graph == "exp":
        return constant ** step - constant ** (step - 1)
    if graph == "sqrt":
        return math.sqrt(constant * step) - math.sqrt(max(constant * (step - 1), 0.0))
    raise ConfigurationError(f"Unknown input rate graph {graph!r}")


class CellInputController:
    """Adds migrating cells each tick inside each type's admission window."""

    def __init__(self, context, configs: Tuple[MigratingCellConfig, ...]) -> None:
        self.configs = configs
        self.classes = {cfg.key: resolve_migrating(cfg.key) for cfg in configs}
        env = context.environment
        self.rates: Dict[str, float] = {
            cfg.key: base_input_rate(cfg, env.initial_width, env.initial_height, context.seconds_per_step)
            for cfg in configs
        }
        self.carry: Dict[str, float] = {cfg.key: 0.0 for cfg in configs}
        for cfg in configs:
            logger.info("%s base input rate %.4f cells/step", cfg.key, self.rates[cfg.key])

    def in_window(self, config: MigratingCellConfig, elapsed_seconds: float) -> bool:
        return (
            config.input_delay_hours * SECONDS_PER_HOUR < elapsed_seconds
            < config.input_hours * SECONDS_PER_HOUR
        )

    def rate_for(self, config: MigratingCellConfig, step: int) -> float:
        if config.input_rate_graph == "constant":
            return self.rates[config.key]
        rate = graph_input_rate(config.input_rate_graph, config.input_rate_constant, step)
        self.rates[config.key] = rate
        return rate

    def admissions_for(self, config: MigratingCellConfig, step: int) -> int:
        rate = self.rate_for(config, step)
        whole = int(rate)
        fraction = rate - whole
        if fraction > 0:
            self.carry[config.key] += fraction
            if self.carry[config.key] >= 1:
                self.carry[config.key] -= 1
                whole += 1
        return whole

    def step(self, context) -> List[object]:
        if context.is_finished():
            return []
        admitted: List[object] = []
        elapsed = context.elapsed_seconds()
        for config in self.configs:
            if not self.in_window(config, elapsed):
                continue
            for _ in range(self.admissions_for(config, context.step_count)):
                try:
                    admitted.append(self.admit(context, config))
                except PlacementExhaustion as exc:
                    logger.warning("Skipped %s admission at step %d: %s", config.key, context.step_count, exc)
        return admitted

    def find_free_position(self, context, cell_diameter: float) -> Tuple[float, float]:
        """Random position with no migrating cell within one diameter."""
        env = context.environment
        for _ in range(context.config.max_placement_attempts):
            x = context.rng.random() * env.width
            y = context.rng.random() * env.height
            nearby = env.neighbors_within_radius(x, y, cell_diameter)
            if not any(isinstance(agent, MigratingCell) and not agent.stopped for agent in nearby):
                return x, y
        raise PlacementExhaustion(
            f"No collision-free position after {context.config.max_placement_attempts} attempts"
        )

    def admit(self, context, config: MigratingCellConfig):
        position = self.find_free_position(context, config.cell_diameter)
        cell = self.classes[config.key].from_config(config, context, position)
        context.environment.relocate(cell)
        context.register_migrating(cell)
        context.schedule(cell)
        return cell
