"""Simulation configuration for Peyer's Patch organogenesis runs.

Defines the time grid (seconds per step, run length), the growing tract
environment, and the stromal and migrating cell populations. All values are
validated on construction so that a bad parameter aborts setup instead of
surfacing mid-run. Lengths are in simulation units (1 unit = 4 microns).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

import numpy as np

from PatchSimulation.errors import ConfigurationError, InvariantViolation

SECONDS_PER_HOUR = 3600.0
INPUT_RATE_GRAPHS = ("constant", "exp", "sqrt")


def parse_tracking_ranges(text: str | None) -> tuple[tuple[int, int], ...]:
    """Parse ``"start-end,start-end"`` hour ranges into integer pairs sorted by start."""
    if text is None:
        return ()
    text = str(text).strip()
    if not text or text.upper() == "NULL":
        return ()
    ranges: list[tuple[int, int]] = []
    for token in text.split(","):
        parts = token.strip().split("-")
        if len(parts) != 2:
            raise ConfigurationError(f"Tracking range must look like 'start-end'; got {token!r}")
        try:
            start, end = int(parts[0]), int(parts[1])
        except ValueError as exc:
            raise ConfigurationError(f"Tracking range hours must be integers; got {token!r}") from exc
        if start < 0 or end <= start:
            raise ConfigurationError(f"Tracking range must satisfy 0 <= start < end; got {token!r}")
        ranges.append((start, end))
    return tuple(sorted(ranges))


def parse_output_hours(text: str | None) -> tuple[int, ...] | None:
    """Parse a comma separated hour list. ``"NULL"`` (or nothing) disables output."""
    if text is None:
        return None
    if isinstance(text, (list, tuple)):
        tokens = [str(t) for t in text]
    else:
        text = str(text).strip()
        if not text or text.upper() == "NULL":
            return None
        tokens = text.split(",")
    try:
        hours = tuple(int(t.strip()) for t in tokens)
    except ValueError as exc:
        raise ConfigurationError(f"Patch statistics hours must be integers; got {text!r}") from exc
    if any(h < 0 for h in hours):
        raise ConfigurationError("Patch statistics hours must be non-negative")
    return tuple(sorted(hours))


def _check_percent(value: float, label: str) -> None:
    if not 0.0 <= value <= 100.0:
        raise InvariantViolation(f"{label} must lie in [0, 100]; got {value}")


@dataclass(frozen=True)
class ExpressorSpec:
    """Registry key of an expressor plus its numeric parameters."""
    key: str
    params: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.key:
            raise ConfigurationError("Expressor entries need a non-empty type")


@dataclass(frozen=True)
class EnvironmentConfig:
    """Tract dimensions. X is the tract length (bounded), Y the circumference (wraps)."""
    initial_length: float
    initial_circumference: float
    target_length: float
    target_circumference: float
    growth_hours: float
    growth_delay_hours: float = 0.0

    def __post_init__(self) -> None:
        if min(self.initial_length, self.initial_circumference) <= 0:
            raise InvariantViolation("Initial tract dimensions must be positive")
        if min(self.target_length, self.target_circumference) <= 0:
            raise InvariantViolation("Target tract dimensions must be positive")
        if self.target_length < self.initial_length or self.target_circumference < self.initial_circumference:
            raise InvariantViolation("Target tract dimensions must not be smaller than the initial ones")
        if self.growth_hours < 0:
            raise InvariantViolation("growth_hours must be non-negative")
        if self.growth_delay_hours < 0:
            raise InvariantViolation("growth_delay_hours must be non-negative")


@dataclass(frozen=True)
class StromalCellConfig:
    """Grid-anchored cell population placed on the stroma at setup."""
    key: str
    density_percent: float
    ret_ligand_percent: float
    immature_active_hours: float
    division_hours: float
    maturation_contacts: int = 1
    cell_diameter: float = 6.0
    expressors: tuple[ExpressorSpec, ...] = ()

    def __post_init__(self) -> None:
        _check_percent(self.density_percent, f"{self.key} density_percent")
        _check_percent(self.ret_ligand_percent, f"{self.key} ret_ligand_percent")
        if self.immature_active_hours < 0:
            raise InvariantViolation(f"{self.key} immature_active_hours must be non-negative")
        if self.division_hours <= 0:
            raise InvariantViolation(f"{self.key} division_hours must be positive")
        if self.maturation_contacts <= 0:
            raise InvariantViolation(f"{self.key} maturation_contacts must be positive")
        if self.cell_diameter <= 0:
            raise InvariantViolation(f"{self.key} cell_diameter must be positive")


@dataclass(frozen=True)
class MigratingCellConfig:
    """Haematopoietic cell population admitted over time by the input controller."""
    key: str
    area_percent: float
    input_hours: float
    input_delay_hours: float = 0.0
    input_rate_graph: str = "constant"
    input_rate_constant: float | None = None
    speed_min_per_minute: float = 0.95
    speed_max_per_minute: float = 2.2
    cell_diameter: float = 4.0
    max_lifetime_hours: float | None = None
    expressors: tuple[ExpressorSpec, ...] = ()

    def __post_init__(self) -> None:
        _check_percent(self.area_percent, f"{self.key} area_percent")
        if self.input_delay_hours < 0 or self.input_hours < 0:
            raise InvariantViolation(f"{self.key} input hours must be non-negative")
        if self.input_rate_graph not in INPUT_RATE_GRAPHS:
            raise ConfigurationError(
                f"{self.key} input_rate_graph must be one of {INPUT_RATE_GRAPHS}; got {self.input_rate_graph!r}"
            )
        if self.input_rate_graph != "constant":
            if self.input_rate_constant is None:
                raise ConfigurationError(f"{self.key} input_rate_graph {self.input_rate_graph!r} needs input_rate_constant")
            if self.input_rate_constant <= 0:
                raise InvariantViolation(f"{self.key} input_rate_constant must be positive")
        if self.speed_min_per_minute < 0 or self.speed_max_per_minute < self.speed_min_per_minute:
            raise InvariantViolation(f"{self.key} speed bounds must satisfy 0 <= min <= max")
        if self.cell_diameter <= 0:
            raise InvariantViolation(f"{self.key} cell_diameter must be positive")
        if self.max_lifetime_hours is not None and self.max_lifetime_hours <= 0:
            raise InvariantViolation(f"{self.key} max_lifetime_hours must be positive")


@dataclass(frozen=True)
class SimulationConfig:
    """Configuration parameters for a single simulation run."""
    seconds_per_step: float
    simulation_hours: float
    random_seed: int
    environment: EnvironmentConfig
    stromal_cells: tuple[StromalCellConfig, ...] = ()
    migrating_cells: tuple[MigratingCellConfig, ...] = ()
    out_dir: str = "results"
    run_replicate: str = "1"
    cell_tracking_enabled: bool = False
    tracking_hour_ranges: tuple[tuple[int, int], ...] = ()
    patch_stats_enabled: bool = False
    patch_stats_output_hours: tuple[int, ...] | None = None
    snapshots_enabled: bool = False
    max_division_radius: int = 10
    max_placement_attempts: int = 10000

    def __post_init__(self) -> None:
        if self.seconds_per_step <= 0:
            raise InvariantViolation("seconds_per_step must be positive")
        if self.simulation_hours <= 0:
            raise InvariantViolation("simulation_hours must be positive")
        steps_per_hour = SECONDS_PER_HOUR / self.seconds_per_step
        if not np.isclose(steps_per_hour, round(steps_per_hour), rtol=0.0, atol=1e-9):
            raise ConfigurationError(f"3600 / seconds_per_step must be an integer; got {steps_per_hour}")
        if self.max_division_radius <= 0:
            raise InvariantViolation("max_division_radius must be positive")
        if self.max_placement_attempts <= 0:
            raise InvariantViolation("max_placement_attempts must be positive")
        for flag in ("cell_tracking_enabled", "patch_stats_enabled", "snapshots_enabled"):
            if not isinstance(getattr(self, flag), bool):
                raise ConfigurationError(f"{flag} must be a boolean")
        if self.cell_tracking_enabled and not self.tracking_hour_ranges:
            raise ConfigurationError("cell_tracking_enabled requires tracking_hour_ranges")
        for start, end in self.tracking_hour_ranges:
            if end > self.simulation_hours:
                raise ConfigurationError(f"Tracking range {start}-{end} ends after the run ({self.simulation_hours} h)")
        ranges = tuple(sorted(self.tracking_hour_ranges))
        for (_, prev_end), (start, end) in zip(ranges, ranges[1:]):
            if start < prev_end:
                raise ConfigurationError(f"Tracking ranges overlap: {start}-{end} starts before hour {prev_end}")
        object.__setattr__(self, "tracking_hour_ranges", ranges)
        diameters = {cfg.cell_diameter for cfg in self.stromal_cells}
        if len(diameters) > 1:
            raise ConfigurationError("All stromal cell types share one grid and must have the same cell_diameter")
        keys = [cfg.key for cfg in self.stromal_cells] + [cfg.key for cfg in self.migrating_cells]
        if len(keys) != len(set(keys)):
            raise ConfigurationError("Each cell type may only be configured once")

    @property
    def steps_per_hour(self) -> int:
        return int(round(SECONDS_PER_HOUR / self.seconds_per_step))

    @property
    def total_steps(self) -> int:
        return int(round(self.simulation_hours * self.steps_per_hour))
