"""Receptor and ligand models attached to cells.

Each cell carries an ordered list of expressors. Stromal cells express the
adhesion factor and the chemokine ligand; migrating cells carry the integrin
(adhesion) and the chemokine receptor that turns local chemokine levels into
a movement direction.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np
from scipy.special import expit

from PatchSimulation.errors import ConfigurationError, InvariantViolation
from PatchSimulation.grid import CENTER_INDEX, crosses_x_boundary

logger = logging.getLogger(__name__)

# Sentinel direction meaning "no chemokine bias, move anywhere".
NO_BIAS = 99

# Neighbors a cell may pick when it ignores the strongest signal.
RANDOM_DIRECTIONS = (0, 1, 2, 3, 5, 6, 7, 8)

# Angle sectors in degrees per Moore index, upper bound inclusive.
SECTOR_DEGREES: Dict[int, Tuple[int, int]] = {
    0: (203, 249),
    1: (158, 202),
    2: (113, 157),
    3: (250, 292),
    5: (68, 112),
    6: (293, 337),
    8: (23, 67),
}
WRAP_SECTOR = 7


def _check_probability(value: float, label: str) -> float:
    value = float(value)
    if not 0.0 <= value <= 1.0:
        raise InvariantViolation(f"{label} must lie in [0, 1]; got {value}")
    return value


def calc_chemo_level(distance: float, linear_adjust: float, sig_threshold: float, cutoff: float) -> float:
    """Sigmoid chemokine level at ``distance``; 0 when below ``cutoff``."""
    if distance < 0:
        raise InvariantViolation(f"Distance must be non-negative; got {distance}")
    level = float(expit(sig_threshold - linear_adjust * distance))
    return level if level >= cutoff else 0.0


def sector_angle(index: int, rng: np.random.Generator) -> float:
    """Draw a uniform angle (radians) inside the sector of a Moore index."""
    if index == NO_BIAS:
        return float(np.radians(rng.uniform(0.0, 360.0)))
    if index == WRAP_SECTOR:
        degrees = rng.uniform(0.0, 44.0)
        if degrees >= 22.0:
            degrees += 316.0
        return float(np.radians(degrees))
    if index not in SECTOR_DEGREES:
        raise InvariantViolation(f"No movement sector for neighborhood index {index}")
    lo, hi = SECTOR_DEGREES[index]
    return float(np.radians(lo + rng.random() * (hi - lo + 1)))


# -----------------------------------------------------------------------------
# Adhesion
# -----------------------------------------------------------------------------

class AdhesionFactorExpressor:
    """Adhesion factor on a stromal cell, rising with each stable contact."""

    def __init__(self, adhesion_slope: float, expression_increment: float = 0.05, expression_level: float = 0.0) -> None:
        if adhesion_slope < 0:
            raise InvariantViolation(f"adhesion_slope must be non-negative; got {adhesion_slope}")
        self.adhesion_slope = float(adhesion_slope)
        self.expression_increment = _check_probability(expression_increment, "expression_increment")
        if expression_level < 0:
            raise InvariantViolation("expression_level must be non-negative")
        self.expression_level = float(expression_level)

    def increment_expression(self) -> None:
        self.expression_level += self.expression_increment


class AdhesionExpressor:
    """Integrin on a migrating cell; decides whether adhesion holds it in place."""

    def __init__(self, max_adhesion_probability: float) -> None:
        self.max_adhesion_probability = _check_probability(max_adhesion_probability, "max_adhesion_probability")

    def adhesion_probability(self, factor: AdhesionFactorExpressor) -> float:
        return min(factor.adhesion_slope * factor.expression_level, self.max_adhesion_probability)

    def compute_effect(self, factor: AdhesionFactorExpressor, rng: np.random.Generator) -> bool:
        """True when the cell stays put this step."""
        return bool(rng.random() < self.adhesion_probability(factor))


# -----------------------------------------------------------------------------
# Chemokines
# -----------------------------------------------------------------------------

class ChemokineLigand:
    """Chemokine expressed by an organizer; a lower linear adjust spreads the signal further."""

    def __init__(
        self,
        linear_adjust: float,
        max_expression_value: float,
        sigmoid_threshold: float = 3.0,
        adjust_step: float = 0.005,
    ) -> None:
        if linear_adjust < 0 or max_expression_value < 0:
            raise InvariantViolation("linear_adjust and max_expression_value must be non-negative")
        if adjust_step < 0:
            raise InvariantViolation("adjust_step must be non-negative")
        self.linear_adjust = float(linear_adjust)
        self.max_expression_value = float(max_expression_value)
        self.sigmoid_threshold = float(sigmoid_threshold)
        self.adjust_step = float(adjust_step)

    def increase_expression(self) -> None:
        """Strengthen expression after a stable contact, bounded by ``max_expression_value``."""
        if self.linear_adjust > self.max_expression_value:
            self.linear_adjust = max(self.linear_adjust - self.adjust_step, self.max_expression_value)

    def level_at(self, distance: float, cutoff: float = 0.0) -> float:
        return calc_chemo_level(distance, self.linear_adjust, self.sigmoid_threshold, cutoff)


class ChemokineReceptor:
    """Receptor that samples the chemokine field around a migrating cell."""

    def __init__(self, effect_threshold: float) -> None:
        self.effect_threshold = _check_probability(effect_threshold, "effect_threshold")

    def sample_neighborhood(self, context, x: float, y: float) -> Tuple[Dict[float, int], float]:
        """Build the scaled signal -> Moore index map around ``(x, y)``.

        Returns the map and the unscaled total signal. Later indices overwrite
        earlier ones holding an equal value; the center is recorded as 0.
        """
        env = context.environment
        grid = context.chemokine_grid()
        col, row = grid.round_location(x, y, env.width, env.height)
        positions, linear_adjust, sig_threshold = context.chemokine_sources()

        signal_map: Dict[float, int] = {}
        total = 0.0
        for k, (ncol, nrow) in enumerate(grid.moore_neighborhood(col, row, 1)):
            if crosses_x_boundary(col, ncol, 1, grid.width):
                continue
            if k == CENTER_INDEX:
                signal_map[0.0] = k
                continue
            best = 0.0
            if len(positions):
                distances = np.hypot(positions[:, 0] - ncol, positions[:, 1] - nrow)
                levels = expit(sig_threshold - linear_adjust * distances)
                levels[levels < self.effect_threshold] = 0.0
                best = float(levels.max())
            signal_map[best * 100] = k
            total += best
        return signal_map, total

    def adjuster_for(self, signal_map: Mapping[float, int], total: float) -> int:
        if total > 0 and signal_map:
            strongest = max(signal_map)
            if strongest > self.effect_threshold:
                return int(np.floor(strongest))
        return 0

    def select_direction(self, adjuster: int, signal_map: Mapping[float, int], rng: np.random.Generator) -> int:
        """Follow the strongest neighbor with probability ~adjuster%, else pick at random."""
        roll = int(rng.integers(1, 101))
        if roll < adjuster:
            return signal_map[max(signal_map)]
        return int(rng.choice(RANDOM_DIRECTIONS))

    def decide_direction(self, context, x: float, y: float) -> int:
        """Moore index to move toward, or ``NO_BIAS``."""
        signal_map, total = self.sample_neighborhood(context, x, y)
        adjuster = self.adjuster_for(signal_map, total)
        if adjuster == 0:
            return NO_BIAS
        return self.select_direction(adjuster, signal_map, context.rng)

    def choose_direction(self, context, x: float, y: float) -> float:
        """Movement angle in radians."""
        return sector_angle(self.decide_direction(context, x, y), context.rng)

    compute_effect = choose_direction


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------

Expressor = AdhesionExpressor | AdhesionFactorExpressor | ChemokineReceptor | ChemokineLigand

EXPRESSOR_REGISTRY: Dict[str, Callable[..., object]] = {
    "A4b1_a4b7": AdhesionExpressor,
    "VCAM_ICAM_MAdCAM": AdhesionFactorExpressor,
    "CXCR5_CCR7": ChemokineReceptor,
    "CXCL13_CCL19_CCL21": ChemokineLigand,
}


def build_expressor(key: str, params: Optional[Mapping[str, float]] = None):
    """Instantiate a registered expressor, failing fast on unknown keys or parameters."""
    try:
        factory = EXPRESSOR_REGISTRY[key]
    except KeyError as exc:
        raise ConfigurationError(f"Unknown expressor type {key!r}; known: {sorted(EXPRESSOR_REGISTRY)}") from exc
    try:
        return factory(**dict(params or {}))
    except TypeError as exc:
        raise ConfigurationError(f"Bad parameters for expressor {key!r}: {exc}") from exc


def build_expressors(specs: Sequence) -> list:
    return [build_expressor(spec.key, spec.params) for spec in specs]


def find_expressor(expressors: Sequence, kind: type):
    """First expressor of ``kind`` in list order, or None."""
    for expressor in expressors:
        if isinstance(expressor, kind):
            return expressor
    return None
