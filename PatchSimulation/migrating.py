"""Migrating haematopoietic cells (LTin and LTi).

Each tick a migrating cell checks for contact with a stromal cell, may be held
in place by adhesion, and otherwise moves one speed-length along the angle
picked by its chemokine receptor. The circumference wraps; leaving either end
of the tract removes the cell from the simulation.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Tuple

from PatchSimulation.cell import Agent, TrackRecord
from PatchSimulation.config import MigratingCellConfig
from PatchSimulation.errors import InvariantViolation
from PatchSimulation.expressors import (
    NO_BIAS,
    AdhesionExpressor,
    AdhesionFactorExpressor,
    ChemokineReceptor,
    build_expressors,
    sector_angle,
)
from PatchSimulation.stromal import StromalCell, StromalState

logger = logging.getLogger(__name__)


class MigratingCell(Agent):
    """Motile cell stepped once per tick."""

    cell_type = "Migrating"
    free_state = 4
    contact_state = 5
    responder = False

    def __init__(
        self,
        position: Tuple[float, float],
        speed: float,
        cell_diameter: float = 4.0,
        expressors: Optional[list] = None,
        max_lifetime_steps: Optional[int] = None,
    ) -> None:
        super().__init__(position, self.free_state, expressors)
        if speed < 0:
            raise InvariantViolation(f"speed must be non-negative; got {speed}")
        self.speed = float(speed)
        self.cell_diameter = float(cell_diameter)
        self.max_lifetime_steps = max_lifetime_steps
        self.contact: Optional[StromalCell] = None
        self.tracking = False
        self.track = TrackRecord()

    @classmethod
    def from_config(cls, config: MigratingCellConfig, context, position: Tuple[float, float]) -> "MigratingCell":
        per_step = context.seconds_per_step / 60.0
        speed = context.rng.uniform(config.speed_min_per_minute * per_step, config.speed_max_per_minute * per_step)
        lifetime = None
        if config.max_lifetime_hours is not None:
            lifetime = context.hours_to_steps(config.max_lifetime_hours)
        return cls(
            position=position,
            speed=float(speed),
            cell_diameter=config.cell_diameter,
            expressors=build_expressors(config.expressors),
            max_lifetime_steps=lifetime,
        )

    def step(self, context) -> None:
        if self.stopped:
            return
        if context.is_finished():
            self.stop(context)
            return
        if self.max_lifetime_steps is not None and self.active_steps >= self.max_lifetime_steps:
            self.leave(context)
            return

        contact = self.find_contact(context)
        if contact is not None and contact is not self.contact:
            contact.receive_contact(self, context)
        self.contact = contact
        self.state = self.contact_state if contact is not None else self.free_state

        if not self.is_held(context):
            self.move(context)
        if self.stopped:
            return
        self.active_steps += 1
        if self.tracking:
            self.track.time_tracked += 1
            self.track.end = self.position

    def find_contact(self, context) -> Optional[StromalCell]:
        """Nearest live, activated stromal cell touching this cell."""
        env = context.environment
        reach = (self.cell_diameter + context.stromal_diameter) / 2
        nearest = None
        nearest_distance = math.inf
        for other in env.neighbors_within_radius(self.position[0], self.position[1], reach):
            if not isinstance(other, StromalCell) or other.stopped:
                continue
            if other.state in (StromalState.INACTIVE, StromalState.REMOVED):
                continue
            distance = env.distance(self.position, other.position)
            if distance <= (self.cell_diameter + other.cell_diameter) / 2 and distance < nearest_distance:
                nearest = other
                nearest_distance = distance
        return nearest

    def is_held(self, context) -> bool:
        """Roll adhesion against the contacted stromal cell's adhesion factor."""
        if self.contact is None:
            return False
        integrin = self.find_expressor(AdhesionExpressor)
        factor = self.contact.find_expressor(AdhesionFactorExpressor)
        if integrin is None or factor is None:
            return False
        return integrin.compute_effect(factor, context.rng)

    def move(self, context) -> None:
        env = context.environment
        receptor = self.find_expressor(ChemokineReceptor)
        x, y = self.position
        if receptor is not None:
            angle = receptor.choose_direction(context, x, y)
        else:
            angle = sector_angle(NO_BIAS, context.rng)
        nx = x + self.speed * math.cos(angle)
        ny = y + self.speed * math.sin(angle)
        if not env.contains_x(nx):
            self.leave(context)
            return
        self.position = (nx, env.wrap_y(ny))
        env.relocate(self)
        if self.tracking:
            self.track.length += self.speed

    def leave(self, context) -> None:
        """Exit the tract: stop and detach from the field."""
        self.stop(context)
        context.environment.remove(self)
        context.population[f"{self.cell_type}_exited"] += 1
        logger.debug("%s left the tract at step %d", self, context.step_count)


class LTinCell(MigratingCell):
    """Lymphoid tissue inducer precursor."""

    cell_type = "LTin"
    free_state = 4
    contact_state = 5


class LTiCell(MigratingCell):
    """Lymphoid tissue inducer; the cell counted in patch statistics."""

    cell_type = "LTi"
    free_state = 7
    contact_state = 8
    responder = True
