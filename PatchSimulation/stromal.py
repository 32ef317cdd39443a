"""Grid-anchored stromal cells: organizers (LTo) and RET-ligand decoys.

Stromal cells occupy one cell of the stromal overlay grid each. Activated
organizers mature through contact with migrating cells, express chemokine
and adhesion factor, and divide into a neighboring grid cell at a fixed
interval of active time. Immature cells that fail to mature are removed.
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Optional, Tuple

from PatchSimulation.cell import Agent
from PatchSimulation.config import StromalCellConfig
from PatchSimulation.expressors import AdhesionFactorExpressor, ChemokineLigand, build_expressors
from PatchSimulation.grid import crosses_x_boundary

logger = logging.getLogger(__name__)


class StromalState(IntEnum):
    REMOVED = -1
    INACTIVE = 0
    IMMATURE_ACTIVE = 1
    ADHESION_EXPRESSING = 2
    ACTIVE_EXPRESSING = 3
    DECOY = 6
    DIVIDING = 9


IMMATURE_STATES = (StromalState.IMMATURE_ACTIVE, StromalState.ADHESION_EXPRESSING)
CHEMOKINE_STATES = (StromalState.ACTIVE_EXPRESSING, StromalState.DIVIDING)


class StromalCell(Agent):
    """Lymphoid tissue organizer (LTo)."""

    cell_type = "LTo"
    active_state = StromalState.IMMATURE_ACTIVE

    def __init__(
        self,
        position: Tuple[float, float],
        grid_location: Tuple[int, int],
        initially_active: bool,
        immature_active_steps: int,
        division_interval_steps: int,
        maturation_contacts: int = 1,
        cell_diameter: float = 6.0,
        expressors: Optional[list] = None,
        config: Optional[StromalCellConfig] = None,
    ) -> None:
        state = self.active_state if initially_active else StromalState.INACTIVE
        super().__init__(position, state, expressors)
        self.grid_location = (int(grid_location[0]), int(grid_location[1]))
        self.immature_active_steps = int(immature_active_steps)
        self.division_interval_steps = max(int(division_interval_steps), 1)
        self.maturation_contacts = int(maturation_contacts)
        self.cell_diameter = float(cell_diameter)
        self.config = config
        self.contacts = 0

    @classmethod
    def from_config(
        cls,
        config: StromalCellConfig,
        context,
        position: Tuple[float, float],
        grid_location: Tuple[int, int],
        initially_active: bool,
        expressors: Optional[list] = None,
    ) -> "StromalCell":
        if expressors is None:
            expressors = build_expressors(config.expressors)
        return cls(
            position=position,
            grid_location=grid_location,
            initially_active=initially_active,
            immature_active_steps=context.hours_to_steps(config.immature_active_hours),
            division_interval_steps=context.hours_to_steps(config.division_hours),
            maturation_contacts=config.maturation_contacts,
            cell_diameter=config.cell_diameter,
            expressors=expressors,
            config=config,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def is_immature(self) -> bool:
        return self.state in IMMATURE_STATES

    def is_division_due(self) -> bool:
        if self.state == StromalState.DIVIDING:
            return True
        if self.state < StromalState.ACTIVE_EXPRESSING:
            return False
        return self.active_steps > 0 and self.active_steps % self.division_interval_steps == 0

    def step(self, context) -> None:
        if self.stopped:
            return
        if context.is_finished():
            self.stop(context)
            return
        if self.state == StromalState.INACTIVE:
            return
        if self.is_immature() and self.active_steps > self.immature_active_steps:
            self.remove(context)
            return
        if self.is_division_due():
            daughter = self.divide(context)
            if daughter is None:
                self.on_division_deferred()
        self.active_steps += 1

    def on_division_deferred(self) -> None:
        self.state = StromalState.DIVIDING

    def remove(self, context) -> None:
        """Detach from the grid and field and leave the schedule."""
        self.state = StromalState.REMOVED
        self.stop(context)
        grid = context.stromal_grid
        if grid is not None and grid.get(*self.grid_location) is self:
            grid.clear(*self.grid_location)
        context.environment.remove(self)
        context.active_stromal_cells.pop(self, None)
        context.population[f"{self.cell_type}_removed"] += 1
        logger.debug("%s removed at step %d", self, context.step_count)

    # -------------------------------------------------------------------------
    # Division
    # -------------------------------------------------------------------------

    def _can_convert(self, occupant) -> bool:
        return (
            type(occupant) is type(self)
            and not occupant.stopped
            and occupant.state == StromalState.INACTIVE
        )

    def find_division_target(self, context) -> Optional[Tuple[Tuple[int, int], Optional["StromalCell"]]]:
        """Nearest grid cell to divide into: an inactive sibling first, else a free cell."""
        grid = context.stromal_grid
        col, row = self.grid_location
        for radius in range(1, context.config.max_division_radius + 1):
            blank = None
            for ncol, nrow in grid.moore_neighborhood(col, row, radius):
                if (ncol, nrow) == (col, row):
                    continue
                if crosses_x_boundary(col, ncol, radius, grid.width):
                    continue
                occupant = grid.get(ncol, nrow)
                if occupant is None:
                    if blank is None:
                        blank = (ncol, nrow)
                elif self._can_convert(occupant):
                    return (ncol, nrow), occupant
            if blank is not None:
                return blank, None
        return None

    def divide(self, context) -> Optional["StromalCell"]:
        """Divide into a neighboring grid cell; None when no space is within reach."""
        target = self.find_division_target(context)
        if target is None:
            logger.debug("%s found no space within radius %d", self, context.config.max_division_radius)
            return None
        if self.state == StromalState.DIVIDING:
            self.state = StromalState.ACTIVE_EXPRESSING
        (ncol, nrow), daughter = target
        if daughter is None:
            daughter = self._spawn_at(context, ncol, nrow)
        self.clone_state_into(daughter)
        if daughter.state == StromalState.ACTIVE_EXPRESSING:
            context.register_active(daughter)
        logger.debug("%s divided into grid cell (%d, %d)", self, ncol, nrow)
        return daughter

    def _spawn_at(self, context, col: int, row: int) -> "StromalCell":
        grid = context.stromal_grid
        env = context.environment
        x_adj = env.width / grid.width
        y_adj = env.height / grid.height
        position = (col * x_adj + self.cell_diameter / 2, row * y_adj + self.cell_diameter / 2)
        daughter = type(self)(
            position=position,
            grid_location=(col, row),
            initially_active=False,
            immature_active_steps=self.immature_active_steps,
            division_interval_steps=self.division_interval_steps,
            maturation_contacts=self.maturation_contacts,
            cell_diameter=self.cell_diameter,
            expressors=self.expressors,
            config=self.config,
        )
        grid.set(col, row, daughter)
        env.relocate(daughter)
        context.register_stromal(daughter)
        context.schedule(daughter)
        return daughter

    # -------------------------------------------------------------------------
    # Contact with migrating cells
    # -------------------------------------------------------------------------

    def _increment_adhesion(self) -> None:
        factor = self.find_expressor(AdhesionFactorExpressor)
        if factor is not None:
            factor.increment_expression()

    def receive_contact(self, migrating, context) -> None:
        """Respond to a new stable contact by an LTin or LTi cell."""
        if self.stopped or self.state in (StromalState.INACTIVE, StromalState.REMOVED):
            return
        if migrating.cell_type == "LTin":
            if self.state == StromalState.IMMATURE_ACTIVE:
                self.state = StromalState.ADHESION_EXPRESSING
                self._increment_adhesion()
        elif migrating.cell_type == "LTi":
            if self.state < StromalState.ADHESION_EXPRESSING:
                return
            self.contacts += 1
            self._increment_adhesion()
            if self.state == StromalState.ADHESION_EXPRESSING:
                if self.contacts >= self.maturation_contacts:
                    self.state = StromalState.ACTIVE_EXPRESSING
                    context.register_active(self)
                    logger.debug("%s matured after %d contacts", self, self.contacts)
            else:
                ligand = self.find_expressor(ChemokineLigand)
                if ligand is not None:
                    ligand.increase_expression()


class DecoyCell(StromalCell):
    """RET-ligand expressing non-stromal cell. Never matures or expresses chemokine."""

    cell_type = "Decoy"
    active_state = StromalState.DECOY

    def is_immature(self) -> bool:
        return self.state == StromalState.DECOY

    def is_division_due(self) -> bool:
        return self.active_steps > 0 and self.active_steps % self.division_interval_steps == 0

    def on_division_deferred(self) -> None:
        pass

    def receive_contact(self, migrating, context) -> None:
        return
