from __future__ import annotations

import pytest

from PatchSimulation.expressors import AdhesionFactorExpressor, ChemokineLigand
from PatchSimulation.migrating import LTiCell, LTinCell
from PatchSimulation.stromal import DecoyCell, StromalCell, StromalState

from support import add_organizer, make_context


def _at(context, col, row, **kwargs):
    d = context.stromal_diameter
    return add_organizer(context, col * d + d / 2, row * d + d / 2, grid_location=(col, row), **kwargs)


def _ring(col, row):
    return [(col + dx, row + dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1) if (dx, dy) != (0, 0)]


def test_division_skips_occupied_cells():
    context = make_context(width=30.0, height=30.0)
    parent = _at(context, 2, 2)
    neighbors = {loc: _at(context, *loc) for loc in _ring(2, 2)}

    daughter = parent.divide(context)

    assert daughter is not None
    assert daughter.grid_location not in neighbors
    assert context.stromal_grid.get(*daughter.grid_location) is daughter
    for loc, cell in neighbors.items():
        assert context.stromal_grid.get(*loc) is cell
        assert cell.state == StromalState.ACTIVE_EXPRESSING
    assert daughter.state == StromalState.ACTIVE_EXPRESSING
    assert daughter in context.active_stromal_cells
    assert daughter.expressors is parent.expressors


def test_division_converts_inactive_sibling_first():
    context = make_context(width=30.0, height=30.0)
    parent = _at(context, 2, 2)
    parent.active_steps = 5
    sibling = _at(context, 2, 3, state=StromalState.INACTIVE)
    registered = len(context.stromal_cells)

    daughter = parent.divide(context)

    assert daughter is sibling
    assert len(context.stromal_cells) == registered
    assert sibling.state == StromalState.ACTIVE_EXPRESSING
    assert sibling.active_steps == 6
    assert sibling.expressors is parent.expressors
    assert sibling in context.active_stromal_cells


def test_daughter_position_follows_grid_spacing():
    context = make_context(width=30.0, height=30.0)
    parent = _at(context, 2, 2)
    daughter = parent.divide(context)
    col, row = daughter.grid_location
    assert daughter.position == pytest.approx((col * 6.0 + 3.0, row * 6.0 + 3.0))
    assert context.environment.field.location_of(daughter) == pytest.approx(daughter.position)


def test_blocked_division_is_deferred_until_space_frees():
    context = make_context(width=18.0, height=18.0, max_division_radius=1)
    parent = _at(context, 1, 1, division_interval_steps=2)
    neighbors = [_at(context, *loc) for loc in _ring(1, 1)]
    parent.active_steps = 2

    parent.step(context)
    assert parent.state == StromalState.DIVIDING
    assert len(context.stromal_cells) == 9

    freed = neighbors[0]
    freed.remove(context)
    parent.step(context)

    assert parent.state == StromalState.ACTIVE_EXPRESSING
    assert context.stromal_grid.get(*freed.grid_location) is not None
    assert context.stromal_grid.get(*freed.grid_location) is not freed
    assert len(context.stromal_cells) == 10


def test_division_happens_every_interval_of_active_time():
    context = make_context(width=30.0, height=30.0)
    parent = _at(context, 2, 2, division_interval_steps=3)
    for _ in range(4):
        parent.step(context)
    assert len(context.stromal_cells) == 2
    for _ in range(3):
        parent.step(context)
    assert len(context.stromal_cells) == 3


def test_immature_cell_is_removed_after_its_window():
    context = make_context(width=30.0, height=30.0)
    cell = _at(context, 1, 1, state=StromalState.IMMATURE_ACTIVE, immature_active_steps=2)
    context.register_active(cell)
    for _ in range(3):
        cell.step(context)
    assert cell.state == StromalState.IMMATURE_ACTIVE

    cell.step(context)

    assert cell.state == StromalState.REMOVED
    assert cell.stopped
    assert context.stromal_grid.is_free(1, 1)
    assert cell not in context.environment.field
    assert cell not in context.active_stromal_cells
    assert context.population["LTo_removed"] == 1


def test_inactive_cell_does_nothing():
    context = make_context(width=30.0, height=30.0)
    cell = _at(context, 1, 1, state=StromalState.INACTIVE, division_interval_steps=1)
    for _ in range(5):
        cell.step(context)
    assert cell.active_steps == 0
    assert len(context.stromal_cells) == 1


def test_stromal_cell_stops_at_run_end():
    context = make_context(width=30.0, height=30.0)
    cell = _at(context, 1, 1)
    context.step_count = context.total_steps
    cell.step(context)
    assert cell.stopped
    assert cell.active_steps == 0


def test_contacts_drive_maturation_and_expression():
    context = make_context(width=30.0, height=30.0)
    cell = _at(context, 1, 1, state=StromalState.IMMATURE_ACTIVE, maturation_contacts=2)
    factor = cell.find_expressor(AdhesionFactorExpressor)
    ligand = cell.find_expressor(ChemokineLigand)
    ltin = LTinCell(position=cell.position, speed=1.0)
    lti = LTiCell(position=cell.position, speed=1.0)

    cell.receive_contact(lti, context)
    assert cell.state == StromalState.IMMATURE_ACTIVE
    assert cell.contacts == 0

    cell.receive_contact(ltin, context)
    assert cell.state == StromalState.ADHESION_EXPRESSING
    assert factor.expression_level == pytest.approx(0.05)

    cell.receive_contact(lti, context)
    assert cell.state == StromalState.ADHESION_EXPRESSING
    assert cell.contacts == 1

    cell.receive_contact(lti, context)
    assert cell.state == StromalState.ACTIVE_EXPRESSING
    assert cell in context.active_stromal_cells
    assert ligand.linear_adjust == pytest.approx(0.5)

    cell.receive_contact(lti, context)
    assert cell.contacts == 3
    assert factor.expression_level == pytest.approx(0.2)
    assert ligand.linear_adjust == pytest.approx(0.495)


def test_clone_copies_state_and_shares_expressors():
    parent = StromalCell((3.0, 3.0), (0, 0), True, 10, 10, expressors=[AdhesionFactorExpressor(1.0)])
    parent.state = StromalState.ACTIVE_EXPRESSING
    parent.active_steps = 41
    target = StromalCell((9.0, 3.0), (1, 0), False, 10, 10)

    parent.clone_state_into(target)

    assert target.state == StromalState.ACTIVE_EXPRESSING
    assert target.active_steps == 42
    assert target.expressors is parent.expressors


def test_decoy_ignores_contacts_and_expires():
    context = make_context(width=30.0, height=30.0)
    decoy = DecoyCell((9.0, 9.0), (1, 1), True, immature_active_steps=2, division_interval_steps=100)
    context.stromal_grid.set(1, 1, decoy)
    context.environment.relocate(decoy)
    context.register_stromal(decoy)
    assert decoy.state == StromalState.DECOY

    decoy.receive_contact(LTiCell(position=decoy.position, speed=1.0), context)
    assert decoy.contacts == 0
    for _ in range(4):
        decoy.step(context)
    assert decoy.state == StromalState.REMOVED
    assert context.population["Decoy_removed"] == 1


def test_chemokine_sources_come_from_the_active_registry():
    context = make_context(width=30.0, height=30.0)
    unregistered = _at(context, 0, 0, state=StromalState.INACTIVE)
    unregistered.state = StromalState.ACTIVE_EXPRESSING
    cell = _at(context, 2, 2, state=StromalState.IMMATURE_ACTIVE, maturation_contacts=1)
    positions, _, _ = context.chemokine_sources()
    assert len(positions) == 0

    cell.receive_contact(LTinCell(position=cell.position, speed=1.0), context)
    cell.receive_contact(LTiCell(position=cell.position, speed=1.0), context)
    assert cell.state == StromalState.ACTIVE_EXPRESSING
    positions, linear_adjust, _ = context.chemokine_sources()
    assert [tuple(p) for p in positions] == [cell.position]
    assert linear_adjust.tolist() == [0.5]

    cell.remove(context)
    positions, _, _ = context.chemokine_sources()
    assert len(positions) == 0
    assert cell not in context.active_stromal_cells
