from __future__ import annotations

import math

import pytest

from PatchSimulation.errors import InvariantViolation
from PatchSimulation.expressors import AdhesionExpressor, ChemokineReceptor
from PatchSimulation.migrating import LTiCell, LTinCell
from PatchSimulation.stromal import StromalState

from support import add_lti, add_ltin, add_organizer, lti_config, make_context


def _fixed_heading(angle):
    """Receptor that always returns ``angle``."""
    receptor = ChemokineReceptor(effect_threshold=0.1)
    receptor.choose_direction = lambda context, x, y: angle
    return receptor


def test_speed_is_drawn_within_configured_bounds():
    context = make_context()
    config = lti_config(speed_min_per_minute=1.0, speed_max_per_minute=2.0)
    speeds = [LTiCell.from_config(config, context, (10.0, 10.0)).speed for _ in range(100)]
    assert min(speeds) >= 1.0
    assert max(speeds) <= 2.0
    cell = LTiCell.from_config(config, context, (10.0, 10.0))
    assert cell.find_expressor(ChemokineReceptor).effect_threshold == 0.1
    assert cell.find_expressor(AdhesionExpressor).max_adhesion_probability == 0.65


def test_negative_speed_is_rejected():
    with pytest.raises(InvariantViolation):
        LTinCell(position=(1.0, 1.0), speed=-1.0)


def test_free_cell_moves_one_speed_length():
    context = make_context()
    cell = add_ltin(context, 50.0, 50.0, speed=1.5)
    cell.step(context)
    assert math.dist(cell.position, (50.0, 50.0)) == pytest.approx(1.5)
    assert context.environment.field.location_of(cell) == pytest.approx(cell.position)
    assert cell.state == LTinCell.free_state
    assert cell.active_steps == 1


def test_circumference_wraps():
    context = make_context()
    cell = add_lti(context, 50.0, 99.5, speed=1.0, expressors=[_fixed_heading(math.pi / 2)])
    cell.step(context)
    assert cell.position == pytest.approx((50.0, 0.5))
    assert not cell.stopped


def test_leaving_the_tract_end_removes_the_cell():
    context = make_context()
    cell = add_lti(context, 99.5, 50.0, speed=1.0, expressors=[_fixed_heading(0.0)])
    cell.step(context)
    assert cell.stopped
    assert cell not in context.environment.field
    assert context.population["LTi_exited"] == 1
    assert cell.active_steps == 0
    assert context.live_migrating_cells("LTi") == []


def test_contact_is_reported_once_and_sets_contact_state():
    context = make_context()
    organizer = add_organizer(context, 50.0, 50.0, state=StromalState.IMMATURE_ACTIVE)
    cell = add_ltin(context, 51.0, 50.0, speed=0.1)
    cell.step(context)
    assert cell.contact is organizer
    assert cell.state == LTinCell.contact_state
    assert organizer.state == StromalState.ADHESION_EXPRESSING
    level = organizer.expressors[0].expression_level
    cell.step(context)
    assert organizer.expressors[0].expression_level == level


def test_inactive_stromal_cells_are_not_contacts():
    context = make_context()
    add_organizer(context, 50.0, 50.0, state=StromalState.INACTIVE)
    cell = add_ltin(context, 51.0, 50.0, speed=0.1)
    assert cell.find_contact(context) is None


def test_adhesion_holds_the_cell_in_place():
    context = make_context()
    add_organizer(context, 50.0, 50.0, adhesion_level=1.0)
    cell = add_lti(context, 52.0, 50.0, speed=2.0, expressors=[AdhesionExpressor(1.0), _fixed_heading(0.0)])
    for _ in range(5):
        cell.step(context)
    assert cell.position == (52.0, 50.0)
    assert cell.state == LTiCell.contact_state
    assert cell.active_steps == 5


def test_tracking_accumulates_path_length():
    context = make_context()
    cell = add_lti(context, 20.0, 50.0, speed=1.25, expressors=[_fixed_heading(0.0)])
    cell.track.reset(cell.position)
    cell.tracking = True
    for _ in range(3):
        cell.step(context)
    assert cell.track.length == pytest.approx(3.75)
    assert cell.track.time_tracked == 3
    assert cell.track.end == pytest.approx((23.75, 50.0))


def test_lifetime_limit_removes_the_cell():
    context = make_context()
    cell = add_ltin(context, 50.0, 50.0, speed=0.1)
    cell.max_lifetime_steps = 2
    for _ in range(3):
        cell.step(context)
    assert cell.stopped
    assert context.population["LTin_exited"] == 1


def test_migrating_cell_stops_at_run_end():
    context = make_context()
    cell = add_ltin(context, 50.0, 50.0)
    context.step_count = context.total_steps
    cell.step(context)
    assert cell.stopped
    assert cell.position == (50.0, 50.0)
