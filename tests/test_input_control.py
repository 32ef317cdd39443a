from __future__ import annotations

import logging
import math

import pytest

from PatchSimulation.errors import ConfigurationError, PlacementExhaustion
from PatchSimulation.input_control import CellInputController, base_input_rate, graph_input_rate
from PatchSimulation.migrating import LTiCell

from support import add_ltin, lti_config, make_context


def test_base_rate_covers_area_in_one_day():
    config = lti_config(area_percent=5.0, cell_diameter=6.0)
    # 40 x 25 cells, 5 % of them, spread over 1440 one-minute steps.
    assert base_input_rate(config, 240.0, 150.0, 60.0) == pytest.approx(50 / 1440)


def test_graph_rates_are_curve_increments():
    assert graph_input_rate("exp", 1.5, 3) == pytest.approx(1.5 ** 3 - 1.5 ** 2)
    assert graph_input_rate("sqrt", 2.0, 1) == pytest.approx(math.sqrt(2.0))
    with pytest.raises(ConfigurationError):
        graph_input_rate("linear", 1.0, 1)


def test_fractional_rates_carry_over():
    context = make_context()
    config = lti_config()
    controller = CellInputController(context, (config,))
    controller.rates[config.key] = 0.5
    admitted = [controller.admissions_for(config, step) for step in range(6)]
    assert admitted == [0, 1, 0, 1, 0, 1]

    controller.rates[config.key] = 2.25
    assert sum(controller.admissions_for(config, step) for step in range(4)) == 9


def test_admission_window_is_exclusive():
    context = make_context()
    config = lti_config(input_delay_hours=1.0, input_hours=2.0)
    controller = CellInputController(context, (config,))
    assert not controller.in_window(config, 3600.0)
    assert controller.in_window(config, 3660.0)
    assert not controller.in_window(config, 7200.0)


def test_step_admits_registered_cells():
    context = make_context(simulation_hours=2.0)
    config = lti_config(input_delay_hours=0.0)
    controller = CellInputController(context, (config,))
    controller.rates[config.key] = 3.0
    context.step_count = 1

    admitted = controller.step(context)

    assert len(admitted) == 3
    assert all(isinstance(cell, LTiCell) for cell in admitted)
    assert context.population["LTi"] == 3
    for cell in admitted:
        assert cell in context.environment.field
        assert 0.0 <= cell.position[0] < 100.0
    for a in admitted:
        for b in admitted:
            if a is not b:
                assert math.dist(a.position, b.position) > config.cell_diameter


def test_nothing_is_admitted_before_the_delay():
    context = make_context()
    config = lti_config(input_delay_hours=0.5)
    controller = CellInputController(context, (config,))
    controller.rates[config.key] = 3.0
    context.step_count = 10
    assert controller.step(context) == []


def test_crowded_tract_exhausts_placement(caplog):
    context = make_context(width=2.0, height=2.0, with_grid=False, max_placement_attempts=20)
    add_ltin(context, 1.0, 1.0)
    config = lti_config()
    controller = CellInputController(context, (config,))
    with pytest.raises(PlacementExhaustion):
        controller.find_free_position(context, config.cell_diameter)

    controller.rates[config.key] = 1.0
    context.step_count = 1
    with caplog.at_level(logging.WARNING):
        assert controller.step(context) == []
    assert "Skipped LTi admission" in caplog.text
