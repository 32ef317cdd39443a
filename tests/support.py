from __future__ import annotations

from PatchSimulation.config import (
    EnvironmentConfig,
    ExpressorSpec,
    MigratingCellConfig,
    SimulationConfig,
    StromalCellConfig,
)
from PatchSimulation.context import SimulationContext
from PatchSimulation.expressors import AdhesionFactorExpressor, ChemokineLigand
from PatchSimulation.grid import OverlayGrid
from PatchSimulation.migrating import LTiCell, LTinCell
from PatchSimulation.stromal import StromalCell, StromalState

ACTIVATED_STATES = (
    StromalState.IMMATURE_ACTIVE,
    StromalState.ADHESION_EXPRESSING,
    StromalState.ACTIVE_EXPRESSING,
    StromalState.DIVIDING,
)


def make_environment(width=100.0, height=100.0, target_width=None, target_height=None, growth_hours=1.0, delay=0.0):
    return EnvironmentConfig(
        initial_length=width,
        initial_circumference=height,
        target_length=width if target_width is None else target_width,
        target_circumference=height if target_height is None else target_height,
        growth_hours=growth_hours,
        growth_delay_hours=delay,
    )


def organizer_config(**overrides):
    values = dict(
        key="LTo",
        density_percent=5.0,
        ret_ligand_percent=10.0,
        immature_active_hours=12.0,
        division_hours=12.0,
        cell_diameter=6.0,
        expressors=(
            ExpressorSpec("VCAM_ICAM_MAdCAM", {"adhesion_slope": 1.0}),
            ExpressorSpec("CXCL13_CCL19_CCL21", {"linear_adjust": 0.5, "max_expression_value": 0.04}),
        ),
    )
    values.update(overrides)
    return StromalCellConfig(**values)


def lti_config(**overrides):
    values = dict(
        key="LTi",
        area_percent=3.0,
        input_hours=72.0,
        expressors=(
            ExpressorSpec("A4b1_a4b7", {"max_adhesion_probability": 0.65}),
            ExpressorSpec("CXCR5_CCR7", {"effect_threshold": 0.1}),
        ),
    )
    values.update(overrides)
    return MigratingCellConfig(**values)


def make_config(environment=None, **overrides):
    values = dict(
        seconds_per_step=60.0,
        simulation_hours=1.0,
        random_seed=7,
        environment=environment or make_environment(),
    )
    values.update(overrides)
    return SimulationConfig(**values)


def make_context(width=100.0, height=100.0, seed=7, with_grid=True, **config_overrides):
    config = make_config(environment=make_environment(width, height), random_seed=seed, **config_overrides)
    context = SimulationContext(config)
    context.stromal_diameter = 6.0
    if with_grid:
        context.stromal_grid = OverlayGrid(int(width / 6.0), int(height / 6.0))
    return context


def add_organizer(
    context,
    x,
    y,
    state=StromalState.ACTIVE_EXPRESSING,
    linear_adjust=0.5,
    sig_threshold=3.0,
    grid_location=None,
    division_interval_steps=720,
    immature_active_steps=720,
    maturation_contacts=1,
    adhesion_level=0.0,
):
    expressors = [
        AdhesionFactorExpressor(adhesion_slope=1.0, expression_level=adhesion_level),
        ChemokineLigand(linear_adjust=linear_adjust, max_expression_value=0.04, sigmoid_threshold=sig_threshold),
    ]
    if grid_location is None:
        grid_location = (int(x / 6.0), int(y / 6.0))
    cell = StromalCell(
        position=(x, y),
        grid_location=grid_location,
        initially_active=False,
        immature_active_steps=immature_active_steps,
        division_interval_steps=division_interval_steps,
        maturation_contacts=maturation_contacts,
        expressors=expressors,
    )
    cell.state = int(state)
    if context.stromal_grid is not None:
        context.stromal_grid.set(*grid_location, cell)
    context.environment.relocate(cell)
    context.register_stromal(cell)
    if cell.state in ACTIVATED_STATES:
        context.register_active(cell)
    context.schedule(cell)
    return cell


def add_lti(context, x, y, speed=1.0, expressors=None):
    cell = LTiCell(position=(x, y), speed=speed, expressors=expressors)
    context.environment.relocate(cell)
    context.register_migrating(cell)
    context.schedule(cell)
    return cell


def add_ltin(context, x, y, speed=1.0, expressors=None):
    cell = LTinCell(position=(x, y), speed=speed, expressors=expressors)
    context.environment.relocate(cell)
    context.register_migrating(cell)
    context.schedule(cell)
    return cell
