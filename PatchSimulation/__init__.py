"""Agent-based simulation of Peyer's Patch organogenesis.

LTin and LTi cells migrate over a growing intestinal tract, respond to
chemokine gradients and adhesion factors expressed by stromal organizer (LTo)
cells, and aggregate into patches.

Main entry points:
- PatchSimulation.simulator: PatchSimulator class for programmatic use
- PatchSimulation.io: configuration loading and result writers
- PatchSimulation.config: run configuration dataclasses
- PatchSimulation.expressors: receptor and ligand models
- PatchSimulation.statistics: cell tracking and patch statistics
"""

from PatchSimulation.config import (
    EnvironmentConfig,
    ExpressorSpec,
    MigratingCellConfig,
    SimulationConfig,
    StromalCellConfig,
)
from PatchSimulation.context import SimulationContext
from PatchSimulation.errors import ConfigurationError, InvariantViolation, PlacementExhaustion
from PatchSimulation.expressors import (
    NO_BIAS,
    AdhesionExpressor,
    AdhesionFactorExpressor,
    ChemokineLigand,
    ChemokineReceptor,
    calc_chemo_level,
)
from PatchSimulation.io import load_simulation_config, save_records_xml, save_table_csv
from PatchSimulation.migrating import LTiCell, LTinCell, MigratingCell
from PatchSimulation.simulator import PatchSimulator
from PatchSimulation.stromal import DecoyCell, StromalCell, StromalState

__all__ = [
    # Core classes
    "PatchSimulator",
    "SimulationContext",
    "SimulationConfig",
    "EnvironmentConfig",
    "StromalCellConfig",
    "MigratingCellConfig",
    "ExpressorSpec",
    "StromalCell",
    "StromalState",
    "DecoyCell",
    "MigratingCell",
    "LTinCell",
    "LTiCell",
    "AdhesionExpressor",
    "AdhesionFactorExpressor",
    "ChemokineLigand",
    "ChemokineReceptor",
    # Errors
    "ConfigurationError",
    "InvariantViolation",
    "PlacementExhaustion",
    # Functions
    "NO_BIAS",
    "calc_chemo_level",
    "load_simulation_config",
    "save_table_csv",
    "save_records_xml",
]
