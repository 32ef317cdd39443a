"""I/O utilities for simulation input/output.

Handles loading the YAML configuration and writing result tables as CSV and
as equivalent XML documents.
"""

from __future__ import annotations

import csv
import pathlib
import xml.etree.ElementTree as ET
from typing import Any, Mapping, Sequence

import yaml

from PatchSimulation.config import (
    EnvironmentConfig,
    ExpressorSpec,
    MigratingCellConfig,
    SimulationConfig,
    StromalCellConfig,
    parse_output_hours,
    parse_tracking_ranges,
)
from PatchSimulation.errors import ConfigurationError
from PatchSimulation.expressors import build_expressor
from PatchSimulation.registry import resolve_migrating, resolve_stromal


# -----------------------------------------------------------------------------
# Configuration loading
# -----------------------------------------------------------------------------

def _resolve_path(value: str, base_dir: pathlib.Path) -> pathlib.Path:
    path = pathlib.Path(value)
    if not path.is_absolute():
        path = base_dir / path
    return path.resolve()


def _require(raw: Mapping[str, Any], key: str, section: str = "config") -> Any:
    if key not in raw:
        raise ConfigurationError(f"Missing required {section} field: {key}")
    return raw[key]


def _number(raw: Mapping[str, Any], key: str, section: str, default: Any = ...) -> float:
    value = _require(raw, key, section) if default is ... else raw.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigurationError(f"{section}.{key} must be a number; got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{section}.{key} must be a number; got {value!r}") from exc


def _flag(raw: Mapping[str, Any], key: str) -> bool:
    value = raw.get(key, False)
    if not isinstance(value, bool):
        raise ConfigurationError(f"{key} must be a boolean")
    return value


def _mapping(value: Any, label: str) -> Mapping[str, Any]:
    if not isinstance(value, dict):
        raise ConfigurationError(f"{label} must be a mapping")
    return value


def _expressor_specs(raw_list: Any, owner: str) -> tuple[ExpressorSpec, ...]:
    if raw_list is None:
        return ()
    if not isinstance(raw_list, list):
        raise ConfigurationError(f"{owner}.expressors must be a list")
    specs = []
    for entry in raw_list:
        entry = _mapping(entry, f"{owner}.expressors entry")
        key = str(_require(entry, "type", f"{owner}.expressors"))
        params = {k: v for k, v in entry.items() if k != "type"}
        for name, value in params.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"{owner}.{key}.{name} must be a number; got {value!r}")
        # Instantiate once so unknown types and bad values fail at load time.
        build_expressor(key, params)
        specs.append(ExpressorSpec(key=key, params={k: float(v) for k, v in params.items()}))
    return tuple(specs)


def _environment_config(raw: Mapping[str, Any]) -> EnvironmentConfig:
    section = "environment"
    return EnvironmentConfig(
        initial_length=_number(raw, "initial_length", section),
        initial_circumference=_number(raw, "initial_circumference", section),
        target_length=_number(raw, "target_length", section),
        target_circumference=_number(raw, "target_circumference", section),
        growth_hours=_number(raw, "growth_hours", section),
        growth_delay_hours=_number(raw, "growth_delay_hours", section, 0.0),
    )


def _stromal_config(raw: Mapping[str, Any]) -> StromalCellConfig:
    key = str(_require(raw, "type", "stromal_cells"))
    resolve_stromal(key)
    section = f"stromal_cells.{key}"
    return StromalCellConfig(
        key=key,
        density_percent=_number(raw, "density_percent", section),
        ret_ligand_percent=_number(raw, "ret_ligand_percent", section),
        immature_active_hours=_number(raw, "immature_active_hours", section),
        division_hours=_number(raw, "division_hours", section),
        maturation_contacts=int(_number(raw, "maturation_contacts", section, 1)),
        cell_diameter=_number(raw, "cell_diameter", section, 6.0),
        expressors=_expressor_specs(raw.get("expressors"), section),
    )


def _migrating_config(raw: Mapping[str, Any]) -> MigratingCellConfig:
    key = str(_require(raw, "type", "migrating_cells"))
    resolve_migrating(key)
    section = f"migrating_cells.{key}"
    return MigratingCellConfig(
        key=key,
        area_percent=_number(raw, "area_percent", section),
        input_hours=_number(raw, "input_hours", section),
        input_delay_hours=_number(raw, "input_delay_hours", section, 0.0),
        input_rate_graph=str(raw.get("input_rate_graph", "constant")).lower(),
        input_rate_constant=_number(raw, "input_rate_constant", section, None),
        speed_min_per_minute=_number(raw, "speed_min_per_minute", section, 0.95),
        speed_max_per_minute=_number(raw, "speed_max_per_minute", section, 2.2),
        cell_diameter=_number(raw, "cell_diameter", section, 4.0),
        max_lifetime_hours=_number(raw, "max_lifetime_hours", section, None),
        expressors=_expressor_specs(raw.get("expressors"), section),
    )


def build_simulation_config(raw: Mapping[str, Any], base_dir: pathlib.Path | None = None) -> SimulationConfig:
    """Validate a parsed configuration mapping and build the run configuration."""
    raw = _mapping(raw, "Config")
    base_dir = pathlib.Path.cwd() if base_dir is None else base_dir
    out_dir = _resolve_path(str(raw.get("out_dir", "results")), base_dir)
    stromal_raw = raw.get("stromal_cells") or []
    migrating_raw = raw.get("migrating_cells") or []
    if not isinstance(stromal_raw, list) or not isinstance(migrating_raw, list):
        raise ConfigurationError("stromal_cells and migrating_cells must be lists")

    return SimulationConfig(
        seconds_per_step=_number(raw, "seconds_per_step", "config"),
        simulation_hours=_number(raw, "simulation_hours", "config"),
        random_seed=int(_number(raw, "random_seed", "config")),
        environment=_environment_config(_mapping(_require(raw, "environment"), "environment")),
        stromal_cells=tuple(_stromal_config(_mapping(s, "stromal_cells entry")) for s in stromal_raw),
        migrating_cells=tuple(_migrating_config(_mapping(m, "migrating_cells entry")) for m in migrating_raw),
        out_dir=str(out_dir),
        run_replicate=str(raw.get("run_replicate", "1")),
        cell_tracking_enabled=_flag(raw, "cell_tracking_enabled"),
        tracking_hour_ranges=parse_tracking_ranges(raw.get("tracking_hour_ranges")),
        patch_stats_enabled=_flag(raw, "patch_stats_enabled"),
        patch_stats_output_hours=parse_output_hours(raw.get("patch_stats_output_hours")),
        snapshots_enabled=_flag(raw, "snapshots_enabled"),
        max_division_radius=int(_number(raw, "max_division_radius", "config", 10)),
        max_placement_attempts=int(_number(raw, "max_placement_attempts", "config", 10000)),
    )


def load_simulation_config(path: str | pathlib.Path) -> SimulationConfig:
    """Load and validate simulation configuration from YAML."""
    path = pathlib.Path(path)
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file must contain a YAML mapping: {path}")
    return build_simulation_config(raw, path.resolve().parent)


# -----------------------------------------------------------------------------
# Result output
# -----------------------------------------------------------------------------

def save_table_csv(rows: Sequence[Mapping[str, object]], fieldnames: Sequence[str], path: str | pathlib.Path) -> pathlib.Path:
    """Save result rows to CSV. An empty table still gets its header."""
    path_obj = pathlib.Path(path)
    path_obj.parent.mkdir(parents=True, exist_ok=True)

    with open(path_obj, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=list(fieldnames))
        writer.writeheader()
        for row in rows:
            writer.writerow(row)
    return path_obj


def save_records_xml(
    rows: Sequence[Mapping[str, object]],
    fieldnames: Sequence[str],
    path: str | pathlib.Path,
    root_tag: str = "SimulationResult",
    record_tag: str = "cell",
) -> pathlib.Path:
    """Save result rows as one ``record_tag`` element per row under ``root_tag``."""
    root = ET.Element(root_tag)
    for row in rows:
        record = ET.SubElement(root, record_tag)
        for name in fieldnames:
            ET.SubElement(record, name).text = str(row[name])
    tree = ET.ElementTree(root)
    ET.indent(tree, space="     ")

    path_obj = pathlib.Path(path)
    path_obj.parent.mkdir(parents=True, exist_ok=True)
    tree.write(path_obj, encoding="utf-8", xml_declaration=True)
    return path_obj


def load_table_csv(path: str | pathlib.Path) -> list[dict[str, str]]:
    """Load a result table written by ``save_table_csv``."""
    with open(path, "r", newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        return [dict(row) for row in reader]
