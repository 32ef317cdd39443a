"""Cell-type registry resolving configured class names to agent classes."""

from __future__ import annotations

from typing import Dict, Type

from PatchSimulation.errors import ConfigurationError
from PatchSimulation.migrating import LTiCell, LTinCell, MigratingCell
from PatchSimulation.stromal import DecoyCell, StromalCell

AGENT_REGISTRY: Dict[str, type] = {
    "LTo": StromalCell,
    "Decoy": DecoyCell,
    "LTin": LTinCell,
    "LTi": LTiCell,
}


def resolve_agent(key: str) -> type:
    try:
        return AGENT_REGISTRY[key]
    except KeyError as exc:
        raise ConfigurationError(f"Unknown cell type {key!r}; known: {sorted(AGENT_REGISTRY)}") from exc


def resolve_stromal(key: str) -> Type[StromalCell]:
    cls = resolve_agent(key)
    if not issubclass(cls, StromalCell):
        raise ConfigurationError(f"Cell type {key!r} is not a stromal cell")
    return cls


def resolve_migrating(key: str) -> Type[MigratingCell]:
    cls = resolve_agent(key)
    if not issubclass(cls, MigratingCell):
        raise ConfigurationError(f"Cell type {key!r} is not a migrating cell")
    return cls
