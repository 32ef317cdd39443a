"""Error taxonomy for the patch simulation.

Configuration and invariant errors are fatal. Placement exhaustion is fatal
during setup but recoverable inside a tick, where the caller defers the action.
"""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Malformed, missing or unknown configuration value."""


class InvariantViolation(ValueError):
    """A parameter or computed quantity lies outside its valid domain."""


class PlacementExhaustion(RuntimeError):
    """No free grid cell or non-colliding position was found within the search bound."""
