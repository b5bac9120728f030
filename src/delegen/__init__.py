"""delegen package root."""

from delegen.exceptions import (
    CollisionError,
    ConfigurationError,
    DelegationError,
    EmissionError,
    InternalStateError,
    ResolutionError,
)
from delegen.invariants import never
from delegen.markers import delegate

__all__ = [
    "__version__",
    "CollisionError",
    "ConfigurationError",
    "DelegationError",
    "EmissionError",
    "InternalStateError",
    "ResolutionError",
    "delegate",
    "never",
]

__version__ = "0.1.0"
