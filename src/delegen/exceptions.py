"""Error taxonomy for delegation generation."""

from __future__ import annotations


class DelegationError(Exception):
    """Base class for every failure raised while generating a delegate base."""

    def __init__(
        self,
        message: str,
        *,
        declaration: str = "",
        location: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.declaration = declaration
        self.location = location

    @property
    def kind(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        prefix = ""
        if self.location:
            prefix = f"{self.location}: "
        elif self.declaration:
            prefix = f"{self.declaration}: "
        return f"{prefix}{self.message}"


class ConfigurationError(DelegationError):
    """The delegation marker payload is malformed.

    Raised when both or neither of the ``value``/``multi`` slots are given,
    when a reference is not a type expression, or when the request names no
    contract once ``None`` sentinels are dropped.
    """


class ResolutionError(DelegationError):
    """Requested contracts do not line up with the implemented contracts."""


class CollisionError(DelegationError):
    """Two delegated contracts require an operation with the same name."""


class InternalStateError(DelegationError):
    """A host-integration defect, e.g. a toolchain queried before loading."""

    def __init__(self, message: str, *, env: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.env = dict(env or {})


class EmissionError(DelegationError):
    """The emission backend could not durably write a generated module."""
