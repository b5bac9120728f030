"""Runtime surface of the delegation marker.

The generator never imports user code to find marked classes; it reads the
decorator from source. At runtime the decorator only records the request.
"""

from __future__ import annotations

from typing import Callable, Sequence, TypeVar

ClassT = TypeVar("ClassT", bound=type)

REQUEST_ATTRIBUTE = "__delegen_request__"


def delegate(
    value: type | None = None,
    *,
    multi: Sequence[type] | None = None,
) -> Callable[[ClassT], ClassT]:
    """Marker decorator requesting a generated delegating base class.

    Exactly one of ``value`` or ``multi`` must be given.
    """

    def _mark(cls: ClassT) -> ClassT:
        requested = [value] if value is not None else list(multi or ())
        setattr(cls, REQUEST_ATTRIBUTE, tuple(requested))
        return cls

    return _mark
