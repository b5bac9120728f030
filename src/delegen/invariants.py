"""Invariant markers for delegen."""

from __future__ import annotations

from typing import NoReturn

from delegen.exceptions import InternalStateError


def never(reason: str = "", **env: object) -> NoReturn:
    """Mark a code path as unreachable for well-integrated hosts.

    Reaching it is an integration defect, surfaced as ``InternalStateError``.
    The env payload is attached to the error for diagnostics only.
    """
    raise InternalStateError(reason or "unreachable code reached", env=env)

