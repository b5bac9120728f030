from __future__ import annotations

import keyword
import re
from typing import Iterable

from delegen.config import DelegationSettings

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def snake_case(value: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9_]", "", value)
    return _CAMEL_BOUNDARY.sub("_", cleaned).lower()


def generated_class_name(simple_name: str, settings: DelegationSettings) -> str:
    return f"{settings.prefix}{simple_name}"


def generated_module_name(simple_name: str, settings: DelegationSettings) -> str:
    return f"{settings.module_prefix}{snake_case(simple_name)}"


def field_name(index: int, settings: DelegationSettings) -> str:
    return f"{settings.field_prefix}{index}"


def unique_local_name(preferred: str, existing: Iterable[str]) -> str:
    """Return ``preferred`` or the first free ``preferred_<n>`` variant."""
    taken = set(existing)
    base = preferred
    if keyword.iskeyword(base):
        base = f"{base}_"
    name = base
    counter = 1
    while name in taken:
        name = f"{base}_{counter}"
        counter += 1
    return name
