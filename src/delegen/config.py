from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from pathlib import Path
from typing import TypeAlias
import tomllib

DEFAULT_CONFIG_NAME = "delegen.toml"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]

COLLISION_POLICIES = ("first", "error")


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def delegation_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    data = load_config(root=root, config_path=config_path)
    section = data.get("delegation", {})
    return section if isinstance(section, dict) else {}


def _normalize_name_list(value: TomlValue) -> list[str]:
    items: list[str] = []
    if value is None:
        return items
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            if isinstance(item, str):
                items.extend([part.strip() for part in item.split(",") if part.strip()])
    return [item for item in items if item]


def _as_bool(value: TomlValue) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return False


def merge_payload(payload: TomlTable, defaults: TomlTable) -> TomlTable:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged


@dataclass(frozen=True)
class DelegationSettings:
    prefix: str = "Delegate_"
    module_prefix: str = "_delegate_"
    field_prefix: str = "delegate"
    markers: tuple[str, ...] = ("delegate",)
    exclude: frozenset[str] = field(
        default_factory=lambda: frozenset(
            {".git", ".venv", "__pycache__", "build", "dist"}
        )
    )
    on_collision: str = "first"
    allow_runtime_contracts: bool = True

    def is_excluded_dir(self, name: str) -> bool:
        return name in self.exclude


def settings_from_section(section: TomlTable | None) -> DelegationSettings:
    settings = DelegationSettings()
    if not isinstance(section, dict):
        return settings
    changes: dict[str, object] = {}
    for key in ("prefix", "module_prefix", "field_prefix"):
        value = section.get(key)
        if isinstance(value, str) and value.strip():
            changes[key] = value.strip()
    markers = _normalize_name_list(section.get("markers"))
    if markers:
        changes["markers"] = tuple(markers)
    if "exclude" in section:
        changes["exclude"] = frozenset(_normalize_name_list(section.get("exclude")))
    policy = section.get("on_collision")
    if isinstance(policy, str) and policy.strip().lower() in COLLISION_POLICIES:
        changes["on_collision"] = policy.strip().lower()
    if "allow_runtime_contracts" in section:
        changes["allow_runtime_contracts"] = _as_bool(
            section.get("allow_runtime_contracts")
        )
    return replace(settings, **changes)


def load_settings(
    root: Path | None = None,
    config_path: Path | None = None,
    overrides: TomlTable | None = None,
) -> DelegationSettings:
    section = delegation_defaults(root=root, config_path=config_path)
    if overrides:
        section = merge_payload(overrides, section)
    return settings_from_section(section)
