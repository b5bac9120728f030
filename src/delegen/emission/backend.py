from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from delegen.delegation.model import GeneratedTypeDescription
from delegen.exceptions import EmissionError

EMIT_WRITTEN = "written"
EMIT_UNCHANGED = "unchanged"
EMIT_STALE = "stale"


@dataclass(frozen=True)
class EmissionResult:
    module: str
    status: str
    path: Path | None = None


class EmissionBackend(Protocol):
    def emit(self, description: GeneratedTypeDescription, source: str) -> EmissionResult: ...


def target_path(description: GeneratedTypeDescription) -> Path:
    """Sibling module path of the declaring source file."""
    if description.source_path is None:
        raise EmissionError(
            "declaration has no source file to write next to",
            declaration=description.declaration,
        )
    return description.source_path.parent / f"{description.module_name}.py"


class FileEmitter:
    """Writes generated modules next to their declaring modules.

    With ``check`` set nothing is written; a missing or different file is
    reported as stale.
    """

    def __init__(self, *, check: bool = False) -> None:
        self.check = check

    def emit(self, description: GeneratedTypeDescription, source: str) -> EmissionResult:
        path = target_path(description)
        try:
            existing = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            existing = None
        except OSError as exc:
            raise EmissionError(
                f"cannot read {path}: {exc}", declaration=description.declaration
            ) from exc
        module = description.qualified_module
        if existing == source:
            return EmissionResult(module=module, status=EMIT_UNCHANGED, path=path)
        if self.check:
            return EmissionResult(module=module, status=EMIT_STALE, path=path)
        try:
            path.write_text(source, encoding="utf-8")
        except OSError as exc:
            raise EmissionError(
                f"cannot write {path}: {exc}", declaration=description.declaration
            ) from exc
        return EmissionResult(module=module, status=EMIT_WRITTEN, path=path)


class MemoryEmitter:
    def __init__(self) -> None:
        self.outputs: dict[str, str] = {}
        self.descriptions: dict[str, GeneratedTypeDescription] = {}

    def emit(self, description: GeneratedTypeDescription, source: str) -> EmissionResult:
        module = description.qualified_module
        self.outputs[module] = source
        self.descriptions[module] = description
        path = None
        if description.source_path is not None:
            path = target_path(description)
        return EmissionResult(module=module, status=EMIT_WRITTEN, path=path)
