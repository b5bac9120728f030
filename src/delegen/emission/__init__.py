from .backend import (
    EMIT_STALE,
    EMIT_UNCHANGED,
    EMIT_WRITTEN,
    EmissionBackend,
    EmissionResult,
    FileEmitter,
    MemoryEmitter,
    target_path,
)
from .render import render_class, render_module

__all__ = [
    "EMIT_STALE",
    "EMIT_UNCHANGED",
    "EMIT_WRITTEN",
    "EmissionBackend",
    "EmissionResult",
    "FileEmitter",
    "MemoryEmitter",
    "render_class",
    "render_module",
    "target_path",
]
