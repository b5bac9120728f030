from __future__ import annotations

import sys
import textwrap
import uuid
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]


def ensure_src_on_path() -> None:
    src = str(REPO_ROOT / "src")
    if src not in sys.path:
        sys.path.insert(0, src)


def unique_package(prefix: str = "pkg") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


def write_tree(root: Path, files: dict[str, str]) -> Path:
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(text).lstrip(), encoding="utf-8")
    return root


def load_toolchain(root: Path, settings=None):
    ensure_src_on_path()
    from delegen.toolchain.source_index import SourceToolchain

    return SourceToolchain(settings, root=root).load([root])


def declaration_named(toolchain, name: str):
    for declaration in toolchain.marked_declarations():
        if declaration.name == name:
            return declaration
    raise AssertionError(f"no marked declaration named {name}")


def forget_package(package: str) -> None:
    for module in list(sys.modules):
        if module == package or module.startswith(f"{package}."):
            del sys.modules[module]


STREAM_CONTRACTS = """
from __future__ import annotations

from typing import Protocol


class Reader(Protocol):
    def read(self) -> str: ...

    def close(self) -> None: ...


class Writer(Protocol):
    def write(self, data: str) -> int: ...

    def close(self) -> None: ...


class Duplex(Reader, Writer, Protocol):
    def flush(self) -> None: ...
"""
