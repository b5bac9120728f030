from __future__ import annotations

import ast
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from delegen.config import DelegationSettings


@dataclass(frozen=True)
class ParseFailureWitness:
    path: Path
    stage: str
    error: str


@dataclass(frozen=True)
class ParsedModule:
    path: Path
    module_name: str
    package: str
    tree: ast.Module
    is_package: bool = False


def iter_python_paths(
    paths: Iterable[str | Path],
    *,
    settings: DelegationSettings,
) -> list[Path]:
    """Expand input paths to python files, pruning excluded directories early."""
    out: list[Path] = []
    for p in paths:
        path = Path(p)
        if path.is_dir():
            for root, dirnames, filenames in os.walk(path, topdown=True):
                dirnames[:] = sorted(
                    d for d in dirnames if not settings.is_excluded_dir(d)
                )
                for filename in sorted(filenames):
                    if not filename.endswith(".py"):
                        continue
                    out.append(Path(root) / filename)
        elif path.suffix == ".py":
            out.append(path)
    return sorted(set(out))


def module_name_for(path: Path, root: Path | None) -> str:
    rel = path.with_suffix("")
    if root is not None:
        try:
            rel = rel.resolve().relative_to(root.resolve())
        except ValueError:
            rel = Path(path.stem)
    elif rel.is_absolute():
        rel = Path(path.stem)
    parts = list(rel.parts)
    if parts and parts[0] == "src":
        parts = parts[1:]
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts)


def parse_python_file(path: Path, *, root: Path | None) -> ParsedModule | ParseFailureWitness:
    try:
        source = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return ParseFailureWitness(path=path, stage="read", error=str(exc))
    try:
        tree = ast.parse(source, filename=str(path))
    except SyntaxError as exc:
        return ParseFailureWitness(path=path, stage="parse", error=str(exc))
    module_name = module_name_for(path, root)
    is_package = path.name == "__init__.py"
    if is_package:
        package = module_name
    else:
        package = module_name.rpartition(".")[0]
    return ParsedModule(
        path=path,
        module_name=module_name,
        package=package,
        tree=tree,
        is_package=is_package,
    )
