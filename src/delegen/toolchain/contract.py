from __future__ import annotations

import ast
from pathlib import Path
from typing import Iterable, Protocol, runtime_checkable

from delegen.toolchain.model import ClosureEntry, MarkedDeclaration, TypeRef


@runtime_checkable
class Toolchain(Protocol):
    """Read-only type-introspection surface consumed by the delegation core."""

    @property
    def loaded(self) -> bool: ...

    def load(self, paths: Iterable[str | Path]) -> "Toolchain": ...

    def marked_declarations(self) -> list[MarkedDeclaration]: ...

    def resolve_reference(self, expr: ast.expr, module: str) -> TypeRef | None: ...

    def implemented_contracts(self, declaration: MarkedDeclaration) -> list[TypeRef]: ...

    def direct_supertypes(self, ref: TypeRef) -> list[TypeRef]: ...

    def member_closure(self, ref: TypeRef) -> list[ClosureEntry]: ...
