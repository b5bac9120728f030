from __future__ import annotations

import ast
from dataclasses import dataclass, field
from pathlib import Path
from typing import Generic, TypeVar

from delegen.exceptions import DelegationError
from delegen.ingest.python_ingest import ParseFailureWitness
from delegen.invariants import never
from delegen.toolchain.model import (
    MEMBER_METHOD,
    MarkedDeclaration,
    Parameter,
    SourceExpr,
    TypeParam,
    TypeRef,
)

ValueT = TypeVar("ValueT")

STATUS_GENERATED = "generated"
STATUS_UNCHANGED = "unchanged"
STATUS_STALE = "stale"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class DelegationRequest:
    """Contract references written in one declaration's marker, in order."""

    declaration: MarkedDeclaration
    references: tuple[ast.expr, ...]

    @property
    def texts(self) -> list[str]:
        return [ast.unparse(ref) for ref in self.references]


@dataclass(frozen=True)
class NamedDelegate:
    contract: TypeRef
    field_name: str


@dataclass(frozen=True)
class ResolvedDelegation:
    """A declaration with its matched contracts, each bound to a field.

    ``delegates`` follows request order. ``base_order`` lists the same
    delegates by position in the declaration's hierarchy, which is the order
    the generated class must name them as bases.
    """

    declaration: MarkedDeclaration
    delegates: tuple[NamedDelegate, ...]
    base_order: tuple[int, ...] = ()


@dataclass(frozen=True)
class _Outcome(Generic[ValueT]):
    value: ValueT | None = None
    error: DelegationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> ValueT:
        if self.error is not None:
            raise self.error
        if self.value is None:
            never("result carries neither a value nor an error")
        return self.value


class Resolution(_Outcome[ResolvedDelegation]):
    pass


@dataclass(frozen=True)
class OperationSignature:
    """One operation a forwarding implementation must provide.

    Annotations are already substituted with the contract's generic
    arguments. ``declared_by`` names the class in the closure that declares
    the most-derived version.
    """

    name: str
    kind: str = MEMBER_METHOD
    parameters: tuple[Parameter, ...] = ()
    returns: SourceExpr | None = None
    contract: str = ""
    declared_by: str = ""

    @property
    def returns_value(self) -> bool:
        return self.returns is None or self.returns.text != "None"


@dataclass(frozen=True)
class ImportSpec:
    """One import line of a generated module.

    ``module`` set renders ``from module import name [as alias]``; ``None``
    renders ``import name`` for a dotted module path.
    """

    name: str
    module: str | None = None
    alias: str | None = None
    type_checking: bool = False


@dataclass(frozen=True)
class TypeParamSpec:
    local_name: str
    param: TypeParam


@dataclass(frozen=True)
class ContractBase:
    contract: str
    expression: str


@dataclass(frozen=True)
class FieldDescription:
    name: str
    annotation: str
    contract: str = ""


@dataclass(frozen=True)
class ForwardingOperation:
    name: str
    field_name: str
    kind: str = MEMBER_METHOD
    parameters: tuple[Parameter, ...] = ()
    returns: SourceExpr | None = None
    contract: str = ""

    @property
    def returns_value(self) -> bool:
        return self.returns is None or self.returns.text != "None"


@dataclass(frozen=True)
class GeneratedTypeDescription:
    declaration: str
    package: str
    module_name: str
    class_name: str
    source_path: Path | None = None
    type_params: tuple[TypeParamSpec, ...] = ()
    bases: tuple[ContractBase, ...] = ()
    fields: tuple[FieldDescription, ...] = ()
    constructor_parameters: tuple[str, ...] = ()
    operations: tuple[ForwardingOperation, ...] = ()
    imports: tuple[ImportSpec, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def qualified_module(self) -> str:
        if self.package:
            return f"{self.package}.{self.module_name}"
        return self.module_name


class SynthesisResult(_Outcome[GeneratedTypeDescription]):
    pass


@dataclass(frozen=True)
class DeclarationOutcome:
    declaration: str
    location: str
    status: str
    module: str = ""
    path: str = ""
    operations: int = 0
    error_kind: str = ""
    error: str = ""
    warnings: tuple[str, ...] = ()


@dataclass
class RoundReport:
    outcomes: list[DeclarationOutcome] = field(default_factory=list)
    parse_failures: list[ParseFailureWitness] = field(default_factory=list)

    def _with_status(self, status: str) -> list[DeclarationOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status == status]

    @property
    def generated(self) -> list[DeclarationOutcome]:
        return self._with_status(STATUS_GENERATED)

    @property
    def unchanged(self) -> list[DeclarationOutcome]:
        return self._with_status(STATUS_UNCHANGED)

    @property
    def stale(self) -> list[DeclarationOutcome]:
        return self._with_status(STATUS_STALE)

    @property
    def failed(self) -> list[DeclarationOutcome]:
        return self._with_status(STATUS_FAILED)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.stale
