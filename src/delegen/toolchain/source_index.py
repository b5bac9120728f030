from __future__ import annotations

import ast
import builtins
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator

from delegen.config import DelegationSettings
from delegen.ingest.python_ingest import (
    ParsedModule,
    ParseFailureWitness,
    iter_python_paths,
    parse_python_file,
)
from delegen.invariants import never
from delegen.toolchain.model import (
    MEMBER_ASYNC,
    MEMBER_METHOD,
    MEMBER_PROPERTY,
    PARAM_KEYWORD_ONLY,
    PARAM_POSITIONAL_ONLY,
    PARAM_POSITIONAL_OR_KEYWORD,
    PARAM_VAR_KEYWORD,
    PARAM_VAR_POSITIONAL,
    ClosureEntry,
    MarkedDeclaration,
    Member,
    Parameter,
    SourceExpr,
    TypeParam,
    TypeRef,
    expr_from_source,
)
from delegen.toolchain.runtime import PLUMBING_BASES, RuntimeContracts

_BUILTIN_NAMES: frozenset[str] = frozenset(dir(builtins))
_GENERIC_DECLARERS: frozenset[str] = frozenset(
    {
        "typing.Generic",
        "typing.Protocol",
        "typing_extensions.Generic",
        "typing_extensions.Protocol",
    }
)
_TYPEVAR_FACTORIES: frozenset[str] = frozenset(
    {
        "typing.TypeVar",
        "typing.ParamSpec",
        "typing.TypeVarTuple",
        "typing_extensions.TypeVar",
        "typing_extensions.ParamSpec",
        "typing_extensions.TypeVarTuple",
    }
)
_PROPERTY_DECORATORS = frozenset({"property", "cached_property"})
_ACCESSOR_ATTRS = frozenset({"setter", "deleter", "getter"})


@dataclass
class _ModuleIndex:
    parsed: ParsedModule
    imports: dict[str, str] = field(default_factory=dict)
    classes: dict[str, ast.ClassDef] = field(default_factory=dict)
    assignments: dict[str, ast.expr] = field(default_factory=dict)
    functions: set[str] = field(default_factory=set)

    @property
    def name(self) -> str:
        return self.parsed.module_name

    def defines(self, name: str) -> bool:
        return name in self.classes or name in self.assignments or name in self.functions


def _absolute_module(parsed: ParsedModule, level: int, module: str | None) -> str:
    if level == 0:
        return module or ""
    base_parts = parsed.package.split(".") if parsed.package else []
    if level > 1:
        base_parts = base_parts[: max(len(base_parts) - (level - 1), 0)]
    base = ".".join(base_parts)
    if module:
        return f"{base}.{module}" if base else module
    return base


def _module_level_statements(body: list[ast.stmt]) -> Iterator[ast.stmt]:
    for stmt in body:
        yield stmt
        if isinstance(stmt, ast.If):
            yield from _module_level_statements(stmt.body)
            yield from _module_level_statements(stmt.orelse)
        elif isinstance(stmt, ast.Try):
            yield from _module_level_statements(stmt.body)
            for handler in stmt.handlers:
                yield from _module_level_statements(handler.body)
            yield from _module_level_statements(stmt.orelse)
            yield from _module_level_statements(stmt.finalbody)


def _collect_classes(
    body: list[ast.stmt], prefix: str, out: dict[str, ast.ClassDef]
) -> None:
    for stmt in body:
        if isinstance(stmt, ast.ClassDef):
            path = f"{prefix}.{stmt.name}" if prefix else stmt.name
            out[path] = stmt
            _collect_classes(stmt.body, path, out)


def _index_module(parsed: ParsedModule) -> _ModuleIndex:
    index = _ModuleIndex(parsed=parsed)
    for stmt in _module_level_statements(parsed.tree.body):
        if isinstance(stmt, ast.Import):
            for alias in stmt.names:
                if alias.asname:
                    index.imports[alias.asname] = alias.name
                else:
                    root = alias.name.split(".")[0]
                    index.imports[root] = root
        elif isinstance(stmt, ast.ImportFrom):
            source = _absolute_module(parsed, stmt.level, stmt.module)
            for alias in stmt.names:
                if alias.name == "*":
                    continue
                local = alias.asname or alias.name
                index.imports[local] = f"{source}.{alias.name}" if source else alias.name
        elif isinstance(stmt, ast.Assign):
            for target in stmt.targets:
                if isinstance(target, ast.Name):
                    index.assignments[target.id] = stmt.value
        elif isinstance(stmt, ast.AnnAssign) and stmt.value is not None:
            if isinstance(stmt.target, ast.Name):
                index.assignments[stmt.target.id] = stmt.value
        elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
            index.functions.add(stmt.name)
    _collect_classes(parsed.tree.body, "", index.classes)
    return index


def _slice_elements(node: ast.expr) -> list[ast.expr]:
    if isinstance(node, ast.Tuple):
        return list(node.elts)
    return [node]


def _decorator_name(node: ast.expr) -> str:
    target = node.func if isinstance(node, ast.Call) else node
    if isinstance(target, ast.Name):
        return target.id
    if isinstance(target, ast.Attribute):
        return target.attr
    return ""


def _is_stub_body(body: list[ast.stmt]) -> bool:
    for stmt in body:
        if isinstance(stmt, ast.Pass):
            continue
        if isinstance(stmt, ast.Expr) and isinstance(stmt.value, ast.Constant):
            continue
        if isinstance(stmt, ast.Raise):
            continue
        return False
    return True


def _parameters_of(
    node: ast.FunctionDef | ast.AsyncFunctionDef, module: str, *, drop_receiver: bool
) -> tuple[Parameter, ...]:
    args = node.args
    positional = list(args.posonlyargs) + list(args.args)
    defaults: list[ast.expr | None] = [None] * (len(positional) - len(args.defaults))
    defaults.extend(args.defaults)
    kinds = [PARAM_POSITIONAL_ONLY] * len(args.posonlyargs) + [
        PARAM_POSITIONAL_OR_KEYWORD
    ] * len(args.args)

    def _lift(expr: ast.expr | None) -> SourceExpr | None:
        return expr_from_source(expr, module) if expr is not None else None

    def _lift_default(expr: ast.expr | None) -> SourceExpr | None:
        if expr is None:
            return None
        return expr_from_source(expr, module, forward_refs=False)

    out: list[Parameter] = []
    for index, (arg, kind, default) in enumerate(zip(positional, kinds, defaults)):
        if drop_receiver and index == 0:
            continue
        out.append(
            Parameter(
                name=arg.arg,
                kind=kind,
                annotation=_lift(arg.annotation),
                default=_lift_default(default),
            )
        )
    if args.vararg is not None:
        out.append(
            Parameter(
                name=args.vararg.arg,
                kind=PARAM_VAR_POSITIONAL,
                annotation=_lift(args.vararg.annotation),
            )
        )
    for arg, default in zip(args.kwonlyargs, args.kw_defaults):
        out.append(
            Parameter(
                name=arg.arg,
                kind=PARAM_KEYWORD_ONLY,
                annotation=_lift(arg.annotation),
                default=_lift_default(default),
            )
        )
    if args.kwarg is not None:
        out.append(
            Parameter(
                name=args.kwarg.arg,
                kind=PARAM_VAR_KEYWORD,
                annotation=_lift(args.kwarg.annotation),
            )
        )
    return tuple(out)


class SourceToolchain:
    """Type-introspection oracle over a tree of parsed Python sources.

    Classes outside the tree are described by importing them, unless
    ``allow_runtime_contracts`` is switched off.
    """

    def __init__(
        self,
        settings: DelegationSettings | None = None,
        *,
        root: Path | None = None,
        runtime: RuntimeContracts | None = None,
    ) -> None:
        self.settings = settings or DelegationSettings()
        self.root = root
        self.runtime = runtime or RuntimeContracts()
        self.parse_failures: list[ParseFailureWitness] = []
        self._modules: dict[str, _ModuleIndex] | None = None

    @property
    def loaded(self) -> bool:
        return self._modules is not None

    def load(self, paths: Iterable[str | Path]) -> SourceToolchain:
        modules: dict[str, _ModuleIndex] = {}
        failures: list[ParseFailureWitness] = []
        for path in iter_python_paths(paths, settings=self.settings):
            parsed = parse_python_file(path, root=self.root)
            if isinstance(parsed, ParseFailureWitness):
                failures.append(parsed)
                continue
            modules[parsed.module_name] = _index_module(parsed)
        self._modules = modules
        self.parse_failures = failures
        return self

    def _require_loaded(self) -> dict[str, _ModuleIndex]:
        if self._modules is None:
            never("toolchain queried before load()")
        return self._modules

    @property
    def module_names(self) -> list[str]:
        return sorted(self._require_loaded())

    # Declarations

    def marked_declarations(self) -> list[MarkedDeclaration]:
        modules = self._require_loaded()
        markers = set(self.settings.markers)
        found: list[MarkedDeclaration] = []
        for index in sorted(modules.values(), key=lambda item: str(item.parsed.path)):
            for class_path, node in index.classes.items():
                marker = self._find_marker(node, markers)
                if marker is None:
                    continue
                found.append(
                    MarkedDeclaration(
                        qualname=f"{index.name}.{class_path}" if index.name else class_path,
                        name=node.name,
                        module=index.name,
                        package=index.parsed.package,
                        path=index.parsed.path,
                        lineno=node.lineno,
                        marker=marker if isinstance(marker, ast.Call) else None,
                        bases=tuple(node.bases),
                    )
                )
        found.sort(key=lambda decl: (str(decl.path), decl.lineno))
        return found

    @staticmethod
    def _find_marker(node: ast.ClassDef, markers: set[str]) -> ast.expr | None:
        for decorator in node.decorator_list:
            if _decorator_name(decorator) in markers:
                return decorator
        return None

    # Name resolution

    def qualify(self, expr: ast.expr, module: str) -> str | None:
        """Return the dotted path an expression refers to from ``module``."""
        if isinstance(expr, ast.Subscript):
            return self.qualify(expr.value, module)
        if isinstance(expr, ast.Attribute):
            base = self.qualify(expr.value, module)
            return f"{base}.{expr.attr}" if base else None
        if not isinstance(expr, ast.Name):
            return None
        index = self._require_loaded().get(module)
        if index is not None:
            if index.defines(expr.id):
                return f"{module}.{expr.id}" if module else expr.id
            if expr.id in index.imports:
                return index.imports[expr.id]
        if expr.id in _BUILTIN_NAMES:
            return f"builtins.{expr.id}"
        return None

    def _split(self, qualified: str) -> tuple[_ModuleIndex, list[str]] | None:
        modules = self._require_loaded()
        parts = qualified.split(".")
        for split in range(len(parts) - 1, -1, -1):
            module_name = ".".join(parts[:split])
            index = modules.get(module_name)
            if index is not None and parts[split:]:
                return index, parts[split:]
        return None

    def _canonical_class(
        self, qualified: str, seen: set[str] | None = None
    ) -> tuple[_ModuleIndex | None, str] | None:
        """Follow re-exports to the defining module.

        Returns ``(index, class_path)`` for a class in the tree, ``(None,
        qualified)`` for a name outside it, and ``None`` when the name cannot
        be a class.
        """
        seen = seen if seen is not None else set()
        if qualified in seen:
            return None
        seen.add(qualified)
        located = self._split(qualified)
        if located is None:
            return None, qualified
        index, rest = located
        class_path = ".".join(rest)
        if class_path in index.classes:
            return index, class_path
        head = rest[0]
        if head in index.imports:
            target = ".".join([index.imports[head], *rest[1:]])
            return self._canonical_class(target, seen)
        return None

    def _typevar_identity(self, qualified: str, seen: set[str] | None = None) -> str | None:
        seen = seen if seen is not None else set()
        if qualified in seen:
            return None
        seen.add(qualified)
        located = self._split(qualified)
        if located is None:
            if self.settings.allow_runtime_contracts and self.runtime.is_typevar(qualified):
                return qualified
            return None
        index, rest = located
        if len(rest) != 1:
            return None
        name = rest[0]
        value = index.assignments.get(name)
        if isinstance(value, ast.Call):
            factory = self.qualify(value.func, index.name)
            if factory in _TYPEVAR_FACTORIES:
                return f"{index.name}.{name}"
            return None
        if name in index.imports:
            return self._typevar_identity(index.imports[name], seen)
        return None

    def _type_params(self, index: _ModuleIndex, node: ast.ClassDef) -> tuple[list[str], list[TypeParam]]:
        declared = getattr(node, "type_params", None) or []
        if declared:
            return [param.name for param in declared], []
        explicit: list[str] | None = None
        implicit: list[str] = []
        for base in node.bases:
            if not isinstance(base, ast.Subscript):
                continue
            elements = _slice_elements(base.slice)
            if self.qualify(base.value, index.name) in _GENERIC_DECLARERS:
                explicit = [elem.id for elem in elements if isinstance(elem, ast.Name)]
                continue
            for elem in elements:
                for sub in ast.walk(elem):
                    if not isinstance(sub, ast.Name) or sub.id in implicit:
                        continue
                    qualified = self.qualify(sub, index.name)
                    if qualified and self._typevar_identity(qualified):
                        implicit.append(sub.id)
        names = explicit if explicit is not None else implicit
        params: list[TypeParam] = []
        for name in names:
            qualified = self.qualify(ast.Name(id=name), index.name) or f"{index.name}.{name}"
            identity = self._typevar_identity(qualified) or qualified
            params.append(TypeParam(name=name, module=index.name, identity=identity))
        return names, params

    def _type_ref(self, qualified: str, args: Iterable[SourceExpr]) -> TypeRef | None:
        canonical = self._canonical_class(qualified)
        if canonical is None:
            return None
        index, target = canonical
        if index is None:
            if target in PLUMBING_BASES or not self.settings.allow_runtime_contracts:
                return None
            return self.runtime.type_ref(target, args)
        node = index.classes[target]
        names, params = self._type_params(index, node)
        return TypeRef(
            qualname=f"{index.name}.{target}" if index.name else target,
            name=node.name,
            module=index.name,
            args=tuple(args),
            params=tuple(params),
            param_names=tuple(names),
            origin="source",
        )

    def resolve_reference(self, expr: ast.expr, module: str) -> TypeRef | None:
        qualified = self.qualify(expr, module)
        if qualified is None:
            return None
        args: list[SourceExpr] = []
        if isinstance(expr, ast.Subscript):
            args = [expr_from_source(elem, module) for elem in _slice_elements(expr.slice)]
        return self._type_ref(qualified, args)

    def _class_node(self, ref: TypeRef) -> tuple[_ModuleIndex, ast.ClassDef] | None:
        if ref.origin != "source":
            return None
        canonical = self._canonical_class(ref.qualname)
        if canonical is None or canonical[0] is None:
            return None
        index, class_path = canonical
        return index, index.classes[class_path]

    # Hierarchy queries

    def direct_supertypes(self, ref: TypeRef) -> list[TypeRef]:
        located = self._class_node(ref)
        if located is None:
            if ref.origin == "runtime":
                return self.runtime.direct_supertypes(ref)
            return []
        index, node = located
        bindings = ref.bindings()
        out: list[TypeRef] = []
        for base in node.bases:
            sub = self.resolve_reference(base, index.name)
            if sub is None:
                continue
            out.append(sub.with_args(arg.substitute(bindings) for arg in sub.args))
        return out

    def implemented_contracts(self, declaration: MarkedDeclaration) -> list[TypeRef]:
        """Direct bases of ``declaration`` followed by their own direct bases.

        The generated base the declaration already subclasses is skipped.
        """
        self._require_loaded()
        generated = f"{self.settings.prefix}{declaration.name}"
        out: list[TypeRef] = []
        for base in declaration.bases:
            if _decorator_name(base.value if isinstance(base, ast.Subscript) else base) == generated:
                continue
            ref = self.resolve_reference(base, declaration.module)
            if ref is None:
                continue
            out.append(ref)
            out.extend(self.direct_supertypes(ref))
        return out

    def own_members(self, ref: TypeRef) -> list[Member]:
        located = self._class_node(ref)
        if located is None:
            if ref.origin == "runtime":
                return self.runtime.own_members(ref)
            return []
        index, node = located
        members: list[Member] = []
        for stmt in node.body:
            if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                member = self._member_of(stmt, index.name)
                if member is not None:
                    members.append(member)
        return members

    def _member_of(
        self, node: ast.FunctionDef | ast.AsyncFunctionDef, module: str
    ) -> Member | None:
        names = set()
        for decorator in node.decorator_list:
            target = decorator.func if isinstance(decorator, ast.Call) else decorator
            if isinstance(target, ast.Attribute) and target.attr in _ACCESSOR_ATTRS:
                return None
            names.add(_decorator_name(decorator))
        static = "staticmethod" in names
        is_property = bool(names & _PROPERTY_DECORATORS)
        if is_property:
            kind = MEMBER_PROPERTY
        elif isinstance(node, ast.AsyncFunctionDef):
            kind = MEMBER_ASYNC
        else:
            kind = MEMBER_METHOD
        return Member(
            name=node.name,
            kind=kind,
            parameters=() if is_property else _parameters_of(node, module, drop_receiver=not static),
            returns=expr_from_source(node.returns, module) if node.returns is not None else None,
            abstract="abstractmethod" in names or _is_stub_body(node.body),
            static=static,
            classmethod="classmethod" in names,
            overload="overload" in names,
        )

    def linearize(self, ref: TypeRef, active: frozenset[str] = frozenset()) -> list[TypeRef]:
        """C3 linearization of ``ref``, the order Python resolves members in.

        Each class keeps the bindings of its first occurrence. Hierarchies C3
        rejects fall back to left-to-right order of the remaining classes.
        """
        if ref.qualname in active:
            return []
        active = active | {ref.qualname}
        bases = [base for base in self.direct_supertypes(ref) if base.qualname not in active]
        sequences = [self.linearize(base, active) for base in bases]
        sequences.append(list(bases))
        merged: list[TypeRef] = [ref]
        while True:
            sequences = [seq for seq in sequences if seq]
            if not sequences:
                return merged
            head = None
            for seq in sequences:
                candidate = seq[0]
                if not any(
                    candidate.qualname in (item.qualname for item in other[1:])
                    for other in sequences
                ):
                    head = candidate
                    break
            if head is None:
                head = sequences[0][0]
            if not any(item.qualname == head.qualname for item in merged):
                merged.append(head)
            sequences = [
                [item for item in seq if item.qualname != head.qualname] for seq in sequences
            ]

    def member_closure(self, ref: TypeRef) -> list[ClosureEntry]:
        """Members of ``ref`` and every ancestor, in method resolution order."""
        self._require_loaded()
        return [
            ClosureEntry(owner=current, member=member)
            for current in self.linearize(ref)
            for member in self.own_members(current)
        ]
