from __future__ import annotations

import ast
import builtins
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

_BUILTIN_NAMES: frozenset[str] = frozenset(dir(builtins))

PARAM_POSITIONAL_ONLY = "positional_only"
PARAM_POSITIONAL_OR_KEYWORD = "positional_or_keyword"
PARAM_VAR_POSITIONAL = "var_positional"
PARAM_KEYWORD_ONLY = "keyword_only"
PARAM_VAR_KEYWORD = "var_keyword"

MEMBER_METHOD = "method"
MEMBER_ASYNC = "async"
MEMBER_PROPERTY = "property"


@dataclass(frozen=True)
class ImportNeed:
    """A name that must be bound in the generated module.

    ``module`` set means ``from module import name``; ``module`` of ``None``
    means ``import name`` for a dotted module path.
    """

    name: str
    module: str | None = None


@dataclass(frozen=True)
class SourceExpr:
    """Expression text plus the imports needed to evaluate it elsewhere."""

    text: str
    needs: tuple[ImportNeed, ...] = ()

    def substitute(self, bindings: Mapping[str, SourceExpr]) -> SourceExpr:
        if not bindings:
            return self
        try:
            tree = ast.parse(self.text, mode="eval")
        except SyntaxError:
            return self
        replaced: set[str] = set()

        class _Substitute(ast.NodeTransformer):
            def visit_Name(self, node: ast.Name) -> ast.AST:
                binding = bindings.get(node.id)
                if binding is None:
                    return node
                replaced.add(node.id)
                return ast.parse(binding.text, mode="eval").body

        new_tree = _Substitute().visit(tree)
        if not replaced:
            return self
        needs: dict[str, ImportNeed] = {}
        for need in self.needs:
            if need.module is not None and need.name in replaced:
                continue
            needs.setdefault(need.name, need)
        for name in sorted(replaced):
            for need in bindings[name].needs:
                needs.setdefault(need.name, need)
        return SourceExpr(text=ast.unparse(new_tree), needs=tuple(needs.values()))


def _subscript_name(node: ast.expr) -> str:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return ""


def _unquote_forward_refs(node: ast.expr) -> ast.expr:
    class _Unquote(ast.NodeTransformer):
        def visit_Constant(self, constant: ast.Constant) -> ast.AST:
            if not isinstance(constant.value, str):
                return constant
            try:
                inner = ast.parse(constant.value.strip(), mode="eval").body
            except SyntaxError:
                return constant
            return self.visit(inner)

        def visit_Subscript(self, subscript: ast.Subscript) -> ast.AST:
            name = _subscript_name(subscript.value)
            if name == "Literal":
                return subscript
            if name == "Annotated" and isinstance(subscript.slice, ast.Tuple):
                elts = subscript.slice.elts
                if elts:
                    elts[0] = self.visit(elts[0])
                return subscript
            return self.generic_visit(subscript)

    return _Unquote().visit(node)


class _FreeNames(ast.NodeVisitor):
    """Root names an expression loads from its enclosing module."""

    def __init__(self) -> None:
        self.names: list[str] = []
        self._scopes: list[set[str]] = []

    def _bound(self, name: str) -> bool:
        return any(name in scope for scope in self._scopes)

    def visit_Name(self, node: ast.Name) -> None:
        if not isinstance(node.ctx, ast.Load) or self._bound(node.id):
            return
        if node.id not in _BUILTIN_NAMES and node.id not in self.names:
            self.names.append(node.id)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        for default in [*node.args.defaults, *node.args.kw_defaults]:
            if default is not None:
                self.visit(default)
        args = node.args
        params = [*args.posonlyargs, *args.args, *args.kwonlyargs]
        if args.vararg is not None:
            params.append(args.vararg)
        if args.kwarg is not None:
            params.append(args.kwarg)
        self._scopes.append({arg.arg for arg in params})
        self.visit(node.body)
        self._scopes.pop()

    def _comprehension(self, generators: list[ast.comprehension], *elements: ast.expr) -> None:
        # the first iterable is evaluated in the enclosing scope
        self.visit(generators[0].iter)
        bound: set[str] = set()
        for generator in generators:
            for sub in ast.walk(generator.target):
                if isinstance(sub, ast.Name):
                    bound.add(sub.id)
        self._scopes.append(bound)
        for index, generator in enumerate(generators):
            if index:
                self.visit(generator.iter)
            for condition in generator.ifs:
                self.visit(condition)
        for element in elements:
            self.visit(element)
        self._scopes.pop()

    def visit_ListComp(self, node: ast.ListComp) -> None:
        self._comprehension(node.generators, node.elt)

    def visit_SetComp(self, node: ast.SetComp) -> None:
        self._comprehension(node.generators, node.elt)

    def visit_GeneratorExp(self, node: ast.GeneratorExp) -> None:
        self._comprehension(node.generators, node.elt)

    def visit_DictComp(self, node: ast.DictComp) -> None:
        self._comprehension(node.generators, node.key, node.value)


def expr_from_source(
    node: ast.expr, module: str, *, forward_refs: bool = True
) -> SourceExpr:
    """Lift an expression written in ``module`` into a portable SourceExpr.

    With ``forward_refs`` string constants are read as quoted annotations and
    unquoted, except inside ``Literal[...]`` and ``Annotated`` metadata.
    Every free, non-builtin root name becomes an ImportNeed against
    ``module``; lambda parameters and comprehension targets are not free.
    """
    if forward_refs:
        node = _unquote_forward_refs(node)
    finder = _FreeNames()
    finder.visit(node)
    needs = tuple(ImportNeed(name=name, module=module) for name in finder.names)
    return SourceExpr(text=ast.unparse(node), needs=needs)


@dataclass(frozen=True)
class TypeParam:
    """A TypeVar importable as ``name`` from ``module``.

    ``identity`` is the canonical dotted path of the TypeVar object; two
    contracts reaching the same identity share one parameter.
    """

    name: str
    module: str
    identity: str


@dataclass(frozen=True)
class TypeRef:
    """A reference to a class with the generic arguments given at the use site."""

    qualname: str
    name: str
    module: str
    args: tuple[SourceExpr, ...] = ()
    params: tuple[TypeParam, ...] = ()
    param_names: tuple[str, ...] = ()
    origin: str = "source"

    def bindings(self) -> dict[str, SourceExpr]:
        if not self.args or len(self.args) != len(self.param_names):
            return {}
        return dict(zip(self.param_names, self.args))

    def with_args(self, args: Iterable[SourceExpr]) -> TypeRef:
        return TypeRef(
            qualname=self.qualname,
            name=self.name,
            module=self.module,
            args=tuple(args),
            params=self.params,
            param_names=self.param_names,
            origin=self.origin,
        )


@dataclass(frozen=True)
class Parameter:
    name: str
    kind: str = PARAM_POSITIONAL_OR_KEYWORD
    annotation: SourceExpr | None = None
    default: SourceExpr | None = None

    def substitute(self, bindings: Mapping[str, SourceExpr]) -> Parameter:
        if self.annotation is None or not bindings:
            return self
        return Parameter(
            name=self.name,
            kind=self.kind,
            annotation=self.annotation.substitute(bindings),
            default=self.default,
        )


@dataclass(frozen=True)
class Member:
    """A function-like attribute of a class body, as found by the toolchain."""

    name: str
    kind: str = MEMBER_METHOD
    parameters: tuple[Parameter, ...] = ()
    returns: SourceExpr | None = None
    abstract: bool = False
    static: bool = False
    classmethod: bool = False
    overload: bool = False


@dataclass(frozen=True)
class ClosureEntry:
    """A member together with the (bound) class that declares it."""

    owner: TypeRef
    member: Member


@dataclass(frozen=True)
class MarkedDeclaration:
    qualname: str
    name: str
    module: str
    package: str
    path: Path | None
    lineno: int
    marker: ast.Call | None
    bases: tuple[ast.expr, ...] = field(default_factory=tuple)

    @property
    def location(self) -> str:
        if self.path is None:
            return self.qualname
        return f"{self.path}:{self.lineno}"
