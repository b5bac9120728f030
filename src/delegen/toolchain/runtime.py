"""Contract introspection for classes that live outside the parsed source tree.

Library contracts such as ``collections.abc.Sequence`` are imported and read
with ``inspect``; the results use the same model as the source index.
"""

from __future__ import annotations

import ast
import importlib
import inspect
import re
import sys
import typing
from typing import Iterable

from delegen.toolchain.model import (
    MEMBER_ASYNC,
    MEMBER_METHOD,
    MEMBER_PROPERTY,
    PARAM_KEYWORD_ONLY,
    PARAM_POSITIONAL_ONLY,
    PARAM_POSITIONAL_OR_KEYWORD,
    PARAM_VAR_KEYWORD,
    PARAM_VAR_POSITIONAL,
    ImportNeed,
    Member,
    Parameter,
    SourceExpr,
    TypeParam,
    TypeRef,
    expr_from_source,
)

PLUMBING_BASES: frozenset[str] = frozenset(
    {
        "builtins.object",
        "typing.Protocol",
        "typing.Generic",
        "typing_extensions.Protocol",
        "typing_extensions.Generic",
        "abc.ABC",
    }
)

_KIND_NAMES = {
    inspect.Parameter.POSITIONAL_ONLY: PARAM_POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD: PARAM_POSITIONAL_OR_KEYWORD,
    inspect.Parameter.VAR_POSITIONAL: PARAM_VAR_POSITIONAL,
    inspect.Parameter.KEYWORD_ONLY: PARAM_KEYWORD_ONLY,
    inspect.Parameter.VAR_KEYWORD: PARAM_VAR_KEYWORD,
}
_TYPEVAR_REPR = re.compile(r"[~+\-](?=[A-Za-z_])")
_DOTTED_NAME = re.compile(r"\b([A-Za-z_]\w*(?:\.[A-Za-z_]\w*)+)")
_PASSTHROUGH = (
    Parameter(name="args", kind=PARAM_VAR_POSITIONAL),
    Parameter(name="kwargs", kind=PARAM_VAR_KEYWORD),
)


def _is_valid_expression(text: str) -> bool:
    try:
        ast.parse(text, mode="eval")
    except SyntaxError:
        return False
    return True


def format_annotation(annotation: object, module: str | None = None) -> SourceExpr | None:
    """Render a runtime annotation as source text.

    String annotations, as left by ``from __future__ import annotations``, are
    parsed and their free names resolved against ``module`` when given.
    """
    if annotation is inspect.Parameter.empty:
        return None
    if isinstance(annotation, str):
        if module is None:
            return SourceExpr(text=annotation)
        try:
            node = ast.parse(annotation.strip(), mode="eval").body
        except SyntaxError:
            return SourceExpr(text="object")
        return expr_from_source(node, module)
    if annotation is None or annotation is type(None):
        return SourceExpr(text="None")
    if isinstance(annotation, typing.TypeVar):
        return SourceExpr(text=annotation.__name__)
    text = _TYPEVAR_REPR.sub("", inspect.formatannotation(annotation))
    if not _is_valid_expression(text):
        return SourceExpr(text="object")
    needs: dict[str, ImportNeed] = {}
    for match in _DOTTED_NAME.finditer(text):
        module_path = match.group(1).rpartition(".")[0]
        needs.setdefault(module_path, ImportNeed(name=module_path))
    return SourceExpr(text=text, needs=tuple(needs.values()))


def _format_default(default: object) -> SourceExpr | None:
    text = repr(default)
    if not _is_valid_expression(text):
        return None
    return SourceExpr(text=text)


def class_qualname(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


class RuntimeContracts:
    """Imports classes by dotted name and describes them with ``inspect``."""

    def __init__(self) -> None:
        self._lookups: dict[str, type | None] = {}

    def lookup(self, qualified: str) -> type | None:
        if qualified in self._lookups:
            return self._lookups[qualified]
        found = self._import_class(qualified)
        self._lookups[qualified] = found
        return found

    def _import_class(self, qualified: str) -> type | None:
        parts = qualified.split(".")
        for split in range(len(parts) - 1, 0, -1):
            module_name = ".".join(parts[:split])
            try:
                obj: object = importlib.import_module(module_name)
            except ImportError:
                continue
            for attr in parts[split:]:
                obj = getattr(obj, attr, None)
                if obj is None:
                    break
            if obj is None:
                continue
            origin = typing.get_origin(obj) or obj
            if inspect.isclass(origin):
                return origin
            return None
        return None

    def is_typevar(self, qualified: str) -> bool:
        module_name, _, name = qualified.rpartition(".")
        if not module_name:
            return False
        try:
            module = importlib.import_module(module_name)
        except ImportError:
            return False
        return isinstance(getattr(module, name, None), typing.TypeVar)

    def type_ref(self, qualified: str, args: Iterable[SourceExpr] = ()) -> TypeRef | None:
        cls = self.lookup(qualified)
        if cls is None:
            return None
        return self.type_ref_for_class(cls, args)

    def type_ref_for_class(
        self, cls: type, args: Iterable[SourceExpr] = ()
    ) -> TypeRef | None:
        qualname = class_qualname(cls)
        if qualname in PLUMBING_BASES:
            return None
        parameters = tuple(getattr(cls, "__parameters__", ()) or ())
        names = tuple(getattr(p, "__name__", str(p)) for p in parameters)
        module = sys.modules.get(cls.__module__)
        importable = tuple(
            TypeParam(name=name, module=cls.__module__, identity=f"{cls.__module__}.{name}")
            for param, name in zip(parameters, names)
            if getattr(module, name, None) is param
        )
        self._lookups.setdefault(qualname, cls)
        return TypeRef(
            qualname=qualname,
            name=cls.__name__,
            module=cls.__module__,
            args=tuple(args),
            params=importable,
            param_names=names,
            origin="runtime",
        )

    def direct_supertypes(self, ref: TypeRef) -> list[TypeRef]:
        cls = self.lookup(ref.qualname)
        if cls is None:
            return []
        bindings = ref.bindings()
        out: list[TypeRef] = []
        for base in cls.__dict__.get("__orig_bases__") or cls.__bases__:
            origin = typing.get_origin(base) or base
            if not inspect.isclass(origin):
                continue
            base_args = []
            for arg in typing.get_args(base):
                formatted = format_annotation(arg)
                if formatted is not None:
                    base_args.append(formatted.substitute(bindings))
            sub = self.type_ref_for_class(origin, base_args)
            if sub is not None:
                out.append(sub)
        return out

    def own_members(self, ref: TypeRef) -> list[Member]:
        cls = self.lookup(ref.qualname)
        if cls is None:
            return []
        abstract_names = frozenset(getattr(cls, "__abstractmethods__", ()) or ())
        members: list[Member] = []
        for name, attr in vars(cls).items():
            member = self._describe(
                name, attr, module=cls.__module__, abstract=name in abstract_names
            )
            if member is not None:
                members.append(member)
        return members

    def _describe(
        self, name: str, attr: object, *, module: str, abstract: bool
    ) -> Member | None:
        if isinstance(attr, staticmethod):
            return Member(name=name, static=True, abstract=abstract)
        if isinstance(attr, classmethod):
            return Member(name=name, classmethod=True, abstract=abstract)
        if isinstance(attr, property):
            returns = None
            if attr.fget is not None:
                try:
                    returns = format_annotation(
                        inspect.signature(attr.fget).return_annotation, module
                    )
                except (TypeError, ValueError):
                    returns = None
            return Member(name=name, kind=MEMBER_PROPERTY, returns=returns, abstract=abstract)
        if not inspect.isfunction(attr):
            return None
        kind = MEMBER_ASYNC if inspect.iscoroutinefunction(attr) else MEMBER_METHOD
        try:
            signature = inspect.signature(attr)
        except (TypeError, ValueError):
            return Member(name=name, kind=kind, parameters=_PASSTHROUGH, abstract=abstract)
        parameters: list[Parameter] = []
        for index, param in enumerate(signature.parameters.values()):
            if index == 0 and param.kind in (
                inspect.Parameter.POSITIONAL_ONLY,
                inspect.Parameter.POSITIONAL_OR_KEYWORD,
            ):
                continue
            default = None
            if param.default is not inspect.Parameter.empty:
                default = _format_default(param.default)
                if default is None:
                    return Member(
                        name=name, kind=kind, parameters=_PASSTHROUGH, abstract=abstract
                    )
            parameters.append(
                Parameter(
                    name=param.name,
                    kind=_KIND_NAMES[param.kind],
                    annotation=format_annotation(param.annotation, module),
                    default=default,
                )
            )
        return Member(
            name=name,
            kind=kind,
            parameters=tuple(parameters),
            returns=format_annotation(signature.return_annotation, module),
            abstract=abstract,
        )
