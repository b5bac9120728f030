"""Contract resolution for marked declarations.

The marker payload names the contracts a declaration wants delegated. This
module validates that payload and matches it against the contracts the
declaration actually implements: its direct bases and their own direct
bases, in that order.
"""

from __future__ import annotations

import ast

from delegen.config import DelegationSettings
from delegen.delegation.model import (
    DelegationRequest,
    NamedDelegate,
    Resolution,
    ResolvedDelegation,
)
from delegen.delegation.naming import field_name
from delegen.exceptions import ConfigurationError, ResolutionError
from delegen.toolchain.contract import Toolchain
from delegen.toolchain.model import MarkedDeclaration, TypeRef

VALUE_SLOT = "value"
MULTI_SLOT = "multi"


def _is_none(node: ast.expr) -> bool:
    return isinstance(node, ast.Constant) and node.value is None


def _is_type_expression(node: ast.expr) -> bool:
    if isinstance(node, (ast.Name, ast.Attribute)):
        return True
    if isinstance(node, ast.Subscript):
        return _is_type_expression(node.value)
    return False


def _config_error(declaration: MarkedDeclaration, message: str) -> ConfigurationError:
    return ConfigurationError(
        message, declaration=declaration.qualname, location=declaration.location
    )


def extract_request(declaration: MarkedDeclaration) -> DelegationRequest:
    """Read the contract references out of the marker call.

    Exactly one of the ``value`` slot (first positional argument or
    ``value=``) and the ``multi`` slot must be written. ``None`` entries are
    dropped; a request left empty is rejected.
    """
    marker = declaration.marker
    slots: dict[str, ast.expr] = {}
    if marker is not None:
        if len(marker.args) > 1:
            raise _config_error(declaration, "marker takes at most one positional contract")
        if marker.args:
            if isinstance(marker.args[0], ast.Starred):
                raise _config_error(declaration, "marker arguments must be written out")
            slots[VALUE_SLOT] = marker.args[0]
        for kw in marker.keywords:
            if kw.arg not in (VALUE_SLOT, MULTI_SLOT):
                name = kw.arg if kw.arg is not None else "**"
                raise _config_error(declaration, f"unknown marker argument {name!r}")
            if kw.arg in slots:
                raise _config_error(declaration, f"marker slot {kw.arg!r} given twice")
            slots[kw.arg] = kw.value
    if len(slots) != 1:
        raise _config_error(
            declaration,
            "marker must set exactly one of 'value' or 'multi' "
            f"(found {len(slots)})",
        )
    if VALUE_SLOT in slots:
        written = [slots[VALUE_SLOT]]
    else:
        multi = slots[MULTI_SLOT]
        if not isinstance(multi, (ast.List, ast.Tuple)):
            raise _config_error(declaration, "'multi' must be a list or tuple literal")
        written = list(multi.elts)
    references: list[ast.expr] = []
    for node in written:
        if _is_none(node):
            continue
        if not _is_type_expression(node):
            raise _config_error(
                declaration, f"contract reference {ast.unparse(node)!r} is not a type"
            )
        references.append(node)
    if not references:
        raise _config_error(declaration, "marker requests no contract")
    return DelegationRequest(declaration=declaration, references=tuple(references))


def _match(
    request: DelegationRequest,
    requested: list[TypeRef],
    candidates: list[TypeRef],
    *,
    settings: DelegationSettings,
) -> ResolvedDelegation:
    declaration = request.declaration
    wanted = {ref.qualname for ref in requested}
    matches = [
        (position, candidate)
        for position, candidate in enumerate(candidates)
        if candidate.qualname in wanted
    ]
    if len(matches) != len(requested):
        found = ", ".join(candidate.qualname for _, candidate in matches) or "none"
        raise ResolutionError(
            f"requested {len(requested)} contract(s) "
            f"[{', '.join(request.texts)}] but matched {len(matches)} "
            f"among implemented contracts ({found})",
            declaration=declaration.qualname,
            location=declaration.location,
        )
    remaining = list(matches)
    ordered: list[tuple[int, TypeRef]] = []
    for ref in requested:
        for item in remaining:
            if item[1].qualname == ref.qualname:
                ordered.append(item)
                remaining.remove(item)
                break
        else:
            raise ResolutionError(
                f"contract {ref.qualname} is not implemented once per request",
                declaration=declaration.qualname,
                location=declaration.location,
            )
    delegates = tuple(
        NamedDelegate(contract=candidate, field_name=field_name(index, settings))
        for index, (_, candidate) in enumerate(ordered)
    )
    base_order = tuple(
        index
        for index, _ in sorted(enumerate(ordered), key=lambda item: item[1][0])
    )
    return ResolvedDelegation(
        declaration=declaration, delegates=delegates, base_order=base_order
    )


def resolve(
    toolchain: Toolchain,
    declaration: MarkedDeclaration,
    *,
    settings: DelegationSettings | None = None,
) -> Resolution:
    settings = settings or DelegationSettings()
    try:
        request = extract_request(declaration)
        requested: list[TypeRef] = []
        for node in request.references:
            ref = toolchain.resolve_reference(node, declaration.module)
            if ref is None:
                raise ResolutionError(
                    f"cannot resolve contract {ast.unparse(node)!r} to a class",
                    declaration=declaration.qualname,
                    location=declaration.location,
                )
            requested.append(ref)
        candidates = toolchain.implemented_contracts(declaration)
        return Resolution(value=_match(request, requested, candidates, settings=settings))
    except (ConfigurationError, ResolutionError) as exc:
        return Resolution(error=exc)
