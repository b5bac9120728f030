from __future__ import annotations

from delegen.delegation.model import OperationSignature
from delegen.toolchain.contract import Toolchain
from delegen.toolchain.model import (
    PARAM_VAR_KEYWORD,
    PARAM_VAR_POSITIONAL,
    ClosureEntry,
    Member,
    Parameter,
    TypeRef,
)

LIFECYCLE_DUNDERS: frozenset[str] = frozenset(
    {
        "__init__",
        "__new__",
        "__init_subclass__",
        "__class_getitem__",
        "__subclasshook__",
        "__post_init__",
        "__del__",
        "__getattr__",
        "__getattribute__",
        "__setattr__",
        "__delattr__",
    }
)

_PASSTHROUGH = (
    Parameter(name="args", kind=PARAM_VAR_POSITIONAL),
    Parameter(name="kwargs", kind=PARAM_VAR_KEYWORD),
)


def is_dunder(name: str) -> bool:
    return len(name) > 4 and name.startswith("__") and name.endswith("__")


def is_forwardable(member: Member) -> bool:
    """Whether a member is an operation a delegate is expected to provide."""
    if member.static or member.classmethod:
        return False
    if is_dunder(member.name):
        return member.name not in LIFECYCLE_DUNDERS
    return not member.name.startswith("_")


def _signature(contract: TypeRef, entry: ClosureEntry) -> OperationSignature:
    bindings = entry.owner.bindings()
    member = entry.member
    return OperationSignature(
        name=member.name,
        kind=member.kind,
        parameters=tuple(param.substitute(bindings) for param in member.parameters),
        returns=member.returns.substitute(bindings) if member.returns else None,
        contract=contract.qualname,
        declared_by=entry.owner.qualname,
    )


def collect_operations(
    toolchain: Toolchain, contract: TypeRef
) -> tuple[OperationSignature, ...]:
    """Operation closure of ``contract``, in most-derived-first order.

    A name is claimed by the first class in the closure that defines it; a
    claim by an ineligible member (a static override, say) hides the name from
    every ancestor. Names defined only through ``@overload`` stubs are
    forwarded with a pass-through signature.
    """
    claimed: set[str] = set()
    overloaded: dict[str, ClosureEntry] = {}
    operations: list[OperationSignature] = []
    for entry in toolchain.member_closure(contract):
        member = entry.member
        if member.overload:
            overloaded.setdefault(member.name, entry)
            continue
        if member.name in claimed:
            continue
        claimed.add(member.name)
        if is_forwardable(member):
            operations.append(_signature(contract, entry))
    for name, entry in overloaded.items():
        if name in claimed or not is_forwardable(entry.member):
            continue
        claimed.add(name)
        operations.append(
            OperationSignature(
                name=name,
                kind=entry.member.kind,
                parameters=_PASSTHROUGH,
                contract=contract.qualname,
                declared_by=entry.owner.qualname,
            )
        )
    return tuple(operations)
