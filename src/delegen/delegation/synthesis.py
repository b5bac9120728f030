"""Build the description of a generated delegating base class.

Synthesis is pure: it reads a ResolvedDelegation and the collected operation
signatures and returns a GeneratedTypeDescription, or a CollisionError under
the ``error`` collision policy.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from delegen.config import DelegationSettings
from delegen.delegation.model import (
    ContractBase,
    FieldDescription,
    ForwardingOperation,
    GeneratedTypeDescription,
    ImportSpec,
    OperationSignature,
    ResolvedDelegation,
    SynthesisResult,
    TypeParamSpec,
)
from delegen.delegation.naming import (
    generated_class_name,
    generated_module_name,
    unique_local_name,
)
from delegen.exceptions import CollisionError
from delegen.toolchain.model import ImportNeed, Parameter, SourceExpr, TypeRef

COLLISION_ERROR = "error"

_ANY = SourceExpr(text="typing.Any", needs=(ImportNeed(name="typing"),))


@dataclass
class _Binding:
    local: str
    runtime: bool


class ImportPlan:
    """Names bound by a generated module and where they come from.

    Every ``(module, name)`` source gets exactly one local name. A source whose
    preferred name is already taken is imported under an alias and the
    expressions that use it are rewritten.
    """

    def __init__(self, reserved: Iterable[str] = ()) -> None:
        self._reserved = set(reserved)
        self._bindings: dict[tuple[str | None, str], _Binding] = {}
        self._locals: dict[str, tuple[str | None, str]] = {}
        self.warnings: list[str] = []

    def _taken(self) -> set[str]:
        return self._reserved | set(self._locals)

    def bind(self, module: str | None, name: str, *, runtime: bool = True) -> str:
        key = (module, name)
        binding = self._bindings.get(key)
        if binding is not None:
            binding.runtime = binding.runtime or runtime
            return binding.local
        if module is None:
            local = name.split(".")[0]
            owner = self._locals.get(local)
            if owner is not None and owner[0] is not None:
                self.warnings.append(
                    f"module {name} is shadowed by the imported name {local!r}"
                )
                return local
            self._locals.setdefault(local, key)
        else:
            local = unique_local_name(name, self._taken())
            self._locals[local] = key
        self._bindings[key] = _Binding(local=local, runtime=runtime)
        return local

    def rewrite(self, expr: SourceExpr, *, runtime: bool = False) -> str:
        renames: dict[str, SourceExpr] = {}
        for need in expr.needs:
            local = self.bind(need.module, need.name, runtime=runtime)
            if need.module is not None and local != need.name:
                renames[need.name] = SourceExpr(text=local)
        return expr.substitute(renames).text if renames else expr.text

    def specs(self) -> tuple[ImportSpec, ...]:
        specs: list[ImportSpec] = []
        for (module, name), binding in self._bindings.items():
            alias = binding.local if module is not None and binding.local != name else None
            specs.append(
                ImportSpec(
                    name=name,
                    module=module,
                    alias=alias,
                    type_checking=not binding.runtime,
                )
            )
        specs.sort(key=lambda spec: (spec.type_checking, spec.module or "", spec.name))
        return tuple(specs)


def _class_path(ref: TypeRef) -> str:
    if ref.module and ref.qualname.startswith(f"{ref.module}."):
        return ref.qualname[len(ref.module) + 1 :]
    return ref.name


def _bind_contract(plan: ImportPlan, ref: TypeRef) -> str:
    head, _, rest = _class_path(ref).partition(".")
    local = plan.bind(ref.module, head)
    return f"{local}.{rest}" if rest else local


def _parameter(
    plan: ImportPlan, param: Parameter, bindings: dict[str, SourceExpr]
) -> Parameter:
    annotation = None
    if param.annotation is not None:
        annotation = SourceExpr(text=plan.rewrite(param.annotation.substitute(bindings)))
    default = None
    if param.default is not None:
        default = SourceExpr(text=plan.rewrite(param.default, runtime=True))
    return Parameter(name=param.name, kind=param.kind, annotation=annotation, default=default)


def synthesize(
    resolved: ResolvedDelegation,
    operations: Sequence[Sequence[OperationSignature]],
    *,
    settings: DelegationSettings | None = None,
) -> SynthesisResult:
    """Describe the generated class for ``resolved``.

    ``operations[i]`` holds the collected signatures of the i-th delegate.
    """
    settings = settings or DelegationSettings()
    declaration = resolved.declaration
    class_name = generated_class_name(declaration.name, settings)
    plan = ImportPlan(reserved={class_name, "TYPE_CHECKING", "annotations"})
    warnings: list[str] = []

    contract_locals = [_bind_contract(plan, d.contract) for d in resolved.delegates]

    type_params: dict[str, TypeParamSpec] = {}
    raw_bindings: list[dict[str, SourceExpr]] = []
    base_expressions: list[str] = []
    for delegate, local in zip(resolved.delegates, contract_locals):
        contract = delegate.contract
        local_for: dict[str, str] = {}
        for param in contract.params:
            spec = type_params.get(param.identity)
            if spec is None:
                spec = TypeParamSpec(local_name=plan.bind(param.module, param.name), param=param)
                type_params[param.identity] = spec
            local_for[param.name] = spec.local_name
        bindings: dict[str, SourceExpr] = {}
        if not contract.args:
            for name in contract.param_names:
                if name in local_for:
                    bindings[name] = SourceExpr(text=local_for[name])
                else:
                    bindings[name] = _ANY
        raw_bindings.append(bindings)
        if contract.param_names and len(local_for) == len(contract.param_names):
            args = ", ".join(local_for[name] for name in contract.param_names)
            base_expressions.append(f"{local}[{args}]")
        else:
            base_expressions.append(local)

    bases = tuple(
        ContractBase(
            contract=resolved.delegates[index].contract.qualname,
            expression=base_expressions[index],
        )
        for index in (resolved.base_order or range(len(resolved.delegates)))
    )

    fields: list[FieldDescription] = []
    for delegate, local in zip(resolved.delegates, contract_locals):
        contract = delegate.contract
        annotation = local
        if contract.args:
            annotation = f"{local}[{', '.join(plan.rewrite(arg) for arg in contract.args)}]"
        fields.append(
            FieldDescription(
                name=delegate.field_name,
                annotation=annotation,
                contract=contract.qualname,
            )
        )

    claimed: dict[str, str] = {field.name: f"field {field.name}" for field in fields}
    forwarding: list[ForwardingOperation] = []
    for index, delegate in enumerate(resolved.delegates):
        bindings = raw_bindings[index]
        signatures = operations[index] if index < len(operations) else ()
        for signature in signatures:
            owner = claimed.get(signature.name)
            if owner is not None:
                message = (
                    f"operation {signature.name!r} of {delegate.contract.qualname} "
                    f"collides with {owner}"
                )
                if settings.on_collision == COLLISION_ERROR:
                    return SynthesisResult(
                        error=CollisionError(
                            message,
                            declaration=declaration.qualname,
                            location=declaration.location,
                        )
                    )
                warnings.append(f"{message}; keeping the first")
                continue
            claimed[signature.name] = (
                f"{delegate.field_name} ({delegate.contract.qualname})"
            )
            returns = None
            if signature.returns is not None:
                returns = SourceExpr(
                    text=plan.rewrite(signature.returns.substitute(bindings))
                )
            forwarding.append(
                ForwardingOperation(
                    name=signature.name,
                    field_name=delegate.field_name,
                    kind=signature.kind,
                    parameters=tuple(
                        _parameter(plan, param, bindings) for param in signature.parameters
                    ),
                    returns=returns,
                    contract=delegate.contract.qualname,
                )
            )

    description = GeneratedTypeDescription(
        declaration=declaration.qualname,
        package=declaration.package,
        module_name=generated_module_name(declaration.name, settings),
        class_name=class_name,
        source_path=declaration.path,
        type_params=tuple(type_params.values()),
        bases=bases,
        fields=tuple(fields),
        constructor_parameters=tuple(field.name for field in fields),
        operations=tuple(forwarding),
        imports=plan.specs(),
        warnings=tuple(plan.warnings + warnings),
    )
    return SynthesisResult(value=description)
