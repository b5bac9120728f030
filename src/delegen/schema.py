from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel

from delegen.delegation.model import (
    DeclarationOutcome,
    GeneratedTypeDescription,
    RoundReport,
)
from delegen.toolchain.model import Parameter


class DeclarationOutcomeDTO(BaseModel):
    declaration: str
    location: str
    status: str
    module: str = ""
    path: str = ""
    operations: int = 0
    error_kind: Optional[str] = None
    error: Optional[str] = None
    warnings: List[str] = []


class ParseFailureDTO(BaseModel):
    path: str
    stage: str
    error: str


class RoundReportDTO(BaseModel):
    ok: bool
    outcomes: List[DeclarationOutcomeDTO] = []
    parse_failures: List[ParseFailureDTO] = []
    generated: int = 0
    unchanged: int = 0
    stale: int = 0
    failed: int = 0


class ParameterDTO(BaseModel):
    name: str
    kind: str
    annotation: Optional[str] = None
    default: Optional[str] = None


class FieldDTO(BaseModel):
    name: str
    annotation: str
    contract: str


class ForwardingOperationDTO(BaseModel):
    name: str
    kind: str
    field: str
    contract: str
    parameters: List[ParameterDTO] = []
    returns: Optional[str] = None
    returns_value: bool = True


class ImportDTO(BaseModel):
    name: str
    module: Optional[str] = None
    alias: Optional[str] = None
    type_checking: bool = False


class GeneratedTypeDTO(BaseModel):
    declaration: str
    module: str
    class_name: str
    type_params: List[str] = []
    bases: List[str] = []
    fields: List[FieldDTO] = []
    constructor_parameters: List[str] = []
    operations: List[ForwardingOperationDTO] = []
    imports: List[ImportDTO] = []
    warnings: List[str] = []


class PlanResponseDTO(BaseModel):
    types: List[GeneratedTypeDTO] = []
    failures: List[DeclarationOutcomeDTO] = []


def outcome_dto(outcome: DeclarationOutcome) -> DeclarationOutcomeDTO:
    return DeclarationOutcomeDTO(
        declaration=outcome.declaration,
        location=outcome.location,
        status=outcome.status,
        module=outcome.module,
        path=outcome.path,
        operations=outcome.operations,
        error_kind=outcome.error_kind or None,
        error=outcome.error or None,
        warnings=list(outcome.warnings),
    )


def round_report_dto(report: RoundReport) -> RoundReportDTO:
    return RoundReportDTO(
        ok=report.ok,
        outcomes=[outcome_dto(outcome) for outcome in report.outcomes],
        parse_failures=[
            ParseFailureDTO(path=str(item.path), stage=item.stage, error=item.error)
            for item in report.parse_failures
        ],
        generated=len(report.generated),
        unchanged=len(report.unchanged),
        stale=len(report.stale),
        failed=len(report.failed),
    )


def _parameter_dto(param: Parameter) -> ParameterDTO:
    return ParameterDTO(
        name=param.name,
        kind=param.kind,
        annotation=param.annotation.text if param.annotation else None,
        default=param.default.text if param.default else None,
    )


def generated_type_dto(description: GeneratedTypeDescription) -> GeneratedTypeDTO:
    return GeneratedTypeDTO(
        declaration=description.declaration,
        module=description.qualified_module,
        class_name=description.class_name,
        type_params=[spec.local_name for spec in description.type_params],
        bases=[base.expression for base in description.bases],
        fields=[
            FieldDTO(name=f.name, annotation=f.annotation, contract=f.contract)
            for f in description.fields
        ],
        constructor_parameters=list(description.constructor_parameters),
        operations=[
            ForwardingOperationDTO(
                name=op.name,
                kind=op.kind,
                field=op.field_name,
                contract=op.contract,
                parameters=[_parameter_dto(p) for p in op.parameters],
                returns=op.returns.text if op.returns else None,
                returns_value=op.returns_value,
            )
            for op in description.operations
        ],
        imports=[
            ImportDTO(
                name=spec.name,
                module=spec.module,
                alias=spec.alias,
                type_checking=spec.type_checking,
            )
            for spec in description.imports
        ],
        warnings=list(description.warnings),
    )
