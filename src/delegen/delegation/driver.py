"""One generation round over every marked declaration the toolchain knows.

Declarations are processed one at a time in (path, line) order. A failure is
recorded against its declaration and the round moves on, unless the driver
was built with ``fail_fast``.
"""

from __future__ import annotations

from delegen.config import DelegationSettings
from delegen.delegation.collector import collect_operations
from delegen.delegation.model import (
    STATUS_FAILED,
    STATUS_GENERATED,
    STATUS_STALE,
    STATUS_UNCHANGED,
    DeclarationOutcome,
    GeneratedTypeDescription,
    RoundReport,
)
from delegen.delegation.resolver import resolve
from delegen.delegation.synthesis import synthesize
from delegen.emission.backend import (
    EMIT_STALE,
    EMIT_UNCHANGED,
    EmissionBackend,
    MemoryEmitter,
)
from delegen.emission.render import render_module
from delegen.exceptions import DelegationError, InternalStateError
from delegen.invariants import never
from delegen.logging_config import get_logger
from delegen.toolchain.contract import Toolchain
from delegen.toolchain.model import MarkedDeclaration

_LOGGER = get_logger(__name__)

_EMIT_STATUS = {
    EMIT_STALE: STATUS_STALE,
    EMIT_UNCHANGED: STATUS_UNCHANGED,
}


class DelegationDriver:
    def __init__(
        self,
        settings: DelegationSettings | None = None,
        *,
        emitter: EmissionBackend | None = None,
        fail_fast: bool = False,
    ) -> None:
        self.settings = settings or DelegationSettings()
        self.emitter: EmissionBackend = emitter if emitter is not None else MemoryEmitter()
        self.fail_fast = fail_fast
        self._toolchain: Toolchain | None = None

    def init(self, toolchain: Toolchain) -> DelegationDriver:
        self._toolchain = toolchain
        return self

    @property
    def toolchain(self) -> Toolchain:
        if self._toolchain is None:
            never("delegation driver used before init(toolchain)")
        return self._toolchain

    def describe(self, declaration: MarkedDeclaration) -> GeneratedTypeDescription:
        """Resolve, collect and synthesize one declaration, raising on failure."""
        toolchain = self.toolchain
        resolved = resolve(toolchain, declaration, settings=self.settings).unwrap()
        operations = [
            collect_operations(toolchain, delegate.contract)
            for delegate in resolved.delegates
        ]
        return synthesize(resolved, operations, settings=self.settings).unwrap()

    def process_declaration(self, declaration: MarkedDeclaration) -> DeclarationOutcome:
        log = _LOGGER.bind(declaration=declaration.qualname, module=declaration.module)
        try:
            description = self.describe(declaration)
            result = self.emitter.emit(description, render_module(description))
        except InternalStateError:
            raise
        except DelegationError as exc:
            if self.fail_fast:
                raise
            log.warning("declaration.failed", error_kind=exc.kind, error=str(exc))
            return DeclarationOutcome(
                declaration=declaration.qualname,
                location=declaration.location,
                status=STATUS_FAILED,
                error_kind=exc.kind,
                error=str(exc),
            )
        for warning in description.warnings:
            log.warning("declaration.warning", warning=warning)
        status = _EMIT_STATUS.get(result.status, STATUS_GENERATED)
        log.info(
            "declaration.generated",
            status=status,
            generated_module=result.module,
            operations=len(description.operations),
        )
        return DeclarationOutcome(
            declaration=declaration.qualname,
            location=declaration.location,
            status=status,
            module=result.module,
            path=str(result.path) if result.path is not None else "",
            operations=len(description.operations),
            warnings=description.warnings,
        )

    def process_round(self) -> RoundReport:
        toolchain = self.toolchain
        report = RoundReport(parse_failures=list(getattr(toolchain, "parse_failures", [])))
        for failure in report.parse_failures:
            _LOGGER.warning(
                "source.skipped", path=str(failure.path), stage=failure.stage, error=failure.error
            )
        for declaration in toolchain.marked_declarations():
            report.outcomes.append(self.process_declaration(declaration))
        _LOGGER.info(
            "round.completed",
            declarations=len(report.outcomes),
            generated=len(report.generated),
            unchanged=len(report.unchanged),
            stale=len(report.stale),
            failed=len(report.failed),
        )
        return report
