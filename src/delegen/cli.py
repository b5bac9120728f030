from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer

from delegen.config import COLLISION_POLICIES, DelegationSettings, load_settings
from delegen.delegation.driver import DelegationDriver
from delegen.delegation.model import STATUS_FAILED, RoundReport
from delegen.emission.backend import EmissionBackend, FileEmitter, MemoryEmitter
from delegen.exceptions import DelegationError, InternalStateError
from delegen.logging_config import configure_logging
from delegen.schema import (
    DeclarationOutcomeDTO,
    PlanResponseDTO,
    generated_type_dto,
    round_report_dto,
)
from delegen.toolchain.source_index import SourceToolchain

app = typer.Typer(add_completion=False)

_EXIT_FAILED = 1
_EXIT_INTERNAL = 2


def _load(
    *,
    paths: Optional[List[Path]],
    root: Path,
    config: Optional[Path],
    on_collision: Optional[str],
    runtime_contracts: Optional[bool],
) -> tuple[DelegationSettings, SourceToolchain]:
    if on_collision is not None and on_collision not in COLLISION_POLICIES:
        raise typer.BadParameter(
            f"--on-collision must be one of: {', '.join(COLLISION_POLICIES)}"
        )
    if config is not None and not config.is_file():
        raise typer.BadParameter(f"config file not found: {config}")
    settings = load_settings(
        root=root,
        config_path=config,
        overrides={
            "on_collision": on_collision,
            "allow_runtime_contracts": runtime_contracts,
        },
    )
    toolchain = SourceToolchain(settings, root=root).load(paths or [root])
    return settings, toolchain


def _echo_report(report: RoundReport, *, emitter: EmissionBackend) -> None:
    for failure in report.parse_failures:
        typer.echo(f"skipped {failure.path}: {failure.stage} failed: {failure.error}", err=True)
    for outcome in report.outcomes:
        if outcome.status == STATUS_FAILED:
            typer.echo(f"FAILED {outcome.error_kind}: {outcome.error}", err=True)
            continue
        typer.echo(f"{outcome.status} {outcome.path or outcome.module}")
        for warning in outcome.warnings:
            typer.echo(f"  warning: {warning}", err=True)
    if isinstance(emitter, MemoryEmitter):
        for module, source in sorted(emitter.outputs.items()):
            typer.echo(f"# --- {module} ---")
            typer.echo(source, nl=False)


@app.command()
def generate(
    paths: Optional[List[Path]] = typer.Argument(
        None, help="Source files or directories to scan (default: --root)."
    ),
    root: Path = typer.Option(Path("."), "--root", help="Import root of the source tree."),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to delegen.toml."),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Print generated modules instead of writing them."
    ),
    check: bool = typer.Option(
        False, "--check", help="Fail when a generated module is missing or out of date."
    ),
    fail_fast: bool = typer.Option(False, "--fail-fast", help="Stop at the first failure."),
    json_output: bool = typer.Option(False, "--json", help="Print the round report as JSON."),
    on_collision: Optional[str] = typer.Option(None, "--on-collision"),
    runtime_contracts: Optional[bool] = typer.Option(
        None, "--runtime-contracts/--no-runtime-contracts"
    ),
    log_level: str = typer.Option("WARNING", "--log-level"),
    log_json: bool = typer.Option(False, "--log-json"),
) -> None:
    """Generate delegating base classes for every marked class."""
    configure_logging(level=log_level, format_json=log_json)
    settings, toolchain = _load(
        paths=paths,
        root=root,
        config=config,
        on_collision=on_collision,
        runtime_contracts=runtime_contracts,
    )
    emitter: EmissionBackend
    if dry_run:
        emitter = MemoryEmitter()
    else:
        emitter = FileEmitter(check=check)
    driver = DelegationDriver(settings, emitter=emitter, fail_fast=fail_fast).init(toolchain)
    try:
        report = driver.process_round()
    except InternalStateError as exc:
        typer.echo(f"internal error: {exc}", err=True)
        raise typer.Exit(code=_EXIT_INTERNAL) from exc
    except DelegationError as exc:
        typer.echo(f"FAILED {exc.kind}: {exc}", err=True)
        raise typer.Exit(code=_EXIT_FAILED) from exc
    if json_output:
        typer.echo(round_report_dto(report).model_dump_json(indent=2))
    else:
        _echo_report(report, emitter=emitter)
    if not report.ok:
        raise typer.Exit(code=_EXIT_FAILED)


@app.command()
def plan(
    paths: Optional[List[Path]] = typer.Argument(None),
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    on_collision: Optional[str] = typer.Option(None, "--on-collision"),
    runtime_contracts: Optional[bool] = typer.Option(
        None, "--runtime-contracts/--no-runtime-contracts"
    ),
    log_level: str = typer.Option("WARNING", "--log-level"),
    log_json: bool = typer.Option(False, "--log-json"),
) -> None:
    """Print the generated type descriptions as JSON without writing anything."""
    configure_logging(level=log_level, format_json=log_json)
    settings, toolchain = _load(
        paths=paths,
        root=root,
        config=config,
        on_collision=on_collision,
        runtime_contracts=runtime_contracts,
    )
    driver = DelegationDriver(settings).init(toolchain)
    response = PlanResponseDTO()
    for declaration in toolchain.marked_declarations():
        try:
            description = driver.describe(declaration)
        except InternalStateError as exc:
            typer.echo(f"internal error: {exc}", err=True)
            raise typer.Exit(code=_EXIT_INTERNAL) from exc
        except DelegationError as exc:
            response.failures.append(
                DeclarationOutcomeDTO(
                    declaration=declaration.qualname,
                    location=declaration.location,
                    status=STATUS_FAILED,
                    error_kind=exc.kind,
                    error=str(exc),
                )
            )
            continue
        response.types.append(generated_type_dto(description))
    typer.echo(response.model_dump_json(indent=2))
    if response.failures:
        raise typer.Exit(code=_EXIT_FAILED)


def main() -> None:
    app()
