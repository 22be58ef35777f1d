"""Command line interface for inspecting skillflow workflows, runs and caches."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
import yaml
from pydantic import ValidationError

from skillflow.cache import SQLStepCache, get_step_cache
from skillflow.cli_utils.workflow import _build_loader, _format_step_lines
from skillflow.config import SkillflowConfig, load_config
from skillflow.errors import SkillflowError
from skillflow.persistence import RunRepository, get_repository

app = typer.Typer(help="CLI for skillflow workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for inspecting workflow definitions")
run_app = typer.Typer(help="Commands for inspecting persisted runs")
cache_app = typer.Typer(help="Commands for managing the step cache")

app.add_typer(workflow_app, name="workflow")
app.add_typer(run_app, name="run")
app.add_typer(cache_app, name="cache")


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", help="Path to skillflow.yaml (default: SKILLFLOW_CONFIG or ./skillflow.yaml)"
    ),
) -> None:
    """skillflow CLI entry point."""
    settings = load_config(str(config) if config else None)
    logging.basicConfig(level=settings.log_level)
    ctx.obj = settings


def _config(ctx: typer.Context) -> SkillflowConfig:
    return ctx.obj if isinstance(ctx.obj, SkillflowConfig) else load_config()


def _repository(ctx: typer.Context) -> RunRepository:
    config = _config(ctx)
    # Without a database the process-wide in-memory repository is used.
    return get_repository(config=config) if config.database_url else get_repository()


@workflow_app.command("list")
def workflow_list(
    ctx: typer.Context,
    path: Optional[Path] = typer.Option(None, help="Workflows directory containing index.yaml"),
) -> None:
    """
    List every workflow version registered from the workflows directory.

    Example:
        skillflow workflow list
        # Output: campaign_build    1.0.0    4 steps    Build a campaign
    """
    loader = _build_loader(_config(ctx), path)
    result = loader.load_all_workflows()
    for error in result.errors:
        typer.secho(f"{error.workflow_name}: {error.message}", fg=typer.colors.RED, err=True)

    summaries = loader.registry.list_workflows()
    if not summaries:
        typer.echo("No workflows found")
        return
    for summary in summaries:
        typer.echo(
            f"{summary.name}\t{summary.version}\t{summary.step_count} steps"
            + (f"\t{summary.description}" if summary.description else "")
        )


@workflow_app.command("show")
def workflow_show(
    ctx: typer.Context,
    name: str,
    version: Optional[str] = typer.Option(None, help="Exact version (default: latest)"),
    path: Optional[Path] = typer.Option(None, help="Workflows directory containing index.yaml"),
) -> None:
    """
    Show the steps of a workflow in execution order.

    Example:
        skillflow workflow show campaign_build --version 1.0.0
        # Output: Workflow campaign_build v1.0.0 (4 steps)
        #         - plan (planner)
        #         - build (builder) <- plan
    """
    loader = _build_loader(_config(ctx), path)
    loader.load_all_workflows()
    workflow = loader.registry.get_workflow(name, version)
    if workflow is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {workflow.workflow_name} v{workflow.version} ({len(workflow.steps)} steps)")
    if workflow.description:
        typer.echo(workflow.description)
    for line in _format_step_lines(workflow):
        typer.echo(f"- {line}")


@workflow_app.command("validate")
def workflow_validate(ctx: typer.Context, file: Path) -> None:
    """
    Validate a single workflow file: schema, selectors and dependency graph.

    Exits with code 1 and prints the problem when the file is invalid.
    """
    loader = _build_loader(_config(ctx))
    try:
        document = loader.load_document(file)
        workflow = loader.compile_document(document)
        loader.registry.register(workflow)
    except ValidationError as exc:
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"])
            typer.secho(f"{field}: {error['msg']}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except (OSError, yaml.YAMLError, SkillflowError) as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(
        f"Workflow {workflow.workflow_name} v{workflow.version} is valid "
        f"({len(workflow.steps)} steps)"
    )


@run_app.command("list")
def run_list(
    ctx: typer.Context,
    tenant: Optional[str] = typer.Option(None, help="Only runs of this tenant"),
) -> None:
    """List persisted runs with their status."""
    repo = _repository(ctx)
    runs = asyncio.run(repo.list_runs(tenant))
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(
            f"{run.id}\t{run.tenant_id}\t{run.workflow_name} v{run.workflow_version}\t{run.status}"
        )


@run_app.command("show")
def run_show(
    ctx: typer.Context,
    run_id: str,
    tenant: str = typer.Option(..., help="Tenant owning the run"),
) -> None:
    """
    Show a run and the status of each of its steps.

    Example:
        skillflow run show 4f1c... --tenant acme
        # Output: Run 4f1c...: completed (campaign_build v1.0.0)
        #         - plan: completed [cache hit] 12ms
        #         - build: failed attempt 3 SKILL_ERROR: boom
    """
    repo = _repository(ctx)
    run = asyncio.run(repo.get_run(run_id, tenant))
    if run is None:
        typer.echo("Run not found")
        raise typer.Exit(code=1)
    typer.echo(f"Run {run.id}: {run.status} ({run.workflow_name} v{run.workflow_version})")
    if run.trigger_payload:
        typer.echo(f"Payload: {run.trigger_payload}")
    if run.base_run_id:
        typer.echo(f"Base run: {run.base_run_id}")
    if run.error:
        typer.echo(f"Error: {run.error.code}: {run.error.message}")
    for step in asyncio.run(repo.list_run_steps(run_id, tenant)):
        line = f"- {step.step_id}: {step.status}"
        if step.cache_hit:
            line += " [cache hit]"
        if step.duration_ms is not None:
            line += f" {step.duration_ms}ms"
        if step.error:
            line += f" attempt {step.error.attempt} {step.error.code}: {step.error.message}"
        typer.echo(line)


@cache_app.command("invalidate")
def cache_invalidate(
    ctx: typer.Context,
    workflow: str,
    step: Optional[str] = typer.Option(None, help="Only entries of this step"),
) -> None:
    """Delete cached step outputs of a workflow, or of one of its steps."""
    cache = get_step_cache(config=_config(ctx))

    async def _invalidate() -> int:
        try:
            if step:
                return await cache.invalidate_step(workflow, step)
            return await cache.invalidate_workflow(workflow)
        finally:
            if isinstance(cache, SQLStepCache):
                await cache.close()

    removed = asyncio.run(_invalidate())
    target = f"{workflow}:{step}" if step else workflow
    typer.echo(f"Invalidated {removed} cache entries for {target}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
