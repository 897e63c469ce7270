"""Ensemble (ens) - multi-model AI orchestration from the command line."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _fail(message: str) -> None:
    console.print(f"  [red]ERROR[/red] {message}")
    sys.exit(1)


def _build_service(ctx: click.Context):
    from ..core.config import get_effective_config
    from ..core.service import AIService

    project = ctx.obj.get("project")
    config = get_effective_config(
        project_path=Path(project) if project else None,
        config_path=Path(ctx.obj["config"]) if ctx.obj.get("config") else None,
    )
    return AIService(config, project_path=Path(project) if project else None)


async def _initialize(service) -> None:
    failures = await service.initialize_models()
    for model_id, error in failures.items():
        console.print(f"  [yellow]WARN[/yellow] Model {model_id} unavailable: {error}")


def _print_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.pass_context
@click.option("--config", "-c", "config_path", type=click.Path(exists=True, dir_okay=False), help="YAML config file")
@click.option("--project", "-p", type=click.Path(exists=True, file_okay=False), help="Project path")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def ens_cli(ctx: click.Context, config_path: str | None, project: str | None, verbose: bool) -> None:
    """Ensemble - run AI agents and workflows across multiple models."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config_path
    ctx.obj["project"] = project


@ens_cli.command()
@click.option("--project", "-p", type=click.Path(exists=True, file_okay=False), required=True)
def init(project: str) -> None:
    """Initialize Ensemble in a project."""
    from ..core.service import initialize_project

    initialize_project(Path(project))


@ens_cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def models(ctx: click.Context, as_json: bool) -> None:
    """List configured models and their statistics."""
    service = _build_service(ctx)
    stats = service.get_model_stats()
    if as_json:
        _print_json([s.model_dump(mode="json", by_alias=True) for s in stats])
        return

    table = Table(title="Models")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Provider")
    table.add_column("Status")
    table.add_column("Success rate", justify="right")
    table.add_column("Capabilities")
    for s in stats:
        table.add_row(
            s.id,
            s.provider.value,
            s.status.value,
            f"{s.success_rate:.0%}",
            ", ".join(c.value for c in s.capabilities),
        )
    console.print(table)


@ens_cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def agents(ctx: click.Context, as_json: bool) -> None:
    """List available agents."""
    service = _build_service(ctx)
    infos = service.get_available_agents()
    if as_json:
        _print_json([a.model_dump(mode="json", by_alias=True) for a in infos])
        return

    table = Table(title="Agents")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Description")
    for a in infos:
        table.add_row(a.id, a.name, a.description)
    console.print(table)


@ens_cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def workflows(ctx: click.Context, as_json: bool) -> None:
    """List available workflows."""
    service = _build_service(ctx)
    infos = service.get_available_workflows()
    if as_json:
        _print_json([w.model_dump(mode="json", by_alias=True) for w in infos])
        return

    table = Table(title="Workflows")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Mode")
    table.add_column("Steps")
    for w in infos:
        table.add_row(w.id, w.name, w.mode.value, " -> ".join(s.agent for s in w.steps))
    console.print(table)


@ens_cli.command("run-agent")
@click.argument("agent_id")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--language", "-l", type=str, help="Source language")
@click.option("--context-file", type=click.Path(exists=True, dir_okay=False), help="Extra context")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def run_agent(
    ctx: click.Context,
    agent_id: str,
    file: str,
    language: str | None,
    context_file: str | None,
    as_json: bool,
) -> None:
    """Run one agent over FILE."""
    from ..core.workflows import RunOptions

    service = _build_service(ctx)
    code = Path(file).read_text(encoding="utf-8")
    context = Path(context_file).read_text(encoding="utf-8") if context_file else None

    async def run():
        try:
            await _initialize(service)
            return await service.run_agent(
                agent_id,
                code,
                RunOptions(language=language, context=context, max_retries=service.max_retries),
            )
        finally:
            await service.aclose()

    try:
        result = asyncio.run(run())
    except Exception as e:
        _fail(str(e))
        return

    if as_json:
        _print_json(result.model_dump(mode="json", by_alias=True))
        return

    console.print(f"\n  [bold cyan]{result.agent_name}[/bold cyan] ({result.model}, {result.execution_time}s)")
    if result.result.score is not None:
        console.print(f"  Score: [white]{result.result.score:g}[/white]")
    console.print(f"  {result.result.summary or 'Analysis completed'}")
    if result.result.parse_error:
        console.print(f"  [yellow]WARN[/yellow] Unstructured response: {result.result.parse_error}")


@ens_cli.command("run-workflow")
@click.argument("workflow_id")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--language", "-l", type=str, help="Source language")
@click.option("--context-file", type=click.Path(exists=True, dir_okay=False), help="Extra context")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def run_workflow(
    ctx: click.Context,
    workflow_id: str,
    file: str,
    language: str | None,
    context_file: str | None,
    as_json: bool,
) -> None:
    """Run a workflow over FILE."""
    from ..core.workflows import RunOptions

    service = _build_service(ctx)
    code = Path(file).read_text(encoding="utf-8")
    context = Path(context_file).read_text(encoding="utf-8") if context_file else None

    def on_entry(entry) -> None:
        if entry.status in ("step_completed", "step_failed"):
            color = "green" if entry.status == "step_completed" else "red"
            console.print(f"  [{color}]{entry.status}[/{color}] {entry.data.get('step')}")

    if not as_json:
        service.subscribe(on_entry)

    async def run():
        try:
            await _initialize(service)
            return await service.run_workflow(
                workflow_id,
                code,
                RunOptions(language=language, context=context, max_retries=service.max_retries),
            )
        finally:
            await service.aclose()

    try:
        result = asyncio.run(run())
    except Exception as e:
        _fail(str(e))
        return

    if as_json:
        _print_json(result.model_dump(mode="json", by_alias=True))
        return

    combined = result.combined
    console.print(
        f"\n  [bold cyan]{result.workflow_name}[/bold cyan] "
        f"{combined.completed_steps}/{combined.total_steps} steps in {result.execution_time}s"
    )
    if combined.overall_score is not None:
        console.print(f"  Overall score: [white]{combined.overall_score:.1f}[/white]")
    for line in combined.summary.splitlines():
        console.print(f"  {line}")
    for issue in combined.priority[:10]:
        severity = str(issue.get("severity") or "unknown").upper()
        console.print(f"  [yellow]{severity}[/yellow] {issue.get('description') or issue.get('type') or issue}")
    for error in result.errors:
        console.print(f"  [red]FAILED[/red] {error.step}: {error.error}")


@ens_cli.command()
@click.argument("prompt")
@click.option("--capability", type=str, default=None, help="Required capability")
@click.option("--model", "-m", type=str, help="Preferred model id")
@click.option("--multi-model", is_flag=True, help="Ask several models and combine")
@click.pass_context
def chat(ctx: click.Context, prompt: str, capability: str | None, model: str | None, multi_model: bool) -> None:
    """Send PROMPT to the best available model."""
    from ..core.engine import GenerateOptions

    service = _build_service(ctx)
    capability = capability or service.config.get("ai", {}).get("capability", "chat")

    async def run():
        try:
            await _initialize(service)
            return await service.generate(
                prompt,
                GenerateOptions(
                    capability=capability,
                    preferred_model=model,
                    multi_model=multi_model,
                    max_retries=service.max_retries,
                ),
            )
        finally:
            await service.aclose()

    try:
        result = asyncio.run(run())
    except Exception as e:
        _fail(str(e))
        return

    click.echo(result.response)
    detail = f"{result.model}, confidence {result.confidence:.2f}"
    if result.consensus is not None:
        detail += f", consensus {result.consensus:.2f}"
    console.print(f"  [dim]{detail}[/dim]")


def main() -> None:
    ens_cli()


if __name__ == "__main__":
    main()
