# cli.py
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import List

import click

from gatedci import settings
from gatedci.artifacts import DirectoryArtifactStore, MemoryArtifactStore
from gatedci.errors import DefinitionError, GatedCIError
from gatedci.git_facts.git import trigger_from_git
from gatedci.model import Pipeline, TriggerContext
from gatedci.runner import build_instances, load_workflow, run_pipeline, select_pipelines
from gatedci.ui.console import Console, get_console, set_console

EXIT_OK = 0
EXIT_GATE_FAILED = 1
EXIT_DEFINITION_ERROR = 2

DEFINITION_DIR = ".gatedci"
DEFINITION_SUFFIXES = (".yml", ".yaml", ".json", ".py")


def find_definition_files(root: Path = Path(".")) -> list[Path]:
    """
    Find pipeline definitions: the default file plus everything under
    .gatedci/.
    """
    found: list[Path] = []
    default = root / settings.DEFINITION
    if default.exists():
        found.append(default)

    def_dir = root / DEFINITION_DIR
    if def_dir.is_dir():
        for path in sorted(def_dir.iterdir()):
            if path.suffix in DEFINITION_SUFFIXES and path.is_file():
                found.append(path)

    return found


def discover_definitions(paths: tuple[str, ...]) -> List[Path]:
    """Resolve explicit paths or fall back to discovery; exits on failure."""
    console = get_console()

    if paths:
        resolved = []
        for p in paths:
            path = Path(p)
            if not path.exists():
                console.print_error(
                    "Definition file not found",
                    f"Could not find pipeline definition: {p}",
                    suggestion="Create a definition or pass a different path:\n  gatedci run my_pipeline.yml",
                )
                sys.exit(EXIT_DEFINITION_ERROR)
            resolved.append(path)
        return resolved

    found = find_definition_files()
    if not found:
        console.print_error(
            "No pipeline definition found",
            "Could not find any pipeline definitions.",
            details=[
                "Looked for:",
                f"  {settings.DEFINITION}",
                f"  {DEFINITION_DIR}/*{{{','.join(DEFINITION_SUFFIXES)}}}",
            ],
            suggestion=f"Create {settings.DEFINITION} or pass a path explicitly:\n  gatedci run pipeline.yml",
        )
        sys.exit(EXIT_DEFINITION_ERROR)
    return found


def load_definitions(ctx: click.Context, paths: List[Path]) -> List[Pipeline]:
    console = get_console()
    pipelines = []
    for path in paths:
        try:
            pipelines.append(load_workflow(path))
        except (DefinitionError, TypeError, FileNotFoundError) as e:
            console.print_error(
                "Failed to load pipeline definition",
                f"Could not load {path}",
                details=[str(e)],
            )
            if ctx.obj.get("debug", False):
                console.print_exception(e)
            sys.exit(EXIT_DEFINITION_ERROR)
    return pipelines


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.option("--quiet", is_flag=True, default=False, help="Only print the results summary")
@click.pass_context
def cli(ctx, debug, quiet):
    """gatedci: DAG pipeline runner with matrix jobs and an aggregate gate."""
    set_console(Console(debug=debug, quiet=quiet))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("definitions", nargs=-1, type=click.Path())
@click.option("--event", default=settings.EVENT, show_default=True, help="Trigger event (push, pull_request, ...)")
@click.option("--ref", default=None, help="Trigger ref (defaults to the current git ref)")
@click.option("--workers", default=settings.WORKERS, type=int, help="Number of parallel workers")
@click.option("--fail-fast/--no-fail-fast", default=None, help="Skip remaining jobs after the first failure")
@click.option("--workspace", default=settings.WORKSPACE, show_default=True, type=click.Path(file_okay=False))
@click.option("--artifacts-dir", default=settings.ARTIFACTS_DIR, type=click.Path(file_okay=False),
              help="Keep artifacts on disk instead of in memory")
@click.option("--report", "report_path", default=None, type=click.Path(dir_okay=False),
              help="Write the pipeline report(s) as JSON")
@click.pass_context
def run(ctx, definitions, event, ref, workers, fail_fast, workspace, artifacts_dir, report_path):
    """Run every pipeline definition whose triggers match the event."""
    console = get_console()
    pipelines = load_definitions(ctx, discover_definitions(definitions))

    if ref is None:
        trigger = trigger_from_git(event, cwd=workspace)
    else:
        trigger = TriggerContext(event=event, ref=ref)
    if fail_fast is None and settings.FAIL_FAST:
        fail_fast = True

    selected = select_pipelines(pipelines, trigger)
    if not selected:
        console.print_info(f"No pipeline is triggered by {trigger.event} on '{trigger.ref}'")
        sys.exit(EXIT_OK)

    reports = []
    try:
        for pipeline in selected:
            store = DirectoryArtifactStore(artifacts_dir) if artifacts_dir else MemoryArtifactStore()
            reports.append(
                run_pipeline(
                    pipeline,
                    trigger,
                    store=store,
                    workspace=workspace,
                    max_workers=workers,
                    fail_fast=fail_fast,
                    console=console,
                )
            )
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except DefinitionError as e:
        console.print_error("Invalid pipeline", str(e))
        sys.exit(EXIT_DEFINITION_ERROR)
    except GatedCIError as e:
        console.print_exception(e)
        sys.exit(EXIT_GATE_FAILED)

    passed = all(r.gate_passed for r in reports)
    if report_path:
        payload = {"passed": passed, "pipelines": [r.to_dict() for r in reports]}
        Path(report_path).write_text(json.dumps(payload, indent=2), encoding="utf-8")
        console.print_debug(f"Report written to {report_path}")

    sys.exit(EXIT_OK if passed else EXIT_GATE_FAILED)


@cli.command()
@click.argument("definitions", nargs=-1, type=click.Path())
@click.pass_context
def plan(ctx, definitions):
    """Print the expanded job instances, stage by stage."""
    console = get_console()
    for pipeline in load_definitions(ctx, discover_definitions(definitions)):
        try:
            instances = build_instances(pipeline)
        except DefinitionError as e:
            console.print_error("Invalid pipeline", f"{pipeline.name}: {e}")
            sys.exit(EXIT_DEFINITION_ERROR)
        console.print_header(f"{pipeline.name} ({len(instances)} jobs)")
        console.print_plan(instances.levels())


@cli.command()
@click.argument("definitions", nargs=-1, type=click.Path())
@click.pass_context
def validate(ctx, definitions):
    """Check definitions without running anything."""
    console = get_console()
    failed = False
    for pipeline in load_definitions(ctx, discover_definitions(definitions)):
        try:
            instances = build_instances(pipeline)
        except DefinitionError as e:
            console.print_error("Invalid pipeline", f"{pipeline.name}: {e}")
            failed = True
            continue
        console.print_info(f"OK: {pipeline.name} ({len(pipeline.jobs)} templates, {len(instances)} instances)")
    sys.exit(EXIT_DEFINITION_ERROR if failed else EXIT_OK)


if __name__ == "__main__":
    cli()
