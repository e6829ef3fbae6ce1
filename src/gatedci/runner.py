# runner.py
from __future__ import annotations

import runpy
from pathlib import Path
from typing import Iterable, List, Optional

from .artifacts import ArtifactStore, MemoryArtifactStore
from .dag import JobGraph
from .errors import TriggerMismatchError, UnknownDependencyError
from .executor import StepExecutor
from .gate import evaluate_gate
from .loader import load_definition
from .matrix import InstanceGraph, expand_matrix
from .model import Outcome, Pipeline, PipelineReport, TriggerContext
from .scheduler import Scheduler
from .ui.console import Console, get_console


# ----------------------------------------------------------------------
# Workflow loading (local file)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> Pipeline:
    """
    Load a pipeline from a definition file.

    .yml/.yaml/.json files go through the schema loader. A .py file must
    define either:
      - pipeline() -> Pipeline
      - PIPELINE = Pipeline(...)
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        return load_definition(wf_path)

    module_name = f"gatedci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    result = None
    if "PIPELINE" in globals_dict:
        result = globals_dict["PIPELINE"]
    elif "pipeline" in globals_dict and callable(globals_dict["pipeline"]):
        try:
            result = globals_dict["pipeline"]()
        except TypeError as e:
            if "required positional argument" in str(e):
                raise TypeError(
                    "Your pipeline() is being called without arguments but shadows the "
                    "gatedci helper. Import it under another name or define PIPELINE = pipeline(...)."
                ) from e
            raise

    if not isinstance(result, Pipeline):
        raise TypeError(
            "Workflow must return/define a Pipeline. "
            "Define pipeline() -> Pipeline or PIPELINE = pipeline(...)."
        )
    return result


# ----------------------------------------------------------------------
# Construction
# ----------------------------------------------------------------------

def build_instances(definition: Pipeline) -> InstanceGraph:
    """
    Validate, freeze and expand a definition. Raises a DefinitionError
    subclass before anything runs.
    """
    graph = JobGraph(definition.jobs).finalize()
    for tid in definition.required:
        if tid not in graph.templates:
            raise UnknownDependencyError("<required>", tid, list(graph.templates))
    return expand_matrix(graph)


def select_pipelines(definitions: Iterable[Pipeline], trigger: TriggerContext) -> List[Pipeline]:
    return [d for d in definitions if d.matches(trigger)]


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_pipeline(
    definition: Pipeline,
    trigger: Optional[TriggerContext] = None,
    *,
    executor: Optional[StepExecutor] = None,
    store: Optional[ArtifactStore] = None,
    workspace: str | Path = ".",
    max_workers: Optional[int] = None,
    fail_fast: Optional[bool] = None,
    console: Optional[Console] = None,
) -> PipelineReport:
    """
    Run one pipeline for one trigger.

    The gate verdict comes from the pipeline's gate job when it declares
    one; otherwise the same raw-outcome rule is applied over
    `definition.required` (or every instance when that is empty).
    """
    trigger = trigger or TriggerContext()
    console = console or get_console()

    if not definition.matches(trigger):
        raise TriggerMismatchError(definition.name, trigger.event, trigger.ref)

    instances = build_instances(definition)

    store = store if store is not None else MemoryArtifactStore()
    # Artifacts live for one run only
    store.reset()

    console.print_run_started(definition.name, trigger, len(instances))

    scheduler = Scheduler(
        instances,
        executor=executor,
        store=store,
        trigger=trigger,
        workspace=workspace,
        env=definition.env,
        max_workers=max_workers,
        fail_fast=definition.fail_fast if fail_fast is None else fail_fast,
        console=console,
    )
    by_instance = scheduler.run()
    results = {inst.key: res for inst, res in by_instance.items()}
    names = {inst.key: str(inst) for inst in by_instance}

    gates = [inst for inst in instances if instances.template(inst).gate]
    if gates:
        gate_passed = all(results[g.key].raw is Outcome.SUCCESS for g in gates)
        gate_instance = gates[-1].key
    else:
        required = definition.required or [t.id for t in definition.jobs]
        needed = {
            inst.key: results[inst.key]
            for tid in required
            for inst in instances.of_template(tid)
        }
        outcome, _failed = evaluate_gate(needed)
        gate_passed = outcome is Outcome.SUCCESS
        gate_instance = None

    report = PipelineReport(
        pipeline=definition.name,
        trigger=trigger,
        results=results,
        gate_passed=gate_passed,
        gate_instance=gate_instance,
        names=names,
    )
    console.print_results(report)
    return report
