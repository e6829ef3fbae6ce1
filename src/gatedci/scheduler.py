# scheduler.py
from __future__ import annotations

import os
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from enum import Enum
from pathlib import Path
from typing import Deque, Dict, List, Mapping, Optional

from .artifacts import ArtifactStore, MemoryArtifactStore
from .errors import ArtifactNotFoundError, SchedulerDeadlockError
from .executor import ExecutionContext, ShellStepExecutor, StepExecutor, matrix_env
from .gate import GateEvaluator
from .matrix import InstanceGraph
from .model import InstanceResult, JobInstance, JobTemplate, Outcome, TriggerContext
from .ui.console import Console, get_console


class State(str, Enum):
    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    DONE = "done"


def default_workers() -> int:
    c = os.cpu_count() or 2
    return max(1, c - 1)


class Scheduler:
    """
    Topological executor over an InstanceGraph.

    PENDING -> READY once every needed instance is DONE and the condition
    holds; PENDING -> DONE(SKIPPED) when it does not. READY instances are
    dispatched to a bounded worker pool; RUNNING -> DONE when the worker
    returns. Step failures are recorded per instance and never raise out of
    run().
    """

    def __init__(
        self,
        graph: InstanceGraph,
        *,
        executor: Optional[StepExecutor] = None,
        store: Optional[ArtifactStore] = None,
        trigger: Optional[TriggerContext] = None,
        workspace: str | Path = ".",
        env: Optional[Mapping[str, str]] = None,
        max_workers: Optional[int] = None,
        fail_fast: bool = False,
        console: Optional[Console] = None,
    ):
        self.graph = graph
        self.executor = executor or ShellStepExecutor()
        self.store = store if store is not None else MemoryArtifactStore()
        self.trigger = trigger or TriggerContext()
        self.workspace = Path(workspace).resolve()
        self.env = dict(env or {})
        self.max_workers = max_workers or default_workers()
        self.fail_fast = fail_fast
        self.console = console or get_console()
        self.gate = GateEvaluator()

        self.states: Dict[JobInstance, State] = {}
        self.results: Dict[JobInstance, InstanceResult] = {}
        self._ready: Deque[JobInstance] = deque()
        self._failed = False

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self) -> Dict[JobInstance, InstanceResult]:
        self.states = {inst: State.PENDING for inst in self.graph}
        self.results = {}
        self._ready.clear()
        self._failed = False

        in_flight: Dict[Future, JobInstance] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            while True:
                self._promote()

                skipped = False
                while self._ready and len(in_flight) < self.max_workers:
                    inst = self._ready.popleft()
                    reason = self._cancel_reason(inst)
                    if reason is not None:
                        # Cancelled while queued
                        self._skip(inst, reason)
                        skipped = True
                        continue
                    needed = self._needed_results(inst)
                    self.states[inst] = State.RUNNING
                    in_flight[pool.submit(self._run_instance, inst, needed)] = inst

                if not in_flight:
                    if skipped:
                        # Dependents of the skipped instances may now be promotable
                        continue
                    stuck = [i.key for i, s in self.states.items() if s is State.PENDING]
                    if stuck:
                        raise SchedulerDeadlockError(stuck)
                    break

                done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                for fut in done:
                    inst = in_flight.pop(fut)
                    self._finish(inst, fut.result())

        return {inst: self.results[inst] for inst in self.graph}

    def _promote(self) -> None:
        # Skips can unlock further instances, so iterate to a fixed point
        changed = True
        while changed:
            changed = False
            for inst in self.graph:
                if self.states[inst] is not State.PENDING:
                    continue
                if self._waiting_on(inst):
                    continue

                reason = self._cancel_reason(inst)
                if reason is not None:
                    self._skip(inst, reason)
                    changed = True
                    continue

                condition = self.graph.template(inst).resolved_condition
                try:
                    holds = condition.evaluate(self.trigger, self._needed_results(inst))
                except Exception as e:
                    self._finish(inst, InstanceResult(
                        Outcome.FAILURE, Outcome.FAILURE, error=f"condition {condition} raised: {e}",
                    ))
                    changed = True
                    continue

                if holds:
                    self.states[inst] = State.READY
                    self._ready.append(inst)
                else:
                    self._skip(inst, f"condition {condition} is false")
                    changed = True

    def _waiting_on(self, inst: JobInstance) -> List[JobInstance]:
        return [d for d in self.graph.needs(inst) if self.states[d] is not State.DONE]

    def _needed_results(self, inst: JobInstance) -> Dict[str, InstanceResult]:
        return {d.key: self.results[d] for d in self.graph.needs(inst)}

    def _cancel_reason(self, inst: JobInstance) -> Optional[str]:
        template = self.graph.template(inst)
        if template.gate or template.resolved_condition.always_runs:
            return None
        if self.fail_fast and self._failed:
            return "fail-fast"
        if template.matrix_fail_fast and any(
            self.results.get(s) is not None and self.results[s].effective is Outcome.FAILURE
            for s in self.graph.siblings(inst)
        ):
            return "matrix fail-fast"
        return None

    def _skip(self, inst: JobInstance, reason: str) -> None:
        self.console.print_job_skipped(inst, reason)
        self.states[inst] = State.DONE
        self.results[inst] = InstanceResult(Outcome.SKIPPED, Outcome.SKIPPED, skip_reason=reason)

    def _finish(self, inst: JobInstance, result: InstanceResult) -> None:
        self.states[inst] = State.DONE
        self.results[inst] = result
        if result.effective is Outcome.FAILURE:
            self._failed = True

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _run_instance(self, inst: JobInstance, needed: Dict[str, InstanceResult]) -> InstanceResult:
        template = self.graph.template(inst)
        self.console.print_job_start(inst)
        start = time.monotonic()
        error: Optional[str] = None

        try:
            if template.gate:
                raw, error = self.gate.run(needed)
            else:
                raw = self._run_steps(inst, template)
                if raw is Outcome.FAILURE:
                    error = "step executor reported failure"
        except Exception as e:
            raw = Outcome.FAILURE
            error = str(e) or type(e).__name__

        effective = raw
        if raw is Outcome.FAILURE and template.continue_on_error:
            effective = Outcome.SUCCESS

        result = InstanceResult(raw, effective, time.monotonic() - start, error)
        self.console.print_job_finished(inst, result)
        return result

    def _run_steps(self, inst: JobInstance, template: JobTemplate) -> Outcome:
        self._fetch_artifacts(inst, template)

        env = dict(self.env)
        env.update(template.env)
        env.update(matrix_env(inst))
        context = ExecutionContext(workspace=self.workspace, env=env, console=self.console)

        try:
            outcome = Outcome(self.executor.execute(inst, template.steps, context))
        except Exception:
            if template.continue_on_error:
                self._publish_artifacts(inst, template, strict=False)
            raise

        if outcome is Outcome.SUCCESS:
            self._publish_artifacts(inst, template)
        elif template.continue_on_error:
            # A masked failure still hands off whatever it managed to write
            self._publish_artifacts(inst, template, strict=False)
        return outcome

    def _fetch_artifacts(self, inst: JobInstance, template: JobTemplate) -> None:
        for ref in template.consumes:
            key = ref.resolve_key(inst.matrix)
            try:
                payload = self.store.get(key)
            except ArtifactNotFoundError:
                if ref.optional:
                    self.console.print_debug(f"[{inst}] optional artifact '{key}' not present")
                    continue
                raise
            dest = self.workspace / ref.resolve_path(inst.matrix)
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(payload)

    def _publish_artifacts(self, inst: JobInstance, template: JobTemplate, strict: bool = True) -> None:
        for ref in template.produces:
            key = ref.resolve_key(inst.matrix)
            src = self.workspace / ref.resolve_path(inst.matrix)
            if not src.is_file():
                if not strict:
                    self.console.print_debug(f"[{inst}] artifact '{key}' not written: {src}")
                    continue
                raise FileNotFoundError(f"[{inst}] artifact '{key}' path not found: {src}")
            self.store.put(key, src.read_bytes(), inst.key)
