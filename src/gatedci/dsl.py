# src/gatedci/dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from .conditions import Condition, parse_condition
from .model import ArtifactRef, JobTemplate, Pipeline, Step

ArtifactSpec = Union[ArtifactRef, str, Sequence[str]]


# ---------------------------------------------------------------------
# Step helper
# ---------------------------------------------------------------------

def sh(
    name: str,
    cmd: str,
    *,
    cwd: str | None = None,
    env: Optional[Dict[str, str]] = None,
    continue_on_error: bool = False,
) -> Step:
    """Create a shell step."""
    return Step(
        name=name,
        run=cmd,
        cwd=cwd,
        env={k: str(v) for k, v in (env or {}).items()},
        continue_on_error=continue_on_error,
    )


def artifact(key: str, path: str | None = None, *, optional: bool = False) -> ArtifactRef:
    """Artifact hand-off declaration; path defaults to the key."""
    return ArtifactRef(key=key, path=path or key, optional=optional)


def _artifacts(specs: Optional[Iterable[ArtifactSpec]]) -> List[ArtifactRef]:
    out: List[ArtifactRef] = []
    for item in specs or []:
        if isinstance(item, ArtifactRef):
            out.append(item)
        elif isinstance(item, str):
            out.append(artifact(item))
        else:
            out.append(artifact(*item))
    return out


def _condition(cond: Condition | str | None) -> Optional[Condition]:
    if isinstance(cond, str):
        return parse_condition(cond)
    return cond


# ---------------------------------------------------------------------
# Functional job helpers
# ---------------------------------------------------------------------

def job(
    id: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    steps_list: Optional[List[Step]] = None,
    needs: Optional[List[str]] = None,
    condition: Condition | str | None = None,
    matrix: Optional[Dict[str, Iterable[Any]]] = None,
    matrix_fail_fast: bool = False,
    continue_on_error: bool = False,
    produces: Optional[Iterable[ArtifactSpec]] = None,
    consumes: Optional[Iterable[ArtifactSpec]] = None,
    name: str | None = None,
    env: Optional[Dict[str, str]] = None,
    cwd: str | None = None,  # default cwd applied to steps missing cwd
) -> JobTemplate:
    steps_final: List[Step] = list(steps_list or [])
    steps_final.extend(steps)

    if not steps_final:
        raise ValueError(f"job({id!r}) must have at least one step")

    if cwd is not None:
        steps_final = [s if s.cwd is not None else replace(s, cwd=cwd) for s in steps_final]

    return JobTemplate(
        id=id,
        steps=steps_final,
        needs=list(needs or []),
        condition=_condition(condition),
        matrix={k: list(v) for k, v in (matrix or {}).items()},
        matrix_fail_fast=matrix_fail_fast,
        continue_on_error=continue_on_error,
        produces=_artifacts(produces),
        consumes=_artifacts(consumes),
        name=name,
        env={k: str(v) for k, v in (env or {}).items()},
    )


def gate(id: str, needs: List[str], *, name: str | None = None) -> JobTemplate:
    """Terminal job that fails iff a needed job's raw outcome is FAILURE."""
    return JobTemplate(id=id, needs=list(needs), name=name, gate=True)


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, id: str):
        self.id = id
        self._needs: list[str] = []
        self._steps: list[Step] = []
        self._condition: Optional[Condition] = None
        self._matrix: dict[str, list[Any]] = {}
        self._matrix_fail_fast = False
        self._continue_on_error = False
        self._produces: list[ArtifactRef] = []
        self._consumes: list[ArtifactRef] = []
        self._env: dict[str, str] = {}
        self._name: Optional[str] = None

    def depends_on(self, *job_ids: str):
        self._needs.extend(job_ids)
        return self

    def define_step(self, name: str, run: str, cwd: str | None = None, *, continue_on_error: bool = False):
        self._steps.append(sh(name, run, cwd=cwd, continue_on_error=continue_on_error))
        return self

    def when(self, cond: Condition | str):
        self._condition = _condition(cond)
        return self

    def with_matrix(self, axis: str, *values: Any, fail_fast: bool = False):
        self._matrix[axis] = list(values)
        self._matrix_fail_fast = self._matrix_fail_fast or fail_fast
        return self

    def allow_failure(self, enabled: bool = True):
        self._continue_on_error = enabled
        return self

    def produces(self, key: str, path: str | None = None):
        self._produces.append(artifact(key, path))
        return self

    def consumes(self, key: str, path: str | None = None, *, optional: bool = False):
        self._consumes.append(artifact(key, path, optional=optional))
        return self

    def with_env(self, **env):
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def named(self, name: str):
        self._name = name
        return self

    def build(self) -> JobTemplate:
        if not self._steps:
            raise ValueError(f"Job '{self.id}' has no steps")
        return JobTemplate(
            id=self.id,
            steps=list(self._steps),
            needs=list(self._needs),
            condition=self._condition,
            matrix=dict(self._matrix),
            matrix_fail_fast=self._matrix_fail_fast,
            continue_on_error=self._continue_on_error,
            produces=list(self._produces),
            consumes=list(self._consumes),
            name=self._name,
            env=dict(self._env),
        )


def build(id: str) -> JobBuilder:
    """Convenience: build('test').define_step(...).build()"""
    return JobBuilder(id)


# ---------------------------------------------------------------------
# Pipeline helper (single-file story)
# ---------------------------------------------------------------------

def pipeline(
    name: str,
    *jobs: JobTemplate,
    on: Optional[Dict[str, Optional[List[str]]]] = None,
    env: Optional[Dict[str, str]] = None,
    required: Optional[List[str]] = None,
    fail_fast: bool = False,
) -> Pipeline:
    """
    Pipeline definition helper. Workflow files write:

        from gatedci import pipeline, job, gate, sh

        PIPELINE = pipeline(
            "ci",
            job("test", sh("pytest", "pytest -q"), matrix={"py": ["3.11", "3.12"]}),
            gate("check-success", needs=["test"]),
            on={"push": ["main"], "pull_request": None},
        )
    """
    return Pipeline(
        name=name,
        jobs=list(jobs),
        triggers={event: list(refs or []) for event, refs in (on or {}).items()},
        env={k: str(v) for k, v in (env or {}).items()},
        required=list(required or []),
        fail_fast=fail_fast,
    )
