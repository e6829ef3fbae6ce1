# loader.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .conditions import parse_condition
from .errors import DefinitionError
from .model import ArtifactRef, JobTemplate, Pipeline, Step

Scalar = Union[str, int, float, bool]

# -------------------- Schemas --------------------


class _Schema(BaseModel):
    # Accept both snake_case and the dashed spelling used by hosted CI files
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class StepSchema(_Schema):
    name: Optional[str] = None
    run: str
    cwd: Optional[str] = None
    env: Dict[str, Scalar] = Field(default_factory=dict)
    continue_on_error: bool = Field(False, alias="continue-on-error")

    @field_validator("run")
    @classmethod
    def _run_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("run must not be blank")
        return v

    def to_step(self) -> Step:
        name = self.name or self.run.strip().splitlines()[0][:60]
        return Step(
            name=name,
            run=self.run,
            cwd=self.cwd,
            env={k: str(v) for k, v in self.env.items()},
            continue_on_error=self.continue_on_error,
        )


class ArtifactSchema(_Schema):
    key: str
    path: Optional[str] = None
    optional: bool = False

    def to_ref(self) -> ArtifactRef:
        return ArtifactRef(key=self.key, path=self.path or self.key, optional=self.optional)


class JobSchema(_Schema):
    id: Optional[str] = None
    name: Optional[str] = None
    needs: Union[List[str], str] = Field(default_factory=list)
    condition: Optional[str] = Field(None, alias="if")
    matrix: Dict[str, List[Scalar]] = Field(default_factory=dict)
    matrix_fail_fast: bool = Field(False, alias="fail-fast")
    continue_on_error: bool = Field(False, alias="continue-on-error")
    steps: List[StepSchema] = Field(default_factory=list)
    produces: List[Union[ArtifactSchema, str]] = Field(default_factory=list)
    consumes: List[Union[ArtifactSchema, str]] = Field(default_factory=list)
    env: Dict[str, Scalar] = Field(default_factory=dict)
    gate: bool = False

    @model_validator(mode="after")
    def _check_steps(self) -> "JobSchema":
        if self.gate and self.steps:
            raise ValueError("gate jobs are evaluated by the engine and take no steps")
        if not self.gate and not self.steps:
            raise ValueError("job must have at least one step")
        return self

    def to_template(self, job_id: str) -> JobTemplate:
        def refs(items: List[Union[ArtifactSchema, str]]) -> List[ArtifactRef]:
            return [
                ArtifactRef(key=i, path=i) if isinstance(i, str) else i.to_ref()
                for i in items
            ]

        return JobTemplate(
            id=job_id,
            steps=[s.to_step() for s in self.steps],
            needs=[self.needs] if isinstance(self.needs, str) else list(self.needs),
            condition=parse_condition(self.condition) if self.condition else None,
            matrix={axis: list(values) for axis, values in self.matrix.items()},
            matrix_fail_fast=self.matrix_fail_fast,
            continue_on_error=self.continue_on_error,
            produces=refs(self.produces),
            consumes=refs(self.consumes),
            name=self.name,
            env={k: str(v) for k, v in self.env.items()},
            gate=self.gate,
        )


class TriggerFilterSchema(_Schema):
    branches: Union[List[str], str] = Field(default_factory=list)
    tags: Union[List[str], str] = Field(default_factory=list)

    def patterns(self) -> List[str]:
        out: List[str] = []
        for value, prefix in ((self.branches, "refs/heads/"), (self.tags, "refs/tags/")):
            items = [value] if isinstance(value, str) else value
            out.extend(f"{prefix}{p}" for p in items)
        return out


class PipelineSchema(_Schema):
    name: str = "pipeline"
    on: Union[Dict[str, Optional[TriggerFilterSchema]], List[str], str] = Field(default_factory=dict)
    env: Dict[str, Scalar] = Field(default_factory=dict)
    fail_fast: bool = Field(False, alias="fail-fast")
    required: List[str] = Field(default_factory=list)
    jobs: Union[List[JobSchema], Dict[str, JobSchema]]

    def triggers(self) -> Dict[str, List[str]]:
        if isinstance(self.on, str):
            return {self.on: []}
        if isinstance(self.on, list):
            return {event: [] for event in self.on}
        return {event: (f.patterns() if f else []) for event, f in self.on.items()}

    def to_pipeline(self) -> Pipeline:
        templates: List[JobTemplate] = []
        if isinstance(self.jobs, dict):
            for key, job in self.jobs.items():
                templates.append(job.to_template(job.id or key))
        else:
            for idx, job in enumerate(self.jobs):
                if not job.id:
                    raise DefinitionError(f"jobs[{idx}] has no id")
                templates.append(job.to_template(job.id))

        return Pipeline(
            name=self.name,
            jobs=templates,
            triggers=self.triggers(),
            env={k: str(v) for k, v in self.env.items()},
            required=list(self.required),
            fail_fast=self.fail_fast,
        )


# -------------------- Loading --------------------


def parse_definition(data: Any, source: str = "<definition>") -> Pipeline:
    """Validate a decoded definition mapping and build a Pipeline."""
    if not isinstance(data, dict):
        raise DefinitionError(f"{source}: definition must be a mapping, got {type(data).__name__}")
    try:
        schema = PipelineSchema.model_validate(data)
    except ValidationError as e:
        raise DefinitionError(f"{source}: invalid pipeline definition\n{e}") from e
    return schema.to_pipeline()


def load_definition(path: str | Path) -> Pipeline:
    """Load a .yml/.yaml/.json pipeline definition."""
    p = Path(path).expanduser()
    if not p.exists():
        raise FileNotFoundError(f"Pipeline definition not found: {p}")

    text = p.read_text(encoding="utf-8")
    try:
        if p.suffix == ".json":
            data = json.loads(text)
        elif p.suffix in (".yml", ".yaml"):
            # The YAML 1.1 loader turns a bare `on:` key into True
            data = yaml.safe_load(text)
            if isinstance(data, dict) and True in data:
                data["on"] = data.pop(True)
        else:
            raise DefinitionError(f"Unsupported definition format: {p.name}")
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise DefinitionError(f"{p}: could not parse: {e}") from e

    return parse_definition(data, source=str(p))
