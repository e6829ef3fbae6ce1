# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatch
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from .conditions import Condition


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Step:
    """A single opaque command inside a CI job."""
    name: str
    run: str
    cwd: str | None = None
    env: Dict[str, str] = field(default_factory=dict)
    continue_on_error: bool = False


@dataclass(frozen=True)
class ArtifactRef:
    """
    An artifact hand-off declaration.

    `key` and `path` may contain `{axis}` placeholders that are filled from
    the instance's matrix assignment. `path` is relative to the workspace.
    """
    key: str
    path: str
    optional: bool = False

    def resolve_key(self, matrix: Dict[str, Any]) -> str:
        return _interpolate(self.key, matrix)

    def resolve_path(self, matrix: Dict[str, Any]) -> str:
        return _interpolate(self.path, matrix)


@dataclass
class JobTemplate:
    """
    A declared unit of work before matrix expansion.

    `condition=None` means the default: `success()` for ordinary jobs,
    `always()` for gate jobs.
    """
    id: str
    steps: List[Step] = field(default_factory=list)
    needs: List[str] = field(default_factory=list)
    condition: Optional["Condition"] = None
    matrix: Dict[str, List[Any]] = field(default_factory=dict)
    matrix_fail_fast: bool = False
    continue_on_error: bool = False
    produces: List[ArtifactRef] = field(default_factory=list)
    consumes: List[ArtifactRef] = field(default_factory=list)
    name: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    gate: bool = False

    @property
    def resolved_condition(self) -> "Condition":
        # Import here to avoid circular import
        from .conditions import always, success

        if self.condition is not None:
            return self.condition
        return always() if self.gate else success()

    def display_name(self, matrix: Dict[str, Any]) -> str:
        if self.name:
            return _interpolate(self.name, matrix)
        if not matrix:
            return self.id
        values = ", ".join(str(v) for v in matrix.values())
        return f"{self.id} ({values})"


@dataclass(frozen=True)
class JobInstance:
    """One concrete, schedulable execution of a template."""
    template_id: str
    assignment: Tuple[Tuple[str, Any], ...] = ()
    display_name: str = field(default="", compare=False)

    @property
    def matrix(self) -> Dict[str, Any]:
        return dict(self.assignment)

    @property
    def key(self) -> str:
        if not self.assignment:
            return self.template_id
        pairs = ",".join(f"{axis}={value}" for axis, value in self.assignment)
        return f"{self.template_id}[{pairs}]"

    def __str__(self) -> str:
        return self.display_name or self.key


@dataclass(frozen=True)
class InstanceResult:
    """
    Final result of one instance.

    `raw` is the true outcome and feeds the gate. `effective` is what
    dependents see: a failure under continue_on_error is masked to SUCCESS.
    """
    raw: Outcome
    effective: Outcome
    duration: float = 0.0
    error: str | None = None
    skip_reason: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "raw": self.raw.value,
            "effective": self.effective.value,
            "duration": round(self.duration, 3),
        }
        if self.error is not None:
            d["error"] = self.error
        if self.skip_reason is not None:
            d["skip_reason"] = self.skip_reason
        return d


@dataclass(frozen=True)
class TriggerContext:
    """The external event that started a run (e.g. a push to a ref)."""
    event: str = "push"
    ref: str = ""
    sha: str | None = None

    @property
    def short_ref(self) -> str:
        for prefix in ("refs/heads/", "refs/tags/"):
            if self.ref.startswith(prefix):
                return self.ref[len(prefix):]
        return self.ref


@dataclass
class Pipeline:
    """
    A top-level pipeline definition.

    `triggers` maps an event name to ref patterns. An empty pattern list
    accepts any ref; an empty mapping accepts any event.
    """
    name: str
    jobs: List[JobTemplate] = field(default_factory=list)
    triggers: Dict[str, List[str]] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    required: List[str] = field(default_factory=list)
    fail_fast: bool = False

    def matches(self, trigger: TriggerContext) -> bool:
        if not self.triggers:
            return True
        if trigger.event not in self.triggers:
            return False
        patterns = self.triggers[trigger.event] or []
        if not patterns:
            return True
        return any(
            fnmatch(trigger.ref, p) or fnmatch(trigger.short_ref, p)
            for p in patterns
        )


@dataclass
class PipelineReport:
    """Per-instance results plus the gate's verdict."""
    pipeline: str
    trigger: TriggerContext
    results: Dict[str, InstanceResult]
    gate_passed: bool
    gate_instance: str | None = None
    names: Dict[str, str] = field(default_factory=dict)

    def outcome_of(self, key: str) -> Outcome:
        return self.results[key].raw

    def failed(self) -> List[str]:
        return [k for k, r in self.results.items() if r.raw is Outcome.FAILURE]

    def equivalent(self, other: "PipelineReport") -> bool:
        """Compare two reports ignoring durations."""
        def strip(report: PipelineReport):
            return {
                k: (r.raw, r.effective, r.error, r.skip_reason)
                for k, r in report.results.items()
            }

        return (
            self.pipeline == other.pipeline
            and self.gate_passed == other.gate_passed
            and self.gate_instance == other.gate_instance
            and strip(self) == strip(other)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pipeline": self.pipeline,
            "trigger": {"event": self.trigger.event, "ref": self.trigger.ref},
            "gate_passed": self.gate_passed,
            "gate_instance": self.gate_instance,
            "results": {k: r.to_dict() for k, r in self.results.items()},
        }


def _interpolate(template: str, matrix: Dict[str, Any]) -> str:
    # Only bare {axis} placeholders; unknown names are left untouched
    out = template
    for axis, value in matrix.items():
        out = out.replace("{" + axis + "}", str(value))
    return out
