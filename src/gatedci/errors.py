# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


class GatedCIError(Exception):
    """Base class for every error raised by gatedci."""


# ----------------------------------------------------------------------
# Construction-time errors (the pipeline is rejected before any job runs)
# ----------------------------------------------------------------------

class DefinitionError(GatedCIError):
    """The pipeline definition is malformed."""


class ConditionSyntaxError(DefinitionError):
    """A condition string is outside the supported vocabulary."""


@dataclass
class DuplicateIdError(DefinitionError):
    job_id: str

    def __str__(self) -> str:
        return f"Duplicate job id: {self.job_id}"


@dataclass
class UnknownDependencyError(DefinitionError):
    job_id: str
    missing: str
    known: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        return (
            f"Job '{self.job_id}' needs missing job '{self.missing}'. "
            f"Known jobs: {sorted(self.known)}"
        )


@dataclass
class CycleError(DefinitionError):
    cycle: List[str]

    def __str__(self) -> str:
        return f"Dependency cycle: {' -> '.join(self.cycle)}"


class GraphFrozenError(GatedCIError):
    """The job graph was finalized and can no longer be mutated."""


@dataclass
class TriggerMismatchError(GatedCIError):
    pipeline: str
    event: str
    ref: str

    def __str__(self) -> str:
        return f"Pipeline '{self.pipeline}' is not triggered by {self.event} on '{self.ref}'"


# ----------------------------------------------------------------------
# Per-instance runtime errors (recorded as FAILURE, never fatal)
# ----------------------------------------------------------------------

@dataclass
class StepFailure(GatedCIError):
    job: str
    step: str
    cmd: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    def __str__(self) -> str:
        return f"[{self.job}] step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"


@dataclass
class ArtifactNotFoundError(GatedCIError):
    key: str

    def __str__(self) -> str:
        return f"Artifact not found: {self.key}"


@dataclass
class DuplicateArtifactError(GatedCIError):
    key: str
    producer: str
    existing_producer: str

    def __str__(self) -> str:
        return (
            f"Artifact '{self.key}' already written by {self.existing_producer} "
            f"(rewrite attempted by {self.producer})"
        )


# ----------------------------------------------------------------------
# Internal defects
# ----------------------------------------------------------------------

@dataclass
class SchedulerDeadlockError(GatedCIError):
    stuck: List[str]

    def __str__(self) -> str:
        return f"Scheduler deadlock: instances stuck in PENDING with nothing running: {self.stuck}"
