# executor.py
from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Protocol, Sequence, runtime_checkable

from .errors import StepFailure
from .model import JobInstance, Outcome, Step
from .ui.console import Console, get_console

# Output tail kept on StepFailure so the report stays readable
OUTPUT_TAIL = 4000


@dataclass
class ExecutionContext:
    """What a step executor gets besides the steps themselves."""
    workspace: Path
    env: Dict[str, str] = field(default_factory=dict)
    console: Console = field(default_factory=get_console)


@runtime_checkable
class StepExecutor(Protocol):
    """
    Runs one job instance's steps and returns one terminal outcome.

    Implementations may return Outcome.FAILURE or raise; the scheduler
    records a raised exception as FAILURE with its message.
    """

    def execute(
        self,
        instance: JobInstance,
        steps: Sequence[Step],
        context: ExecutionContext,
    ) -> Outcome: ...


def matrix_env(instance: JobInstance) -> Dict[str, str]:
    """MATRIX_<AXIS> variables for a matrixed instance."""
    return {
        f"MATRIX_{axis.upper().replace('-', '_')}": str(value)
        for axis, value in instance.assignment
    }


class ShellStepExecutor:
    """Runs each step as a shell command inside the workspace."""

    def execute(
        self,
        instance: JobInstance,
        steps: Sequence[Step],
        context: ExecutionContext,
    ) -> Outcome:
        for step in steps:
            context.console.print_step(instance, step.name)
            try:
                self._run_step(instance, step, context)
            except StepFailure as e:
                if not step.continue_on_error:
                    raise
                context.console.print_step_ignored(instance, step.name, str(e))
        return Outcome.SUCCESS

    def _run_step(self, instance: JobInstance, step: Step, context: ExecutionContext) -> None:
        cwd = (context.workspace / (step.cwd or ".")).resolve()
        if not cwd.exists():
            raise StepFailure(
                job=str(instance),
                step=step.name,
                cmd=step.run,
                exit_code=-1,
                stderr=f"cwd not found: {cwd}",
            )

        env = os.environ.copy()
        env.update(context.env)
        env.update(step.env)

        proc = subprocess.run(
            step.run,
            shell=True,
            cwd=str(cwd),
            env=env,
            text=True,
            capture_output=True,
        )

        if proc.returncode != 0:
            raise StepFailure(
                job=str(instance),
                step=step.name,
                cmd=step.run,
                exit_code=proc.returncode,
                stdout=proc.stdout[-OUTPUT_TAIL:],
                stderr=proc.stderr[-OUTPUT_TAIL:],
            )
