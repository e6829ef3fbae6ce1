"""Console output formatting utilities for gatedci."""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from ..model import InstanceResult, JobInstance, PipelineReport, TriggerContext


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, quiet: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            quiet: If True, suppress per-job progress lines
        """
        self.debug = debug
        self.quiet = quiet
        # Workers print concurrently; one line block at a time
        self._lock = threading.Lock()

    def _emit(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._emit(f"\n{title}", "-" * len(title))

    def print_run_started(
        self,
        pipeline: str,
        trigger: "TriggerContext",
        instance_count: int,
    ) -> None:
        """Print run start information."""
        self._emit(
            "\nRUN STARTED",
            f"Pipeline: {pipeline}",
            f"Trigger: {trigger.event} {trigger.ref}".rstrip(),
            f"Jobs: {instance_count}",
            "",
        )

    def print_job_start(self, instance: "JobInstance") -> None:
        if not self.quiet:
            self._emit(f"JOB STARTED: {instance}")

    def print_step(self, instance: "JobInstance", name: str) -> None:
        if not self.quiet:
            self._emit(f"[{instance}] STEP: {name}")

    def print_step_ignored(self, instance: "JobInstance", name: str, reason: str) -> None:
        """A step failed but was marked continue_on_error."""
        if not self.quiet:
            self._emit(f"[{instance}] STEP FAILED (ignored): {name}", f"  {reason}")

    def print_job_finished(self, instance: "JobInstance", result: "InstanceResult") -> None:
        if self.quiet:
            return
        status = result.raw.value
        if result.raw != result.effective:
            status = f"{status} (continue-on-error)"
        lines = [f"JOB FINISHED: {instance} -> {status} ({result.duration:.1f}s)"]
        if result.error:
            if self.debug:
                lines.append(f"  Error details: {result.error}")
            else:
                lines.append(f"  Error: {result.error.splitlines()[0]}")
        self._emit(*lines)

    def print_job_skipped(self, instance: "JobInstance", reason: str) -> None:
        if not self.quiet:
            self._emit(f"JOB SKIPPED: {instance} ({reason})")

    def print_plan(self, levels: List[List["JobInstance"]]) -> None:
        """Print expanded instances stage by stage."""
        lines = []
        for idx, level in enumerate(levels):
            lines.append(f"=== Stage {idx + 1} ===")
            for inst in level:
                lines.append(f"  {inst.key}  ({inst})")
        self._emit(*lines)

    def print_results(self, report: "PipelineReport") -> None:
        """Print final results summary."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for key, result in report.results.items():
            status = result.raw.value.upper()
            if result.raw != result.effective:
                status += " (ignored)"
            lines.append(f"  {report.names.get(key, key)}: {status}")
        lines.append("")
        lines.append(f"GATE: {'PASSED' if report.gate_passed else 'FAILED'}")
        self._emit(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {d}" for d in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit(*lines, err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._emit(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._emit(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
