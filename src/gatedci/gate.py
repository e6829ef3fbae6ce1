# gate.py
from __future__ import annotations

from typing import List, Mapping, Tuple

from .model import InstanceResult, Outcome


def evaluate_gate(needed: Mapping[str, InstanceResult]) -> Tuple[Outcome, List[str]]:
    """
    Gate rule: FAILURE iff any needed instance's *raw* outcome is FAILURE.

    Raw, not effective: a continue-on-error job that failed did not block
    its dependents, but it still fails the gate.
    """
    failed = [key for key, result in needed.items() if result.raw is Outcome.FAILURE]
    return (Outcome.FAILURE if failed else Outcome.SUCCESS), failed


class GateEvaluator:
    """Runs gate instances in place of the step executor."""

    def run(self, needed: Mapping[str, InstanceResult]) -> Tuple[Outcome, str | None]:
        outcome, failed = evaluate_gate(needed)
        if outcome is Outcome.FAILURE:
            return outcome, f"required jobs failed: {', '.join(failed)}"
        return outcome, None
