# conditions.py
"""
Job conditions.

A condition is an opaque boolean predicate evaluated against the trigger
context and the results of the job's needed instances. Conditions compose
with ``|``, ``&`` and ``~``::

    event("pull_request") | ref("refs/heads/main")

The string form accepted by definition files is a closed vocabulary, not an
expression language: ``success()``, ``always()``, ``failure()``,
``event == 'x'``, ``ref == 'x'`` (fnmatch patterns allowed), ``!atom``,
joined by ``&&`` and ``||`` (``&&`` binds tighter, no parentheses). Quoted
values may contain either operator.

An explicit condition replaces the default ``success()`` rather than being
added to it. ``event == 'pull_request'`` alone still runs after an upstream
failure; write ``success() && event == 'pull_request'`` for the hosted-CI
behaviour of only running when everything needed succeeded.
"""

from __future__ import annotations

import re
from fnmatch import fnmatch
from typing import Callable, List, Mapping

from .errors import ConditionSyntaxError
from .model import InstanceResult, Outcome, TriggerContext

Predicate = Callable[[TriggerContext, Mapping[str, InstanceResult]], bool]


class Condition:
    """
    A named predicate.

    `always_runs` marks conditions that still hold after upstream failures
    (``always()``, ``failure()``); pipeline-level fail-fast does not skip
    jobs guarded by them.
    """

    __slots__ = ("_expr", "_fn", "always_runs")

    def __init__(self, expr: str, fn: Predicate, *, always_runs: bool = False) -> None:
        self._expr = expr
        self._fn = fn
        self.always_runs = always_runs

    def evaluate(self, trigger: TriggerContext, needed: Mapping[str, InstanceResult]) -> bool:
        return bool(self._fn(trigger, needed))

    def __or__(self, other: Condition) -> Condition:
        return Condition(
            f"{self._expr} || {other._expr}",
            lambda t, n: self.evaluate(t, n) or other.evaluate(t, n),
            always_runs=self.always_runs or other.always_runs,
        )

    def __and__(self, other: Condition) -> Condition:
        return Condition(
            f"{self._expr} && {other._expr}",
            lambda t, n: self.evaluate(t, n) and other.evaluate(t, n),
            always_runs=self.always_runs and other.always_runs,
        )

    def __invert__(self) -> Condition:
        return Condition(f"!{self._expr}", lambda t, n: not self.evaluate(t, n))

    def __str__(self) -> str:
        return self._expr

    def __repr__(self) -> str:
        return f"Condition({self._expr!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Condition):
            return self._expr == other._expr
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._expr)


def success() -> Condition:
    """No needed instance failed (SKIPPED counts as non-failure)."""
    return Condition(
        "success()",
        lambda _t, needed: all(r.effective is not Outcome.FAILURE for r in needed.values()),
    )


def always() -> Condition:
    return Condition("always()", lambda _t, _n: True, always_runs=True)


def failure() -> Condition:
    """At least one needed instance failed."""
    return Condition(
        "failure()",
        lambda _t, needed: any(r.effective is Outcome.FAILURE for r in needed.values()),
        always_runs=True,
    )


def event(name: str) -> Condition:
    return Condition(f"event == '{name}'", lambda t, _n: t.event == name)


def ref(pattern: str) -> Condition:
    """Match the full ref or its short branch/tag name."""
    return Condition(
        f"ref == '{pattern}'",
        lambda t, _n: fnmatch(t.ref, pattern) or fnmatch(t.short_ref, pattern),
    )


# ---------------------------------------------------------------------
# String form
# ---------------------------------------------------------------------

_CALLS = {"success()": success, "always()": always, "failure()": failure}
_COMPARE = re.compile(r"""^(event|ref)\s*==\s*(?:'([^']*)'|"([^"]*)")$""")


def _parse_atom(text: str, source: str) -> Condition:
    atom = text.strip()
    if atom.startswith("!"):
        return ~_parse_atom(atom[1:], source)
    if atom in _CALLS:
        return _CALLS[atom]()
    m = _COMPARE.match(atom)
    if m:
        field_name = m.group(1)
        value = m.group(2) if m.group(2) is not None else m.group(3)
        return event(value) if field_name == "event" else ref(value)
    raise ConditionSyntaxError(f"Unsupported condition {atom!r} in {source!r}")


def _split(text: str, op: str) -> List[str]:
    """Split on `op` outside single- or double-quoted values."""
    parts: List[str] = []
    buf: List[str] = []
    quote = None
    i = 0
    while i < len(text):
        ch = text[i]
        if quote is None and text.startswith(op, i):
            parts.append("".join(buf))
            buf = []
            i += len(op)
            continue
        if quote is None and ch in "'\"":
            quote = ch
        elif ch == quote:
            quote = None
        buf.append(ch)
        i += 1
    parts.append("".join(buf))
    return parts


def parse_condition(text: str) -> Condition:
    source = text
    text = text.strip()
    if text.startswith("${{") and text.endswith("}}"):
        text = text[3:-2].strip()
    if not text:
        raise ConditionSyntaxError("Empty condition")

    alternatives = []
    for alt in _split(text, "||"):
        terms = [_parse_atom(t, source) for t in _split(alt, "&&")]
        cond = terms[0]
        for t in terms[1:]:
            cond = cond & t
        alternatives.append(cond)

    result = alternatives[0]
    for alt in alternatives[1:]:
        result = result | alt
    return result
