from __future__ import annotations

import threading

from gatedci.model import JobTemplate, Outcome, Step


class StubStepExecutor:
    """
    Deterministic executor: instance key -> fixed outcome.

    `outputs` maps an instance key to files to write into the workspace
    (so produced artifacts exist); `reads` maps an instance key to a
    workspace path whose bytes are captured into `seen`.
    """

    def __init__(self, outcomes=None, *, outputs=None, reads=None, raises=None, default=Outcome.SUCCESS):
        self.outcomes = dict(outcomes or {})
        self.outputs = dict(outputs or {})
        self.reads = dict(reads or {})
        self.raises = dict(raises or {})
        self.default = default
        self.calls: list[str] = []
        self.seen: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def execute(self, instance, steps, context):
        with self._lock:
            self.calls.append(instance.key)
        for path, data in self.outputs.get(instance.key, {}).items():
            dest = context.workspace / path
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(data)
        if instance.key in self.reads:
            self.seen[instance.key] = (context.workspace / self.reads[instance.key]).read_bytes()
        if instance.key in self.raises:
            raise self.raises[instance.key]
        return self.outcomes.get(instance.key, self.default)


def tmpl(id, needs=(), **kwargs) -> JobTemplate:
    kwargs.setdefault("steps", [Step("run", f"echo {id}")])
    return JobTemplate(id=id, needs=list(needs), **kwargs)


