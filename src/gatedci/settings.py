from __future__ import annotations
import os


def _flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


DEFINITION = os.environ.get("GATEDCI_DEFINITION", "gatedci.yml")
WORKSPACE = os.environ.get("GATEDCI_WORKSPACE", ".")
ARTIFACTS_DIR = os.environ.get("GATEDCI_ARTIFACTS_DIR") or None
WORKERS = int(os.environ["GATEDCI_WORKERS"]) if os.environ.get("GATEDCI_WORKERS") else None
FAIL_FAST = _flag("GATEDCI_FAIL_FAST", False)
EVENT = os.environ.get("GATEDCI_EVENT", "push")
