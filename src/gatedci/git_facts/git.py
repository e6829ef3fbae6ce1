# git.py
# Small wrapper around the Git CLI, used only to describe the trigger of a
# local run. Nothing else in gatedci shells out to git.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional

from ..model import TriggerContext


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout, stripped.

    Raises subprocess.CalledProcessError on a non-zero exit and
    FileNotFoundError when git is not installed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def repo_root(cwd: Optional[str] = None) -> Path:
    """Absolute path of the repository containing `cwd`."""
    return Path(_git(["rev-parse", "--show-toplevel"], cwd=cwd))


def head_sha(cwd: Optional[str] = None) -> str:
    """Full SHA of HEAD."""
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def current_ref(cwd: Optional[str] = None) -> str:
    """
    The fully-qualified ref HEAD points at (e.g. refs/heads/main).

    On a detached HEAD there is no symbolic ref; the commit SHA is returned
    instead.
    """
    try:
        return _git(["symbolic-ref", "-q", "HEAD"], cwd=cwd)
    except subprocess.CalledProcessError:
        return head_sha(cwd=cwd)


def trigger_from_git(event: str = "push", cwd: Optional[str] = None) -> TriggerContext:
    """
    Describe the local checkout as a trigger: `event` on the current ref.

    Outside a git repository (or without git) the ref is left empty, which
    only matches pipelines that accept any ref.
    """
    try:
        return TriggerContext(event=event, ref=current_ref(cwd), sha=head_sha(cwd))
    except (subprocess.CalledProcessError, FileNotFoundError):
        return TriggerContext(event=event, ref="")
