from __future__ import annotations

import pytest

from gatedci.ui.console import Console, set_console
from helpers import StubStepExecutor


@pytest.fixture
def console():
    c = Console(quiet=True)
    set_console(c)
    return c


@pytest.fixture
def stub():
    return StubStepExecutor()
