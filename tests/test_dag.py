import pytest

from gatedci.dag import JobGraph
from gatedci.errors import CycleError, DuplicateIdError, GraphFrozenError, UnknownDependencyError
from gatedci.model import Pipeline
from gatedci.runner import run_pipeline
from helpers import StubStepExecutor, tmpl


def test_duplicate_id_rejected_on_add():
    g = JobGraph([tmpl("build")])
    with pytest.raises(DuplicateIdError) as exc:
        g.add_job(tmpl("build"))
    assert exc.value.job_id == "build"


def test_unknown_dependency_rejected_on_finalize():
    g = JobGraph([tmpl("build"), tmpl("test", needs=["biuld"])])
    with pytest.raises(UnknownDependencyError) as exc:
        g.finalize()
    assert exc.value.job_id == "test"
    assert exc.value.missing == "biuld"


def test_cycle_rejected_with_path():
    g = JobGraph([tmpl("a", needs=["c"]), tmpl("b", needs=["a"]), tmpl("c", needs=["b"])])
    with pytest.raises(CycleError) as exc:
        g.finalize()
    cycle = exc.value.cycle
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {"a", "b", "c"}


def test_self_dependency_is_a_cycle():
    with pytest.raises(CycleError):
        JobGraph([tmpl("a", needs=["a"])]).finalize()


def test_cyclic_pipeline_runs_zero_jobs(console):
    stub = StubStepExecutor()
    p = Pipeline("cyclic", jobs=[tmpl("a", needs=["b"]), tmpl("b", needs=["a"]), tmpl("c")])
    with pytest.raises(CycleError):
        run_pipeline(p, executor=stub, console=console)
    assert stub.calls == []


def test_finalize_is_idempotent_and_freezes():
    g = JobGraph([tmpl("a")])
    frozen = g.finalize()
    assert g.finalize() is frozen
    with pytest.raises(GraphFrozenError):
        g.add_job(tmpl("b"))
    with pytest.raises(TypeError):
        frozen.templates["b"] = tmpl("b")


def test_diamond_levels_and_dependents():
    g = JobGraph([
        tmpl("a"),
        tmpl("b", needs=["a"]),
        tmpl("c", needs=["a"]),
        tmpl("d", needs=["b", "c"]),
    ]).finalize()
    assert g.levels() == [["a"], ["b", "c"], ["d"]]
    assert g.dependents("a") == ["b", "c"]
    assert len(g) == 4


def test_independent_jobs_share_first_level():
    g = JobGraph([tmpl("rustfmt"), tmpl("clippy"), tmpl("test")]).finalize()
    assert g.levels() == [["clippy", "rustfmt", "test"]]
