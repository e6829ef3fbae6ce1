import pytest

from gatedci.artifacts import DirectoryArtifactStore, MemoryArtifactStore
from gatedci.errors import ArtifactNotFoundError, DuplicateArtifactError
from gatedci.model import ArtifactRef, Outcome, Pipeline
from gatedci.runner import run_pipeline
from helpers import StubStepExecutor, tmpl

SARIF = ArtifactRef("clippy-sarif", "clippy.sarif")


@pytest.fixture(params=["memory", "directory"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryArtifactStore()
    return DirectoryArtifactStore(tmp_path / "artifacts")


def test_put_then_get(store):
    store.put("clippy-sarif", b"{}", "clippy")
    assert store.get("clippy-sarif") == b"{}"
    assert "clippy-sarif" in store
    assert store.keys() == ["clippy-sarif"]


def test_keys_are_write_once(store):
    store.put("k", b"1", "a")
    with pytest.raises(DuplicateArtifactError) as exc:
        store.put("k", b"2", "b")
    assert exc.value.existing_producer == "a"
    assert store.get("k") == b"1"


def test_missing_key(store):
    with pytest.raises(ArtifactNotFoundError):
        store.get("nope")


def test_reset_starts_a_fresh_run(store):
    store.put("k", b"1", "a")
    store.reset()
    assert "k" not in store
    store.put("k", b"2", "b")
    assert store.get("k") == b"2"


def test_directory_store_is_readable_from_a_new_handle(tmp_path):
    DirectoryArtifactStore(tmp_path / "a").put("report", b"data", "job")
    assert DirectoryArtifactStore(tmp_path / "a").get("report") == b"data"


def test_directory_store_reset_leaves_other_files_alone(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "lib.rs").write_text("fn main() {}")
    (tmp_path / "Cargo.toml").write_text("[package]")
    store = DirectoryArtifactStore(tmp_path)
    store.put("report", b"data", "job")

    store.reset()

    assert "report" not in store
    assert sorted(p.name for p in tmp_path.iterdir()) == ["Cargo.toml", "src"]
    assert (tmp_path / "src" / "lib.rs").read_text() == "fn main() {}"


def test_run_with_the_workspace_as_artifact_dir_keeps_the_checkout(console, tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "main.py").write_text("print(1)")
    stub = StubStepExecutor(outputs={"clippy": {"clippy.sarif": b"{}"}})
    p = Pipeline("p", jobs=[tmpl("clippy", produces=[SARIF])])

    for _ in range(2):
        report = run_pipeline(
            p, executor=stub, store=DirectoryArtifactStore(tmp_path), workspace=tmp_path, console=console,
        )
        assert report.gate_passed
    assert (tmp_path / "src" / "main.py").read_text() == "print(1)"
    assert (tmp_path / "clippy.sarif").exists()


# ----------------------------------------------------------------------
# Hand-off through the scheduler
# ----------------------------------------------------------------------

def test_artifact_flows_from_producer_to_consumer(console, tmp_path):
    stub = StubStepExecutor(
        outputs={"clippy": {"clippy.sarif": b'{"runs": []}'}},
        reads={"upload": "downloaded/clippy.sarif"},
    )
    p = Pipeline("p", jobs=[
        tmpl("clippy", produces=[SARIF]),
        tmpl("upload", needs=["clippy"], consumes=[ArtifactRef("clippy-sarif", "downloaded/clippy.sarif")]),
    ])
    store = MemoryArtifactStore()
    report = run_pipeline(p, executor=stub, store=store, workspace=tmp_path, console=console)

    assert report.results["upload"].raw is Outcome.SUCCESS
    assert stub.seen["upload"] == b'{"runs": []}'
    assert store.producer_of("clippy-sarif") == "clippy"


def test_missing_artifact_fails_the_consumer(console, tmp_path):
    stub = StubStepExecutor()
    p = Pipeline("p", jobs=[tmpl("upload", consumes=[SARIF])])
    report = run_pipeline(p, executor=stub, workspace=tmp_path, console=console)

    assert report.results["upload"].raw is Outcome.FAILURE
    assert "clippy-sarif" in report.results["upload"].error
    assert stub.calls == []


def test_optional_artifact_may_be_absent(console, tmp_path):
    stub = StubStepExecutor()
    optional = ArtifactRef("clippy-sarif", "clippy.sarif", optional=True)
    p = Pipeline("p", jobs=[tmpl("upload", consumes=[optional])])
    report = run_pipeline(p, executor=stub, workspace=tmp_path, console=console)
    assert report.results["upload"].raw is Outcome.SUCCESS


def test_producer_without_output_file_fails(console, tmp_path):
    p = Pipeline("p", jobs=[tmpl("clippy", produces=[SARIF])])
    report = run_pipeline(p, executor=StubStepExecutor(), workspace=tmp_path, console=console)
    assert report.results["clippy"].raw is Outcome.FAILURE
    assert "clippy.sarif" in report.results["clippy"].error


def test_failed_producer_publishes_nothing(console, tmp_path):
    stub = StubStepExecutor(
        {"clippy": Outcome.FAILURE},
        outputs={"clippy": {"clippy.sarif": b"partial"}},
    )
    store = MemoryArtifactStore()
    p = Pipeline("p", jobs=[tmpl("clippy", produces=[SARIF])])
    run_pipeline(p, executor=stub, store=store, workspace=tmp_path, console=console)
    assert store.keys() == []


def test_masked_failure_still_hands_off_its_output(console, tmp_path):
    stub = StubStepExecutor(
        {"clippy": Outcome.FAILURE},
        outputs={"clippy": {"clippy.sarif": b"findings"}},
        reads={"upload": "clippy.sarif"},
    )
    p = Pipeline("p", jobs=[
        tmpl("clippy", produces=[SARIF], continue_on_error=True),
        tmpl("upload", needs=["clippy"], consumes=[SARIF]),
    ])
    report = run_pipeline(p, executor=stub, workspace=tmp_path, console=console)

    assert report.results["clippy"].raw is Outcome.FAILURE
    assert report.results["upload"].raw is Outcome.SUCCESS
    assert stub.seen["upload"] == b"findings"


def test_masked_failure_without_output_is_not_an_error(console, tmp_path):
    stub = StubStepExecutor({"clippy": Outcome.FAILURE})
    store = MemoryArtifactStore()
    p = Pipeline("p", jobs=[tmpl("clippy", produces=[SARIF], continue_on_error=True)])
    report = run_pipeline(p, executor=stub, store=store, workspace=tmp_path, console=console)

    assert report.results["clippy"].error == "step executor reported failure"
    assert store.keys() == []


def test_masked_exception_still_hands_off_its_output(console, tmp_path):
    stub = StubStepExecutor(
        outputs={"clippy": {"clippy.sarif": b"findings"}},
        raises={"clippy": RuntimeError("clippy found warnings")},
    )
    store = MemoryArtifactStore()
    p = Pipeline("p", jobs=[tmpl("clippy", produces=[SARIF], continue_on_error=True)])
    report = run_pipeline(p, executor=stub, store=store, workspace=tmp_path, console=console)

    assert report.results["clippy"].error == "clippy found warnings"
    assert store.get("clippy-sarif") == b"findings"


def test_matrix_producers_interpolate_key_and_path(console, tmp_path):
    outputs = {f"build[os={os}]": {f"out-{os}.bin": os.encode()} for os in ("linux", "macos")}
    p = Pipeline("p", jobs=[
        tmpl("build", matrix={"os": ["linux", "macos"]}, produces=[ArtifactRef("bin-{os}", "out-{os}.bin")]),
    ])
    store = MemoryArtifactStore()
    report = run_pipeline(
        p, executor=StubStepExecutor(outputs=outputs), store=store, workspace=tmp_path, console=console,
    )
    assert all(r.raw is Outcome.SUCCESS for r in report.results.values())
    assert store.keys() == ["bin-linux", "bin-macos"]
    assert store.get("bin-macos") == b"macos"


def test_shared_key_across_matrix_fails_the_second_writer(console, tmp_path):
    outputs = {f"build[os={os}]": {f"out-{os}.bin": b"x"} for os in ("linux", "macos")}
    p = Pipeline("p", jobs=[
        tmpl("build", matrix={"os": ["linux", "macos"]}, produces=[ArtifactRef("bin", "out-{os}.bin")]),
    ])
    report = run_pipeline(
        p, executor=StubStepExecutor(outputs=outputs), workspace=tmp_path, console=console, max_workers=1,
    )
    assert report.results["build[os=linux]"].raw is Outcome.SUCCESS
    assert report.results["build[os=macos]"].raw is Outcome.FAILURE
    assert "already written" in report.results["build[os=macos]"].error
