"""
Tests for the executor, workspace state and run invalidation.
"""
import pytest

import contexter.pipeline as pipeline
from contexter.config import Settings
from contexter.errors import ComputationError, InvalidInputError, StaleRunError
from contexter.models import FileInput, FilterStatus
from contexter.pipeline import IngestRun, PipelineExecutor, Workspace
from contexter.tree import flatten_tree, process_files


PROJECT = {
    ".gitignore": "*.log\nbuild/\n",
    "src/app.py": "import os\n",
    "src/lib/util.py": "def f():\n    return 1\n",
    "src/lib/debug.log": "noise",
    "build/out.js": "x",
    "docs/index.md": "# Docs\n",
    "logo.png": b"\x89PNG\r\n\x1a\n" + b"\x00" * 64,
    "legacy.txt": "caf\xe9".encode("latin-1"),
}


@pytest.fixture
def executor():
    with PipelineExecutor(max_workers=2, batch_size=2) as ex:
        yield ex


@pytest.fixture
def project(make_tree):
    return make_tree(PROJECT)


def test_executor_lifecycle():
    ex = PipelineExecutor()
    assert not ex.running
    ex.start()
    assert ex.running
    ex.shutdown()
    assert not ex.running
    with pytest.raises(RuntimeError):
        ex.read_files(None, [])


def test_read_files_in_batches(project, executor):
    report = executor.read_files(project, ["src/app.py", "logo.png", "legacy.txt", "docs/index.md", "gone.txt"])
    assert [f.path for f in report.files] == ["src/app.py", "docs/index.md"]
    assert report.binary_count == 1
    assert sorted(s.path for s in report.skipped) == ["gone.txt", "legacy.txt"]


def test_read_files_stops_for_stale_run(project, executor):
    ws = Workspace(executor)
    run = IngestRun(run_id=99, root=project, workspace=ws)
    with pytest.raises(StaleRunError):
        executor.read_files(project, ["src/app.py"], run)


def test_ingest(project, executor):
    ws = Workspace(executor)
    report = ws.ingest(project)

    assert report.status is FilterStatus.OK
    paths = sorted(ws.snapshot.contents)
    assert paths == [".gitignore", "docs/index.md", "src/app.py", "src/lib/util.py"]
    assert [s.path for s in report.skipped] == ["legacy.txt"]
    assert report.result.total_files == 4
    assert ws.result is report.result


def test_ingest_empty_directory(tmp_path, executor):
    ws = Workspace(executor)
    report = ws.ingest(tmp_path)
    assert report.status is FilterStatus.NO_FILES
    assert ws.result.total_files == 0


def test_ingest_all_excluded(make_tree, executor):
    root = make_tree({".gitignore": "*\n", "a.txt": "x"})
    report = Workspace(executor).ingest(root)
    assert report.status is FilterStatus.ALL_EXCLUDED


def test_ingest_respects_size_limit(project, executor):
    ws = Workspace(executor, Settings(max_file_size=12))
    ws.ingest(project)
    assert "src/lib/util.py" not in ws.snapshot.contents
    assert "src/app.py" in ws.snapshot.contents


def test_delete_directory(project, executor):
    ws = Workspace(executor)
    ws.ingest(project)
    result = ws.delete(["src/lib"])

    nodes = flatten_tree(result.file_tree)
    assert "src/lib" not in nodes
    assert "src/lib/util.py" not in ws.snapshot.contents
    assert result.total_files == 3
    remaining = [FileInput(p, c) for p, c in ws.snapshot.contents.items()]
    assert result.file_tree == process_files(remaining).file_tree


def test_delete_sole_child_removes_directory(project, executor):
    ws = Workspace(executor)
    ws.ingest(project)
    result = ws.delete(["docs/index.md"])
    assert "docs" not in flatten_tree(result.file_tree)
    assert result.total_files == 3


def test_failed_recalculation_keeps_previous_tree(project, executor, monkeypatch):
    ws = Workspace(executor)
    ws.ingest(project)
    before = ws.snapshot

    def broken(*args, **kwargs):
        raise ComputationError("boom")

    monkeypatch.setattr(pipeline, "recalculate", broken)
    with pytest.raises(ComputationError):
        ws.delete(["src/app.py"])
    assert ws.snapshot is before


def test_update_settings_reprocesses(project, executor):
    ws = Workspace(executor)
    ws.ingest(project)
    result = ws.update_settings(show_token_count=False)
    assert result.total_tokens == 0
    assert ws.settings.show_token_count is False
    assert ws.result.total_files == 4


def test_update_settings_rejects_bad_values(executor):
    ws = Workspace(executor)
    with pytest.raises(InvalidInputError):
        ws.update_settings(colour="blue")
    with pytest.raises(InvalidInputError):
        ws.update_settings(max_file_size=-1)
    assert ws.settings == Settings()


def test_clear_invalidates_in_flight_run(project, executor, monkeypatch):
    ws = Workspace(executor)
    real_read = executor.read_files

    def read_then_clear(root, paths, run=None):
        report = real_read(root, paths, run)
        ws.clear()
        return report

    monkeypatch.setattr(executor, "read_files", read_then_clear)
    with pytest.raises(StaleRunError):
        ws.ingest(project)
    assert ws.result.total_files == 0
    assert ws.snapshot.contents == {}


def test_clear_during_delete_is_not_overwritten(project, executor, monkeypatch):
    ws = Workspace(executor)
    ws.ingest(project)
    real_recalculate = pipeline.recalculate

    def clear_then_recalculate(*args, **kwargs):
        ws.clear()
        return real_recalculate(*args, **kwargs)

    monkeypatch.setattr(pipeline, "recalculate", clear_then_recalculate)
    with pytest.raises(StaleRunError):
        ws.delete(["src/app.py"])
    assert ws.result.total_files == 0
    assert ws.snapshot.contents == {}


def test_ingest_during_reprocess_is_not_overwritten(project, executor, monkeypatch):
    ws = Workspace(executor)
    ws.ingest(project)
    real_process = pipeline.process_files
    calls = []

    def load_then_process(*args, **kwargs):
        if not calls:
            calls.append(1)
            ws.load_files([FileInput("fresh.txt", "newer state")])
        return real_process(*args, **kwargs)

    monkeypatch.setattr(pipeline, "process_files", load_then_process)
    with pytest.raises(StaleRunError):
        ws.update_settings(show_token_count=False)
    assert list(ws.snapshot.contents) == ["fresh.txt"]
    assert ws.settings.show_token_count is True


def test_overlapping_deletes_keep_the_first_commit(project, executor, monkeypatch):
    ws = Workspace(executor)
    ws.ingest(project)
    real_recalculate = pipeline.recalculate
    calls = []

    def delete_then_recalculate(*args, **kwargs):
        if not calls:
            calls.append(1)
            ws.delete(["docs/index.md"])
        return real_recalculate(*args, **kwargs)

    monkeypatch.setattr(pipeline, "recalculate", delete_then_recalculate)
    with pytest.raises(StaleRunError):
        ws.delete(["src/app.py"])
    assert "docs/index.md" not in ws.snapshot.contents
    assert "src/app.py" in ws.snapshot.contents
    assert ws.result.total_files == 3


def test_newer_ingest_wins(make_tree, project, executor, monkeypatch, tmp_path_factory):
    other = tmp_path_factory.mktemp("other")
    (other / "only.txt").write_text("other project", encoding="utf-8")
    ws = Workspace(executor)
    real_read = executor.read_files
    started = []

    def read_with_overlap(root, paths, run=None):
        report = real_read(root, paths, run)
        if not started:
            started.append(root)
            monkeypatch.setattr(executor, "read_files", real_read)
            ws.ingest(other)
        return report

    monkeypatch.setattr(executor, "read_files", read_with_overlap)
    with pytest.raises(StaleRunError):
        ws.ingest(project)
    assert sorted(ws.snapshot.contents) == ["only.txt"]


def test_merge_selection(project, executor):
    ws = Workspace(executor)
    ws.ingest(project)

    merged = ws.merge_selection(["src"])
    assert merged.index("src/lib/util.py") < merged.index("src/app.py")
    assert "docs/index.md" not in merged

    everything = ws.merge_selection()
    assert "#### File: `docs/index.md`" in everything
    assert ws.merge_selection(["nowhere"]) == ""


def test_merge_selection_honours_path_header_setting(project, executor):
    ws = Workspace(executor, Settings(include_path_headers=False))
    ws.ingest(project)
    assert "#### File:" not in ws.merge_selection(["src/app.py"])


def test_load_files_and_clear(executor):
    ws = Workspace(executor)
    result = ws.load_files([FileInput("a/b.txt", "hello")])
    assert result.total_files == 1
    ws.clear()
    assert ws.result.file_tree == []
