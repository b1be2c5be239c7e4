"""
Tests for metadata-only filtering.
"""
import pytest

from contexter.errors import InvalidInputError
from contexter.filtering import MetadataFilter, filter_files
from contexter.gitignore import GitignoreSource, combine_gitignore_sources
from contexter.models import FileMetadata, FilterStatus


def meta(*entries):
    return [FileMetadata(path=p, size=s) for p, s in entries]


def test_safety_net_drops_node_modules():
    result = filter_files(meta(("a/node_modules/x.js", 10), ("a/index.ts", 20)), "", 1000)
    assert result.paths == ["a/index.ts"]
    assert result.status is FilterStatus.OK
    assert result.excluded_count == 1


def test_size_limit():
    result = filter_files(meta(("big.txt", 1001), ("edge.txt", 1000), ("small.txt", 1)), "", 1000)
    assert result.paths == ["edge.txt", "small.txt"]


def test_no_size_limit():
    result = filter_files(meta(("huge.sql", 10 * 1024**3)), "", None)
    assert result.paths == ["huge.sql"]


def test_empty_input_is_no_files():
    result = filter_files([], "/**/x")
    assert result.status is FilterStatus.NO_FILES
    assert result.paths == []


def test_everything_excluded_is_reported_distinctly():
    result = filter_files(meta(("app.log", 5), ("node_modules/a.js", 5)), "/**/*.log")
    assert result.status is FilterStatus.ALL_EXCLUDED
    assert result.paths == []
    assert result.excluded_count == 2


def test_combined_rules_drive_filtering():
    rules = combine_gitignore_sources([
        GitignoreSource("", "dist/\n*.log\n"),
        GitignoreSource("src", "!debug.log\n/generated\n"),
    ])
    entries = meta(
        ("dist/app.js", 1),
        ("src/debug.log", 1),
        ("src/trace.log", 1),
        ("src/generated/api.ts", 1),
        ("src/main.ts", 1),
        ("README.md", 1),
    )
    assert filter_files(entries, rules).paths == ["src/debug.log", "src/main.ts", "README.md"]
    assert filter_files(entries, rules.to_text()).paths == ["src/debug.log", "src/main.ts", "README.md"]


def test_paths_are_normalized():
    result = filter_files(meta(("./src\\main.py", 3)), "")
    assert result.paths == ["src/main.py"]


def test_directory_markers_are_skipped():
    result = filter_files(meta(("src/", 0), ("src/a.py", 1)), "")
    assert result.paths == ["src/a.py"]


def test_removing_entries_never_increases_kept_count():
    entries = meta(
        ("a.py", 1), ("b.log", 1), ("node_modules/c.js", 1), ("d/e.py", 5000), ("f.md", 2),
    )
    rules = ["/**/*.log"]
    full = len(filter_files(entries, rules, 1000).paths)
    for i in range(len(entries)):
        subset = entries[:i] + entries[i + 1:]
        assert len(filter_files(subset, rules, 1000).paths) <= full


def test_result_independent_of_order():
    entries = meta(("x/a.py", 1), ("b.log", 1), ("c.py", 1))
    forward = filter_files(entries, ["/**/*.log"]).paths
    backward = filter_files(list(reversed(entries)), ["/**/*.log"]).paths
    assert sorted(forward) == sorted(backward)


def test_should_include_reports_reason():
    metadata_filter = MetadataFilter(["/**/*.tmp"], max_file_size=10)
    ok, reason = metadata_filter.should_include(FileMetadata("a.tmp", 1))
    assert ok is False and "ignore" in reason
    ok, reason = metadata_filter.should_include(FileMetadata("a.py", 11))
    assert ok is False and "Too large" in reason
    assert metadata_filter.should_include(FileMetadata("a.py", 1))[0] is True


@pytest.mark.parametrize("bad", [
    FileMetadata(path="a.py", size=-1),
    FileMetadata(path="a.py", size="10"),
    FileMetadata(path=None, size=1),
    {"path": "a.py", "size": 1},
])
def test_malformed_metadata_raises(bad):
    with pytest.raises(InvalidInputError):
        filter_files([bad], "")


def test_negative_limit_raises():
    with pytest.raises(InvalidInputError):
        MetadataFilter([], max_file_size=-5)
