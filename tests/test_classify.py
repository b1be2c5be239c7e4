"""
Tests for text/binary classification and file reading.
"""
import pytest

from contexter.classify import guess_media_type, is_text, looks_like_text, read_text_file
from contexter.errors import UnreadableFileError


def test_declared_text_families():
    assert is_text("text/plain", b"\x00\x00\x00") is True
    assert is_text("application/json", b"") is True
    assert is_text("application/typescript", b"\x00") is True
    assert is_text("image/svg+xml", b"") is True


def test_declared_binary_families():
    assert is_text("image/png", b"plain ascii") is False
    assert is_text("application/pdf", b"%PDF-1.7") is False
    assert is_text("application/zip", b"PK") is False
    assert is_text("application/x-executable", b"abc") is False


def test_unknown_type_falls_back_to_sampling():
    assert is_text(None, b"hello world\n") is True
    assert is_text("application/octet-stream", b"\x00\x01\x02\x03" * 10) is False


def test_empty_sample_is_text():
    assert looks_like_text(b"") is True
    assert is_text(None, b"") is True


def test_high_bit_bytes_are_allowed():
    assert looks_like_text("naïve café ✓".encode("utf-8")) is True


def test_threshold_is_five_percent():
    # 4 control bytes in 100 is under the limit, 5 is not
    assert looks_like_text(b"\x01" * 4 + b"a" * 96) is True
    assert looks_like_text(b"\x01" * 5 + b"a" * 95) is False


def test_only_first_8000_bytes_are_sampled():
    assert looks_like_text(b"a" * 8000 + b"\x00" * 8000) is True


def test_source_extensions_are_not_misclassified():
    assert guess_media_type("src/index.ts") == "application/typescript"
    assert guess_media_type("scripts/run.sh") == "text/x-shellscript"
    assert guess_media_type("Makefile") is None


@pytest.mark.parametrize("name", [
    "build.tcl", "login.csh", "paper.latex", "manual.texi",
    "manual.texinfo", "bundle.shar", "page.man", "doc.roff",
])
def test_script_and_markup_extensions_read_as_text(tmp_path, name):
    assert is_text(guess_media_type(name), b"") is True
    (tmp_path / name).write_text("puts hello\n", encoding="utf-8")
    assert read_text_file(tmp_path, name).content == "puts hello\n"


def test_read_text_file(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.py").write_text("print('hi')\n", encoding="utf-8")
    file_input = read_text_file(tmp_path, "src/a.py")
    assert file_input.path == "src/a.py"
    assert file_input.content == "print('hi')\n"


def test_read_empty_file(tmp_path):
    (tmp_path / "empty.txt").write_bytes(b"")
    assert read_text_file(tmp_path, "empty.txt").content == ""


def test_binary_file_returns_none(tmp_path):
    (tmp_path / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 100)
    (tmp_path / "blob.bin").write_bytes(bytes(range(256)) * 4)
    assert read_text_file(tmp_path, "logo.png") is None
    assert read_text_file(tmp_path, "blob.bin") is None


def test_invalid_utf8_is_unreadable(tmp_path):
    (tmp_path / "latin1.txt").write_bytes("café".encode("latin-1"))
    with pytest.raises(UnreadableFileError) as exc_info:
        read_text_file(tmp_path, "latin1.txt")
    assert exc_info.value.path == "latin1.txt"
    assert "UTF-8" in exc_info.value.reason


def test_missing_file_is_unreadable(tmp_path):
    with pytest.raises(UnreadableFileError):
        read_text_file(tmp_path, "gone.txt")
