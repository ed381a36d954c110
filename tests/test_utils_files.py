"""Tests for file utility functions."""

from __future__ import annotations

from pathlib import Path

import pytest

from semsearch.utils.files import TEXT_EXTENSIONS, guess_mimetype, is_text_like, iter_text_paths


class TestIsTextLike:
    """Test the extension allow-list."""

    @pytest.mark.parametrize("name", ["notes.md", "main.PY", "data.csv", "page.html", "run.ps1"])
    def test_allowed(self, name: str) -> None:
        assert is_text_like(name)

    @pytest.mark.parametrize("name", ["image.png", "doc.pdf", "archive.zip", "Makefile", "bin"])
    def test_rejected(self, name: str) -> None:
        assert not is_text_like(name)

    def test_allow_list_contents(self) -> None:
        assert len(TEXT_EXTENSIONS) == 25
        assert all(ext.startswith(".") and ext == ext.lower() for ext in TEXT_EXTENSIONS)


class TestIterTextPaths:
    """Test iter_text_paths function."""

    def test_single_text_file(self, tmp_path: Path) -> None:
        note = tmp_path / "note.txt"
        note.write_text("hello")

        assert list(iter_text_paths([note])) == [note]

    def test_single_non_text_file(self, tmp_path: Path) -> None:
        image = tmp_path / "image.png"
        image.write_bytes(b"\x89PNG")

        assert list(iter_text_paths([image])) == []

    def test_nested_directories(self, tmp_path: Path) -> None:
        """Should find text files in nested directories, in sorted order."""
        subdir = tmp_path / "subdir"
        subdir.mkdir()
        (tmp_path / "b.md").write_text("b")
        (tmp_path / "a.py").write_text("a")
        (subdir / "nested.json").write_text("{}")
        (subdir / "photo.jpg").write_bytes(b"\xff\xd8")

        paths = list(iter_text_paths([tmp_path]))

        assert paths == [tmp_path / "a.py", tmp_path / "b.md", subdir / "nested.json"]

    def test_missing_path(self, tmp_path: Path) -> None:
        assert list(iter_text_paths([tmp_path / "missing"])) == []

    def test_empty_directory(self, tmp_path: Path) -> None:
        assert list(iter_text_paths([tmp_path])) == []


class TestGuessMimetype:
    def test_known(self) -> None:
        assert guess_mimetype("page.html") == "text/html"

    def test_unknown(self) -> None:
        assert guess_mimetype("file.unknownext") is None
