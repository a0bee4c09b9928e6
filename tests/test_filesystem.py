from __future__ import annotations

import os
from pathlib import Path

import pytest

from repoprompter.tools import filesystem
from repoprompter.tools.filesystem import (
    OVERSIZED_MARKER,
    READ_ERROR_MARKER,
    FileTooLargeError,
    read_file,
    read_files,
    scan_repository,
)
from repoprompter.tools.ignore import DEFAULT_IGNORE_RULES, IgnoreMatcher, IgnoreRule


def test_scan_repository_prunes_ignored_directories(tiny_repo, monkeypatch: pytest.MonkeyPatch) -> None:
    visited: list[str] = []
    real_scandir = os.scandir

    def tracking_scandir(path):
        visited.append(Path(path).name)
        return real_scandir(path)

    monkeypatch.setattr(filesystem.os, "scandir", tracking_scandir)

    files = scan_repository(tiny_repo.root, IgnoreMatcher(DEFAULT_IGNORE_RULES))

    assert files == [
        "config.yaml",
        "notes.txt",
        "src/tiny_app/__init__.py",
        "src/tiny_app/calculator.py",
    ]
    assert "node_modules" not in visited
    assert "left-pad" not in visited


def test_scan_repository_without_rules_lists_everything(tiny_repo) -> None:
    files = scan_repository(tiny_repo.root)

    assert "node_modules/left-pad/index.js" in files
    assert "package-lock.json" in files
    assert files == sorted(files)


def test_scan_repository_regex_rule_prunes_node_modules(tmp_path: Path) -> None:
    (tmp_path / "node_modules" / "x").mkdir(parents=True)
    (tmp_path / "node_modules" / "x" / "index.js").write_text("x", encoding="utf-8")
    (tmp_path / "main.js").write_text("y", encoding="utf-8")

    files = scan_repository(tmp_path, IgnoreMatcher([IgnoreRule.expression(r"^node_modules[\\/]")]))

    assert files == ["main.js"]


def test_scan_repository_keeps_directories_named_like_ignored_files(tmp_path: Path) -> None:
    for relative in ("LICENSE/notes.py", "schemas.json/model.py", "LICENSE.txt"):
        target = tmp_path / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text("x", encoding="utf-8")

    files = scan_repository(tmp_path, IgnoreMatcher(DEFAULT_IGNORE_RULES))

    assert files == ["LICENSE/notes.py", "schemas.json/model.py"]


def test_scan_repository_does_not_follow_directory_symlinks(tmp_path: Path) -> None:
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "secret.txt").write_text("s", encoding="utf-8")
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / "kept.txt").write_text("k", encoding="utf-8")
    try:
        os.symlink(outside, repo / "link", target_is_directory=True)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks unavailable")

    assert scan_repository(repo) == ["kept.txt"]


def test_scan_repository_requires_directory(tmp_path: Path) -> None:
    target = tmp_path / "file.txt"
    target.write_text("x", encoding="utf-8")

    with pytest.raises(NotADirectoryError):
        scan_repository(target)


def test_read_file_enforces_size_ceiling(tmp_path: Path) -> None:
    (tmp_path / "big.txt").write_text("x" * 32, encoding="utf-8")

    with pytest.raises(FileTooLargeError) as excinfo:
        read_file(tmp_path, "big.txt", max_bytes=16)

    assert (excinfo.value.size, excinfo.value.limit) == (32, 16)
    assert read_file(tmp_path, "big.txt", max_bytes=0) == "x" * 32


def test_read_files_records_placeholders_without_aborting(tmp_path: Path) -> None:
    (tmp_path / "small.txt").write_text("small", encoding="utf-8")
    (tmp_path / "big.txt").write_text("y" * 64, encoding="utf-8")

    result = read_files(tmp_path, ["small.txt", "big.txt", "missing.txt", "../escape.txt"], max_bytes=32)

    assert result.contents["small.txt"] == "small"
    assert result.contents["big.txt"] == f"{OVERSIZED_MARKER} (64 bytes)"
    assert result.contents["missing.txt"].startswith(f"{READ_ERROR_MARKER}: ")
    assert result.contents["../escape.txt"].startswith(f"{READ_ERROR_MARKER}: ")
    assert [(issue.path, issue.kind) for issue in result.issues] == [
        ("big.txt", "oversized"),
        ("missing.txt", "error"),
        ("../escape.txt", "error"),
    ]
    assert not result.ok
    assert len(result.errors) == 3


def test_read_files_chunks_and_deduplicates(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    names = [f"f{index}.txt" for index in range(7)]
    for name in names:
        (tmp_path / name).write_text(name, encoding="utf-8")
    chunks: list[int] = []
    real_chunked = filesystem._chunked

    def tracking_chunked(sequence, size):
        for chunk in real_chunked(sequence, size):
            chunks.append(len(chunk))
            yield chunk

    monkeypatch.setattr(filesystem, "_chunked", tracking_chunked)

    result = read_files(tmp_path, names + names[:2], max_workers=2, chunk_size=3)

    assert chunks == [3, 3, 1]
    assert result.ok
    assert result.contents == {name: name for name in names}
    assert list(result.contents) == names


def test_read_files_decodes_invalid_utf8_with_replacement(tmp_path: Path) -> None:
    (tmp_path / "binary.bin").write_bytes(b"ok\xff")

    result = read_files(tmp_path, ["binary.bin"])

    assert result.contents["binary.bin"] == "ok\ufffd"
    assert result.ok
