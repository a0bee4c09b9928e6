"""Repository scanning and batched file reads for prompt assembly."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Literal, Sequence

from .ignore import IgnoreMatcher
from .paths import PathTraversalError, resolve_safe

LOGGER = logging.getLogger(__name__)

MAX_FILE_BYTES = 5 * 1024 * 1024
DEFAULT_MAX_WORKERS = 8
DEFAULT_CHUNK_SIZE = 50
OVERSIZED_MARKER = "// File too large to load"
READ_ERROR_MARKER = "// Error reading file"


def scan_repository(base_dir: Path | str, matcher: IgnoreMatcher | None = None) -> list[str]:
    """Return POSIX-style relative file paths under ``base_dir`` not ignored by ``matcher``.

    Directories are walked with an explicit stack rather than recursion.
    Ignored directories are never entered and symlinked directories are not
    followed.
    """
    root = Path(base_dir).resolve()
    if not root.is_dir():
        raise NotADirectoryError(f"Not a directory: {root}")
    rules = matcher or IgnoreMatcher()

    files: list[str] = []
    pending: list[tuple[Path, str]] = [(root, "")]
    while pending:
        directory, prefix = pending.pop()
        try:
            with os.scandir(directory) as entries:
                listing = sorted(entries, key=lambda entry: entry.name)
        except OSError as error:
            LOGGER.warning("Unable to list %s: %s", directory, error)
            continue
        for entry in listing:
            relative = f"{prefix}{entry.name}"
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
            except OSError:
                continue
            if is_dir:
                if rules.is_ignored_dir(relative):
                    LOGGER.debug("Pruned ignored directory %s", relative)
                    continue
                pending.append((Path(entry.path), f"{relative}/"))
                continue
            if entry.is_symlink() and entry.is_dir():
                continue
            if rules.is_ignored(relative):
                continue
            files.append(relative)
    files.sort()
    return files


@dataclass(slots=True)
class ReadIssue:
    """Per-file problem recorded during a batch read."""

    path: str
    kind: Literal["oversized", "error"]
    message: str


@dataclass(slots=True)
class BatchReadResult:
    """File contents keyed by relative path plus any per-file issues."""

    contents: dict[str, str] = field(default_factory=dict)
    issues: list[ReadIssue] = field(default_factory=list)

    @property
    def errors(self) -> list[str]:
        return [f"{issue.path}: {issue.message}" for issue in self.issues]

    @property
    def ok(self) -> bool:
        return not self.issues


@dataclass(slots=True)
class _FileRead:
    path: str
    content: str
    issue: ReadIssue | None = None


def oversized_placeholder(size: int) -> str:
    return f"{OVERSIZED_MARKER} ({size} bytes)"


def read_error_placeholder(reason: str) -> str:
    return f"{READ_ERROR_MARKER}: {reason}"


class FileTooLargeError(OSError):
    """Raised when a file exceeds the configured read ceiling."""

    def __init__(self, path: str, size: int, limit: int) -> None:
        super().__init__(f"{path} is {size} bytes; limit is {limit} bytes")
        self.path = path
        self.size = size
        self.limit = limit


def read_file(base_dir: Path | str, relative_path: str, *, max_bytes: int = MAX_FILE_BYTES) -> str:
    """Read one file as UTF-8, raising `OSError` or `PathTraversalError` on failure."""
    target = resolve_safe(base_dir, relative_path)
    size = target.stat().st_size
    if max_bytes > 0 and size > max_bytes:
        raise FileTooLargeError(relative_path, size, max_bytes)
    return target.read_bytes().decode("utf-8", errors="replace")


def _read_one(base_dir: Path, relative_path: str, max_bytes: int) -> _FileRead:
    try:
        content = read_file(base_dir, relative_path, max_bytes=max_bytes)
    except FileTooLargeError as error:
        return _FileRead(
            path=relative_path,
            content=oversized_placeholder(error.size),
            issue=ReadIssue(path=relative_path, kind="oversized", message=str(error)),
        )
    except (OSError, PathTraversalError) as error:
        return _FileRead(
            path=relative_path,
            content=read_error_placeholder(str(error)),
            issue=ReadIssue(path=relative_path, kind="error", message=str(error)),
        )
    return _FileRead(path=relative_path, content=content)


def _chunked(sequence: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    """Yield sequential slices of ``sequence`` with at most ``size`` items."""
    step = max(1, size)
    for index in range(0, len(sequence), step):
        yield sequence[index : index + step]


def read_files(
    base_dir: Path | str,
    paths: Sequence[str],
    *,
    max_bytes: int = MAX_FILE_BYTES,
    max_workers: int = DEFAULT_MAX_WORKERS,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> BatchReadResult:
    """Read many files in bounded chunks without aborting on per-file errors.

    Oversized or unreadable files get a placeholder string in ``contents`` and
    an entry in ``issues`` so prompt building can continue.
    """
    root = Path(base_dir).resolve()
    unique = list(dict.fromkeys(paths))
    result = BatchReadResult()
    worker_count = max(1, min(max_workers, len(unique) or 1))

    with ThreadPoolExecutor(max_workers=worker_count) as pool:
        for chunk in _chunked(unique, chunk_size):
            for read in pool.map(lambda path: _read_one(root, path, max_bytes), chunk):
                result.contents[read.path] = read.content
                if read.issue is not None:
                    LOGGER.warning("Could not load %s: %s", read.path, read.issue.message)
                    result.issues.append(read.issue)
    return result


__all__ = [
    "BatchReadResult",
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_MAX_WORKERS",
    "FileTooLargeError",
    "MAX_FILE_BYTES",
    "OVERSIZED_MARKER",
    "READ_ERROR_MARKER",
    "ReadIssue",
    "read_file",
    "read_files",
    "scan_repository",
]
