"""Path guards for writes that originate from untrusted diff documents."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Mapping

_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")
_SEPARATORS = re.compile(r"[\\/]")


class PathTraversalError(ValueError):
    """Raised when a relative path could escape its base directory."""

    def __init__(self, path: str, reason: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(f"Unsafe path {path!r}: {reason}")
        self.path = path
        self.reason = reason
        self.details: dict[str, Any] = {"path": path, "reason": reason, **dict(details or {})}


def check_relative_path(path: str) -> str:
    """Return ``path`` unchanged when it is a syntactically safe relative path.

    Both ``/`` and ``\\`` count as separators so that encodings such as
    ``a\\..\\b`` are rejected on every platform.
    """
    if not isinstance(path, str) or not path.strip():
        raise PathTraversalError(str(path), "path is empty")
    if "\x00" in path:
        raise PathTraversalError(path, "path contains a NUL byte")
    if path.startswith(("/", "\\")):
        raise PathTraversalError(path, "absolute paths are not permitted")
    if _DRIVE_PREFIX.match(path):
        raise PathTraversalError(path, "drive-qualified paths are not permitted")
    if any(segment == ".." for segment in _SEPARATORS.split(path)):
        raise PathTraversalError(path, "parent directory segments are not permitted")
    return path


def resolve_safe(base_dir: Path | str, relative_path: str) -> Path:
    """Resolve ``relative_path`` under ``base_dir`` or raise `PathTraversalError`.

    The syntactic check is repeated against the canonical location: the
    resolved candidate must start with the resolved base directory followed by
    a separator. Nothing on disk is created or modified.
    """
    check_relative_path(relative_path)
    base = Path(base_dir).resolve()
    candidate = (base / relative_path).resolve()
    base_text = str(base)
    prefix = base_text if base_text.endswith(os.sep) else base_text + os.sep
    if not str(candidate).startswith(prefix):
        raise PathTraversalError(
            relative_path,
            "resolved path escapes the base directory",
            details={"base_dir": base_text, "resolved": str(candidate)},
        )
    return candidate


__all__ = ["PathTraversalError", "check_relative_path", "resolve_safe"]
