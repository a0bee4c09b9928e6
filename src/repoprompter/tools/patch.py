"""Whole-file patch application with guard rails for agent-proposed edits."""

from __future__ import annotations

import difflib
import json
import logging
import os
import stat
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Tuple

from ..structured import ChangeSet, FileChange
from .diff_xml import parse_diff_xml
from .paths import resolve_safe

TELEMETRY_LOGGER = logging.getLogger("repoprompter.telemetry")
LOGGER = logging.getLogger(__name__)

# NamedTemporaryFile creates 0600 files, so new files get the mode the umask
# would give them. os.umask is process-wide, so it is only read at import.
_PROCESS_UMASK = os.umask(0o022)
os.umask(_PROCESS_UMASK)
NEW_FILE_MODE = 0o666 & ~_PROCESS_UMASK


class PatchError(RuntimeError):
    """Raised when a change set fails validation or application."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class ApplyError(PatchError):
    """Raised when writing one file of a batch fails.

    Files written before the failing one stay on disk; there is no rollback
    across files. ``partial`` tells callers whether re-running the whole batch
    would repeat writes that already happened.
    """

    def __init__(
        self,
        failed_file: str,
        cause: BaseException,
        *,
        written: Tuple[str, ...] = (),
    ) -> None:
        if written:
            state = f"partial batch written ({len(written)} file(s) already applied)"
        else:
            state = "no files were written"
        super().__init__(
            f"Failed to write {failed_file}: {cause}; {state}.",
            details={
                "failed_file": failed_file,
                "written": list(written),
                "cause": str(cause),
                "cause_type": type(cause).__name__,
            },
        )
        self.failed_file = failed_file
        self.cause = cause
        self.written = written

    @property
    def partial(self) -> bool:
        return bool(self.written)


@dataclass(slots=True)
class PatchResult:
    """Outcome of applying a change set to the repository."""

    base_dir: Path
    written: Tuple[str, ...] = ()

    @property
    def touched_paths(self) -> Tuple[Path, ...]:
        return tuple(self.base_dir / name for name in self.written)


@dataclass(slots=True)
class ChangePreview:
    """Read-only summary of what applying one `FileChange` would do."""

    file_name: str
    exists: bool
    old_length: int
    new_length: int
    diff: str

    @property
    def unchanged(self) -> bool:
        return self.exists and not self.diff


def _serialise_event_value(value: Any) -> Any:
    """Convert telemetry payload values into JSON-friendly representations."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, (list, tuple, set)):
        return [_serialise_event_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): _serialise_event_value(child) for key, child in value.items()}
    return str(value)


def _emit_patch_event(event: str, **fields: Any) -> None:
    """Log structured telemetry events when applying change sets."""
    payload = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat()}
    for key, value in fields.items():
        payload[key] = _serialise_event_value(value)
    TELEMETRY_LOGGER.info(json.dumps(payload, separators=(",", ":"), ensure_ascii=True))


def _write_atomic(target: Path, content: str) -> None:
    """Replace ``target`` with ``content`` via a sibling temp file and ``os.replace``."""
    parent = target.parent
    if not parent.is_dir():
        raise FileNotFoundError(f"Parent directory does not exist: {parent}")
    try:
        mode = stat.S_IMODE(target.stat().st_mode)
    except FileNotFoundError:
        mode = NEW_FILE_MODE

    handle = tempfile.NamedTemporaryFile("wb", dir=parent, prefix=f".{target.name}.", suffix=".tmp", delete=False)
    temp_path = Path(handle.name)
    try:
        with handle:
            handle.write(content.encode("utf-8"))
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(temp_path, mode)
        os.replace(temp_path, target)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def apply_change_set(base_dir: Path | str, change_set: ChangeSet) -> PatchResult:
    """Write every change in ``change_set`` under ``base_dir`` in document order.

    Paths are re-validated here even when the change set came from
    `parse_diff_xml`, since callers may hand-build change sets. The first
    failing file halts the batch with an `ApplyError`.
    """
    base_path = Path(base_dir).resolve()
    written: list[str] = []
    _emit_patch_event(
        "patch_apply_started",
        base_dir=base_path,
        files=change_set.file_names(),
    )
    for change in change_set:
        try:
            target = resolve_safe(base_path, change.file_name)
            _write_atomic(target, change.new_content)
        except (OSError, ValueError) as error:
            failure = ApplyError(change.file_name, error, written=tuple(written))
            _emit_patch_event("patch_apply_failed", **failure.details)
            raise failure from error
        written.append(change.file_name)
        _emit_patch_event(
            "patch_file_written",
            file=change.file_name,
            bytes=len(change.new_content.encode("utf-8")),
        )
        LOGGER.debug("Applied replacement to %s", change.file_name)

    _emit_patch_event("patch_apply_succeeded", written=written)
    return PatchResult(base_dir=base_path, written=tuple(written))


def apply_diff_xml(base_dir: Path | str, xml_text: str) -> PatchResult:
    """Parse ``xml_text`` and apply the resulting change set."""
    change_set = parse_diff_xml(xml_text)
    if not change_set:
        return PatchResult(base_dir=Path(base_dir).resolve())
    return apply_change_set(base_dir, change_set)


def _read_existing(target: Path) -> tuple[str, bool]:
    if not target.is_file():
        return "", False
    return target.read_text(encoding="utf-8", errors="replace"), True


def preview_change(base_dir: Path | str, change: FileChange) -> ChangePreview:
    target = resolve_safe(base_dir, change.file_name)
    original, exists = _read_existing(target)
    diff_lines = difflib.unified_diff(
        original.splitlines(keepends=True),
        change.new_content.splitlines(keepends=True),
        fromfile=f"a/{change.file_name}" if exists else "/dev/null",
        tofile=f"b/{change.file_name}",
    )
    return ChangePreview(
        file_name=change.file_name,
        exists=exists,
        old_length=len(original),
        new_length=len(change.new_content),
        diff="".join(diff_lines),
    )


def preview_change_set(base_dir: Path | str, change_set: ChangeSet) -> list[ChangePreview]:
    """Describe each change against the current files without writing anything."""
    return [preview_change(base_dir, change) for change in change_set]


__all__ = [
    "ApplyError",
    "ChangePreview",
    "PatchError",
    "PatchResult",
    "apply_change_set",
    "apply_diff_xml",
    "preview_change",
    "preview_change_set",
]
