"""Typed payloads that describe whole-file replacements proposed by an agent."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Sequence


@dataclass(frozen=True, slots=True)
class FileChange:
    """Complete replacement content for a single repository file."""

    file_name: str
    new_content: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"file_name": self.file_name, "new_content": self.new_content}


@dataclass(frozen=True, slots=True)
class ChangeSet:
    """Ordered batch of file replacements parsed from one diff document.

    Order follows the document and only matters for reporting; each change is
    applied independently of the others.
    """

    changes: tuple[FileChange, ...] = ()

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for change in self.changes:
            if change.file_name in seen:
                raise ValueError(f"Duplicate file in change set: {change.file_name}")
            seen.add(change.file_name)

    @classmethod
    def from_changes(cls, changes: Sequence[FileChange]) -> "ChangeSet":
        return cls(tuple(changes))

    def __iter__(self) -> Iterator[FileChange]:
        return iter(self.changes)

    def __len__(self) -> int:
        return len(self.changes)

    def __getitem__(self, index: int) -> FileChange:
        return self.changes[index]

    def __bool__(self) -> bool:
        return bool(self.changes)

    def file_names(self) -> tuple[str, ...]:
        return tuple(change.file_name for change in self.changes)

    def get(self, file_name: str) -> FileChange | None:
        for change in self.changes:
            if change.file_name == file_name:
                return change
        return None

    def only(self, *file_names: str) -> "ChangeSet":
        """Return the subset targeting ``file_names`` (accept-single)."""
        wanted = set(file_names)
        return ChangeSet(tuple(change for change in self.changes if change.file_name in wanted))

    def without(self, *file_names: str) -> "ChangeSet":
        """Return the change set minus ``file_names`` (reject-single)."""
        rejected = set(file_names)
        return ChangeSet(tuple(change for change in self.changes if change.file_name not in rejected))

    def to_dict(self) -> dict[str, Any]:
        return {"changes": [change.to_dict() for change in self.changes]}
