"""Settings store with an injected persistence backend and explicit flush."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Protocol, Sequence

from pydantic import ValidationError

from ..tools.ignore import DEFAULT_IGNORE_RULES, IgnoreOverrides, IgnoreRule, merge_ignore_rules
from .schema import IgnoreSettings, RepoGroup, RepoSettings, SettingsDocument

DEFAULT_SETTINGS_PATH = Path(".repoprompter/settings.json")
LOGGER = logging.getLogger(__name__)


class SettingsStoreError(RuntimeError):
    """Raised when the settings store cannot honour a request."""


class SettingsBackend(Protocol):
    """Persistence backend consumed by `SettingsStore`."""

    def load(self) -> Optional[Mapping[str, Any]]: ...

    def save(self, payload: Mapping[str, Any]) -> None: ...


class InMemorySettingsBackend:
    """Backend that keeps the payload in memory; used by tests and dry runs."""

    def __init__(self, payload: Optional[Mapping[str, Any]] = None) -> None:
        self.payload: Optional[dict[str, Any]] = json.loads(json.dumps(payload)) if payload is not None else None
        self.save_count = 0

    def load(self) -> Optional[Mapping[str, Any]]:
        return self.payload

    def save(self, payload: Mapping[str, Any]) -> None:
        self.payload = json.loads(json.dumps(payload))
        self.save_count += 1


class JsonFileSettingsBackend:
    """Backend persisting settings as a JSON document on disk."""

    def __init__(self, path: Path | str = DEFAULT_SETTINGS_PATH) -> None:
        self.path = Path(path)

    def load(self) -> Optional[Mapping[str, Any]]:
        if not self.path.exists():
            return None
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as error:
            LOGGER.error("Failed to read settings from %s; using defaults: %s", self.path, error)
            return None
        if not isinstance(data, dict):
            LOGGER.error("Settings file %s must contain a JSON object; using defaults", self.path)
            return None
        return data

    def save(self, payload: Mapping[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self.path.parent,
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            json.dump(payload, handle, indent=2)
            handle.write("\n")
            temp_path = Path(handle.name)
        try:
            os.replace(temp_path, self.path)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise


class SettingsStore:
    """Per-repository settings, saved groups, and global ignore configuration.

    Mutations only mark the store dirty; ``flush`` writes the whole document
    through the backend once and ``close`` flushes before refusing further
    writes. Values handed out are copies, so callers never mutate the store
    in place.
    """

    def __init__(self, backend: SettingsBackend) -> None:
        self._backend = backend
        self._document = self._load(backend)
        self._dirty = False
        self._closed = False

    @staticmethod
    def _load(backend: SettingsBackend) -> SettingsDocument:
        raw = backend.load()
        if raw is None:
            return SettingsDocument()
        try:
            return SettingsDocument.model_validate(raw)
        except ValidationError as error:
            LOGGER.error("Stored settings are invalid; using defaults: %s", error)
            return SettingsDocument()

    @classmethod
    def from_config(cls, config: Mapping[str, Any], repo_root: Path | None = None) -> "SettingsStore":
        paths = config.get("paths") or {}
        settings_value = paths.get("settings") if isinstance(paths, Mapping) else None
        settings_path = Path(settings_value) if settings_value else DEFAULT_SETTINGS_PATH
        if not settings_path.is_absolute() and repo_root is not None:
            settings_path = repo_root / settings_path
        return cls(JsonFileSettingsBackend(settings_path))

    def __enter__(self) -> "SettingsStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise SettingsStoreError("Settings store is closed.")

    def _mark_dirty(self) -> None:
        self._dirty = True

    def flush(self) -> None:
        """Persist pending changes through the backend."""
        if not self._dirty:
            return
        payload = self._document.model_dump(mode="json", by_alias=True)
        self._backend.save(payload)
        self._dirty = False
        LOGGER.debug("Flushed settings for %d repositories", len(self._document.repos))

    def close(self) -> None:
        if self._closed:
            return
        try:
            self.flush()
        finally:
            self._closed = True

    @staticmethod
    def _key(repo_path: Path | str) -> str:
        return str(repo_path)

    def get_repo_settings(self, repo_path: Path | str) -> RepoSettings:
        existing = self._document.repos.get(self._key(repo_path))
        if existing is None:
            return RepoSettings()
        return existing.model_copy(deep=True)

    def update_repo_settings(
        self,
        repo_path: Path | str,
        *,
        user_instructions: Optional[str] = None,
        groups: Optional[Sequence[RepoGroup]] = None,
    ) -> RepoSettings:
        """Merge the provided fields into the repository's settings."""
        self._ensure_open()
        current = self.get_repo_settings(repo_path)
        if user_instructions is not None:
            current.user_instructions = user_instructions
        if groups is not None:
            current.groups = [group.model_copy(deep=True) for group in groups]
        self._document.repos[self._key(repo_path)] = current
        self._mark_dirty()
        return current.model_copy(deep=True)

    def list_groups(self, repo_path: Path | str) -> List[RepoGroup]:
        return self.get_repo_settings(repo_path).groups

    def get_group(self, repo_path: Path | str, name: str) -> Optional[RepoGroup]:
        return self.get_repo_settings(repo_path).group(name)

    def save_group(self, repo_path: Path | str, group: RepoGroup) -> RepoGroup:
        """Create ``group`` or replace the existing group with the same name."""
        groups = self.list_groups(repo_path)
        replaced = False
        for index, existing in enumerate(groups):
            if existing.name == group.name:
                groups[index] = group
                replaced = True
                break
        if not replaced:
            groups.append(group)
        self.update_repo_settings(repo_path, groups=groups)
        return group.model_copy(deep=True)

    def delete_group(self, repo_path: Path | str, name: str) -> bool:
        groups = self.list_groups(repo_path)
        remaining = [group for group in groups if group.name != name]
        if len(remaining) == len(groups):
            return False
        self.update_repo_settings(repo_path, groups=remaining)
        return True

    def get_known_large_files(self) -> List[str]:
        return list(self._document.global_settings.known_large_files)

    def set_known_large_files(self, paths: Iterable[str]) -> None:
        self._ensure_open()
        self._document.global_settings.known_large_files = list(paths)
        self._mark_dirty()

    def get_ignore_overrides(self) -> IgnoreOverrides:
        return self._document.global_settings.ignore.to_overrides()

    def set_ignore_overrides(self, overrides: IgnoreOverrides) -> None:
        self._ensure_open()
        self._document.global_settings.ignore = IgnoreSettings.from_overrides(overrides)
        self._mark_dirty()

    def ignore_rules(self, defaults: Sequence[IgnoreRule] = DEFAULT_IGNORE_RULES) -> tuple[IgnoreRule, ...]:
        """Return the effective rule set: defaults merged with the user layer."""
        return merge_ignore_rules(defaults, self.get_ignore_overrides())


__all__ = [
    "DEFAULT_SETTINGS_PATH",
    "InMemorySettingsBackend",
    "JsonFileSettingsBackend",
    "SettingsBackend",
    "SettingsStore",
    "SettingsStoreError",
]
