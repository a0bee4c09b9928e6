"""Typed records persisted by the settings store."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..tools.ignore import IgnoreOverrides, IgnoreRule, upgrade_legacy_patterns

DEFAULT_KNOWN_LARGE_FILES = (
    "pnpm-lock.yaml",
    "project.pbxproj",
    "package-lock.json",
    ".DS_Store",
)


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling and camelCase aliases."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class RepoGroup(RecordModel):
    """Named, saved selection of repository files."""

    name: str
    files: List[str] = Field(default_factory=list)


class RepoSettings(RecordModel):
    """Per-repository instructions and saved groups."""

    user_instructions: str = Field(default="", alias="userInstructions")
    groups: List[RepoGroup] = Field(default_factory=list)

    def group(self, name: str) -> Optional[RepoGroup]:
        for group in self.groups:
            if group.name == name:
                return group
        return None


class IgnorePatternSpec(RecordModel):
    """Regular-expression ignore rule as stored in settings."""

    pattern: str
    flags: str = ""


class IgnoreSettings(RecordModel):
    """User layer of ignore rules merged over the built-in defaults."""

    extra: List[Union[str, IgnorePatternSpec]] = Field(default_factory=list)
    disabled: List[str] = Field(default_factory=list)
    replace_defaults: bool = Field(default=False, alias="replaceDefaults")

    def to_overrides(self) -> IgnoreOverrides:
        extra = tuple(
            IgnoreRule.coerce(entry if isinstance(entry, str) else entry.model_dump())
            for entry in self.extra
        )
        return IgnoreOverrides(
            extra=extra,
            disabled=tuple(self.disabled),
            replace_defaults=self.replace_defaults,
        )

    @classmethod
    def from_overrides(cls, overrides: IgnoreOverrides) -> "IgnoreSettings":
        extra: List[Union[str, IgnorePatternSpec]] = []
        for rule in overrides.extra:
            if rule.regex:
                extra.append(IgnorePatternSpec(pattern=rule.pattern, flags=rule.flags))
            else:
                extra.append(rule.pattern)
        return cls(
            extra=extra,
            disabled=list(overrides.disabled),
            replace_defaults=overrides.replace_defaults,
        )


class GlobalSettings(RecordModel):
    """Settings shared by every repository."""

    known_large_files: List[str] = Field(
        default_factory=lambda: list(DEFAULT_KNOWN_LARGE_FILES),
        alias="knownLargeFiles",
    )
    ignore: IgnoreSettings = Field(default_factory=IgnoreSettings)

    @model_validator(mode="before")
    @classmethod
    def _upgrade_legacy_patterns(cls, data: Any) -> Any:
        # Older settings files stored a flat ``ignorePatterns`` list holding the defaults plus user edits.
        if not isinstance(data, dict) or "ignorePatterns" not in data:
            return data
        upgraded = dict(data)
        legacy = upgraded.pop("ignorePatterns") or []
        try:
            overrides = upgrade_legacy_patterns(legacy)
        except TypeError as error:
            raise ValueError(str(error)) from error
        upgraded.setdefault("ignore", IgnoreSettings.from_overrides(overrides))
        return upgraded


class SettingsDocument(RecordModel):
    """Root of the persisted settings payload."""

    global_settings: GlobalSettings = Field(default_factory=GlobalSettings, alias="global")
    repos: Dict[str, RepoSettings] = Field(default_factory=dict)
