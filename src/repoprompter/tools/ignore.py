"""Ignore rules used to filter repository scans and saved selections."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Pattern, Sequence

LOGGER = logging.getLogger(__name__)

_PATH_SEPARATORS = ("/", "\\")
_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}
# Accepted for compatibility with JavaScript-style rule files; no effect on search().
_NEUTRAL_FLAGS = frozenset("gyu")


class RegexCompileError(ValueError):
    """Raised internally when an ignore rule cannot be compiled."""


@dataclass(frozen=True, slots=True)
class IgnoreRule:
    """Literal or regular-expression pattern that excludes matching paths."""

    pattern: str
    flags: str = ""
    regex: bool = False

    @classmethod
    def literal(cls, pattern: str) -> "IgnoreRule":
        return cls(pattern=pattern)

    @classmethod
    def expression(cls, pattern: str, flags: str = "") -> "IgnoreRule":
        return cls(pattern=pattern, flags=flags, regex=True)

    @classmethod
    def coerce(cls, entry: Any) -> "IgnoreRule":
        """Build a rule from a string, a ``{pattern, flags}`` mapping, or a rule."""
        if isinstance(entry, IgnoreRule):
            return entry
        if isinstance(entry, str):
            return cls.literal(entry)
        if isinstance(entry, Mapping):
            pattern = entry.get("pattern")
            if not isinstance(pattern, str):
                raise ValueError(f"Ignore rule mapping requires a string 'pattern': {entry!r}")
            flags = entry.get("flags") or ""
            if not isinstance(flags, str):
                raise ValueError(f"Ignore rule flags must be a string: {entry!r}")
            return cls.expression(pattern, flags)
        raise TypeError(f"Unsupported ignore rule: {entry!r}")

    def to_config(self) -> str | dict[str, str]:
        if not self.regex:
            return self.pattern
        payload = {"pattern": self.pattern}
        if self.flags:
            payload["flags"] = self.flags
        return payload

    def compile(self) -> Pattern[str]:
        flags = 0
        for letter in self.flags:
            if letter in _FLAG_MAP:
                flags |= _FLAG_MAP[letter]
            elif letter not in _NEUTRAL_FLAGS:
                raise RegexCompileError(f"Unsupported regex flag {letter!r}")
        try:
            return re.compile(self.pattern, flags)
        except re.error as error:
            raise RegexCompileError(str(error)) from error


def _literal_matches(path: str, pattern: str) -> bool:
    if path == pattern or path.endswith(pattern):
        return True
    return any(f"{separator}{pattern}" in path for separator in _PATH_SEPARATORS)


class IgnoreMatcher:
    """Evaluate paths against an immutable snapshot of ignore rules.

    Any matching rule ignores the path, so the answer never depends on rule
    order. Rules that fail to compile are logged once and never match.
    """

    def __init__(self, rules: Iterable[Any] = ()) -> None:
        literals: list[str] = []
        expressions: list[Pattern[str]] = []
        invalid: list[IgnoreRule] = []
        normalised: list[IgnoreRule] = []
        for entry in rules:
            rule = IgnoreRule.coerce(entry)
            normalised.append(rule)
            if not rule.regex:
                literals.append(rule.pattern)
                continue
            try:
                expressions.append(rule.compile())
            except RegexCompileError as error:
                LOGGER.warning("Ignoring invalid ignore pattern %r: %s", rule.pattern, error)
                invalid.append(rule)
        self._rules = tuple(normalised)
        self._literals = tuple(literals)
        self._expressions = tuple(expressions)
        self._invalid = tuple(invalid)

    @property
    def rules(self) -> tuple[IgnoreRule, ...]:
        return self._rules

    @property
    def invalid_rules(self) -> tuple[IgnoreRule, ...]:
        return self._invalid

    def is_ignored(self, path: str) -> bool:
        if any(_literal_matches(path, pattern) for pattern in self._literals):
            return True
        return any(expression.search(path) for expression in self._expressions)

    def is_ignored_dir(self, path: str) -> bool:
        """Return True when the directory ``path`` and its subtree are excluded.

        Expressions only see the name with a trailing separator, so file rules
        such as the ``.json`` extension rule never prune a directory. Literal
        rules also match the bare name.
        """
        trimmed = path.rstrip("/\\")
        if not trimmed:
            return False
        if self.is_ignored(f"{trimmed}/"):
            return True
        return any(_literal_matches(trimmed, pattern) for pattern in self._literals)


def is_ignored(path: str, rules: Iterable[Any]) -> bool:
    """Return True when any rule in ``rules`` matches ``path``."""
    return IgnoreMatcher(rules).is_ignored(path)


@dataclass(slots=True)
class SelectionCleanup:
    """Outcome of pruning an existing file selection."""

    kept: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()

    def summary(self) -> str:
        if not self.removed:
            return "No unnecessary files found in current selection."
        return (
            f"Removed {len(self.removed)} unnecessary files from selection. "
            f"Kept {len(self.kept)} core files for AI context."
        )


def clean_selection(paths: Sequence[str], matcher: IgnoreMatcher) -> SelectionCleanup:
    """Split a selected file list into kept and ignored entries, preserving order."""
    kept: list[str] = []
    removed: list[str] = []
    for path in paths:
        (removed if matcher.is_ignored(path) else kept).append(path)
    return SelectionCleanup(kept=tuple(kept), removed=tuple(removed))


@dataclass(slots=True)
class IgnoreOverrides:
    """User layer applied on top of the built-in ignore rules."""

    extra: tuple[IgnoreRule, ...] = ()
    disabled: tuple[str, ...] = ()
    replace_defaults: bool = False


def merge_ignore_rules(
    defaults: Sequence[IgnoreRule],
    overrides: IgnoreOverrides | None = None,
) -> tuple[IgnoreRule, ...]:
    """Combine the default and user rule layers without mutating either."""
    layer = overrides or IgnoreOverrides()
    disabled = set(layer.disabled)
    base: Sequence[IgnoreRule] = () if layer.replace_defaults else defaults
    merged: list[IgnoreRule] = []
    seen: set[IgnoreRule] = set()
    for rule in (*base, *layer.extra):
        if rule in seen:
            continue
        if rule.pattern in disabled and rule not in layer.extra:
            continue
        seen.add(rule)
        merged.append(rule)
    return tuple(merged)


_L = IgnoreRule.literal
_R = IgnoreRule.expression

_PYCACHE_RULE = _R(r"(^|[\\/])__pycache__[\\/]")
_GIT_RULE = _R(r"(^|[\\/])\.git[\\/]")
_SWAP_RULE = _R(r"\.sw[po]$")
_BACKUP_RULE = _R(r"~$")

DEFAULT_IGNORE_RULES: tuple[IgnoreRule, ...] = (
    _L("package-lock.json"),
    _L("pnpm-lock.yaml"),
    _L("yarn.lock"),
    _L("composer.lock"),
    _L("Pipfile.lock"),
    _L("poetry.lock"),
    _L("Gemfile.lock"),
    _L("go.sum"),
    _L("Cargo.lock"),
    _R(r"^(dist|build|out|target|release)[\\/]"),
    _R(r"^\.next[\\/]"),
    _R(r"^\.nuxt[\\/]"),
    _R(r"^\.output[\\/]"),
    _R(r"^public[\\/].*\.(js|css|map)$"),
    _R(r"^node_modules[\\/]"),
    _R(r"^vendor[\\/]"),
    _PYCACHE_RULE,
    _GIT_RULE,
    _R(r"\.(config|conf)\.(js|ts|json|yaml|yml)$"),
    _L("webpack.config.js"),
    _L("vite.config.js"),
    _L("rollup.config.js"),
    _L("babel.config.js"),
    _L(".eslintrc.json"),
    _L(".prettierrc"),
    _L("jest.config.js"),
    _L("cypress.config.js"),
    _L("playwright.config.js"),
    _L("tailwind.config.js"),
    _L("postcss.config.js"),
    _R(r"^README\.(md|txt|rst)$"),
    _R(r"^CHANGELOG\.(md|txt|rst)$"),
    _R(r"^LICENSE(\.(md|txt))?$"),
    _R(r"^CONTRIBUTING\.(md|txt)$"),
    _L(".gitignore"),
    _L(".gitattributes"),
    _L(".dockerignore"),
    _R(r"^\.vscode[\\/]"),
    _R(r"^\.idea[\\/]"),
    _R(r"^\.vs[\\/]"),
    _SWAP_RULE,
    _BACKUP_RULE,
    _R(r"\.(png|jpe?g|gif|svg|ico|webp|avif)$"),
    _R(r"\.(mp4|avi|mov|wmv|flv|webm)$"),
    _R(r"\.(mp3|wav|ogg|m4a|aac)$"),
    _R(r"\.(woff2?|ttf|eot|otf)$"),
    _R(r"\.(pdf|doc|docx|xls|xlsx|ppt|pptx)$"),
    _R(r"\.min\.(js|css)$"),
    _R(r"\.map$"),
    _R(r"\.d\.ts$"),
    _R(r"coverage[\\/]"),
    _R(r"\.nyc_output[\\/]"),
    _R(r"logs?[\\/]"),
    _R(r"tmp[\\/]"),
    _R(r"temp[\\/]"),
    _R(r"^\.env(\.|$)"),
    _L(".DS_Store"),
    _L("Thumbs.db"),
    _R(r"\.(csv|json|xml|sql)$"),
    _R(r"[\\/](fixtures|mocks|__fixtures__|__mocks__)[\\/]"),
    _R(r"\.fixtures?\.(js|ts|json)$"),
    _R(r"\.mock\.(js|ts)$"),
)

# Flat ``ignorePatterns`` lists from older settings files stored the built-in
# rules as bare strings, with ``[\/]`` as the separator class. These
# spellings map back onto the current rules.
LEGACY_DEFAULT_PATTERNS: dict[str, IgnoreRule] = {
    r"^__pycache__[\/]": _PYCACHE_RULE,
    "*.swp": _SWAP_RULE,
    "*.swo": _SWAP_RULE,
    "*~": _BACKUP_RULE,
}
for _rule in DEFAULT_IGNORE_RULES:
    if _rule in (_PYCACHE_RULE, _GIT_RULE, _SWAP_RULE, _BACKUP_RULE):
        continue
    LEGACY_DEFAULT_PATTERNS[_rule.pattern] = _rule
    LEGACY_DEFAULT_PATTERNS[_rule.pattern.replace(r"[\\/]", r"[\/]")] = _rule
del _rule


def upgrade_legacy_patterns(entries: Iterable[Any]) -> IgnoreOverrides:
    """Translate a legacy flat pattern list into a user layer over the defaults.

    Strings naming a built-in rule select that rule; any other entry becomes
    an extra rule. Built-in rules the legacy list dropped are disabled. Rules
    added since the flat format existed stay enabled.
    """
    present: set[IgnoreRule] = set()
    extra: list[IgnoreRule] = []
    for entry in entries:
        if isinstance(entry, str) and entry in LEGACY_DEFAULT_PATTERNS:
            present.add(LEGACY_DEFAULT_PATTERNS[entry])
            continue
        rule = IgnoreRule.coerce(entry)
        if rule not in extra:
            extra.append(rule)
    legacy_rules = set(LEGACY_DEFAULT_PATTERNS.values())
    disabled = tuple(
        rule.pattern for rule in DEFAULT_IGNORE_RULES if rule in legacy_rules and rule not in present
    )
    return IgnoreOverrides(extra=tuple(extra), disabled=disabled)


__all__ = [
    "DEFAULT_IGNORE_RULES",
    "IgnoreMatcher",
    "IgnoreOverrides",
    "IgnoreRule",
    "RegexCompileError",
    "SelectionCleanup",
    "clean_selection",
    "is_ignored",
    "merge_ignore_rules",
    "upgrade_legacy_patterns",
]
