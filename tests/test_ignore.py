from __future__ import annotations

import logging

import pytest

from repoprompter.tools.ignore import (
    DEFAULT_IGNORE_RULES,
    IgnoreMatcher,
    IgnoreOverrides,
    IgnoreRule,
    clean_selection,
    is_ignored,
    merge_ignore_rules,
)


def test_regex_rule_prunes_node_modules_directory() -> None:
    matcher = IgnoreMatcher([IgnoreRule.expression(r"^node_modules[\\/]")])

    assert matcher.is_ignored_dir("node_modules")
    assert matcher.is_ignored("node_modules/x/index.js")
    assert not matcher.is_ignored("src/node_modules_helper.py")


def test_literal_rule_matches_suffix_and_nested_segments() -> None:
    matcher = IgnoreMatcher(["package-lock.json"])

    assert matcher.is_ignored("package-lock.json")
    assert matcher.is_ignored("apps/web/package-lock.json")
    assert matcher.is_ignored("apps\\web\\package-lock.json")
    assert not matcher.is_ignored("package-lock.json.bak")


def test_literal_rule_prunes_nested_directory() -> None:
    matcher = IgnoreMatcher(["node_modules"])

    assert matcher.is_ignored_dir("packages/web/node_modules")
    assert matcher.is_ignored_dir("packages/web/node_modules/")


def test_file_expressions_do_not_prune_directories() -> None:
    matcher = IgnoreMatcher(DEFAULT_IGNORE_RULES)

    assert not matcher.is_ignored_dir("LICENSE")
    assert not matcher.is_ignored_dir("fixtures.json")
    assert not matcher.is_ignored_dir("drafts~")
    assert not matcher.is_ignored_dir("data.csv/")
    assert matcher.is_ignored_dir("dist")
    assert matcher.is_ignored_dir("src/__pycache__")
    assert matcher.is_ignored("LICENSE")
    assert matcher.is_ignored("fixtures.json")


@pytest.mark.parametrize("flags", ["i", "gi", "iu"])
def test_regex_flags_are_honoured(flags: str) -> None:
    matcher = IgnoreMatcher([{"pattern": r"\.PNG$", "flags": flags}])

    assert matcher.is_ignored("assets/logo.png")
    assert matcher.invalid_rules == ()


def test_invalid_regex_is_logged_and_never_matches(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="repoprompter.tools.ignore")
    broken = IgnoreRule.expression("([unclosed")
    bad_flag = IgnoreRule.expression("x", flags="q")

    matcher = IgnoreMatcher([broken, bad_flag, "keep.lock"])

    assert matcher.invalid_rules == (broken, bad_flag)
    assert not matcher.is_ignored("([unclosed")
    assert matcher.is_ignored("keep.lock")
    assert "([unclosed" in caplog.text


@pytest.mark.parametrize(
    "path",
    [
        "package-lock.json",
        "dist/bundle.js",
        "src/__pycache__/mod.cpython-311.pyc",
        "pkg/.git/HEAD",
        "assets/photo.jpeg",
        "notes.txt.swp",
        "app.min.js",
        ".env.local",
        "web/tests/__mocks__/api.ts",
    ],
)
def test_default_rules_ignore_noise(path: str) -> None:
    assert is_ignored(path, DEFAULT_IGNORE_RULES)


@pytest.mark.parametrize("path", ["src/main.py", "docs/guide.md", "lib/core.ts", "Makefile"])
def test_default_rules_keep_source(path: str) -> None:
    assert not is_ignored(path, DEFAULT_IGNORE_RULES)


def test_matcher_is_independent_of_rule_order() -> None:
    rules = list(DEFAULT_IGNORE_RULES[:12]) + ["notes.txt", IgnoreRule.expression(r"\.log$")]
    forward = IgnoreMatcher(rules)
    backward = IgnoreMatcher(list(reversed(rules)))
    paths = [
        "notes.txt",
        "build/app.js",
        "server.log",
        "src/main.py",
        "yarn.lock",
        "nested/notes.txt",
    ]

    assert [forward.is_ignored(path) for path in paths] == [backward.is_ignored(path) for path in paths]


def test_clean_selection_preserves_order_and_reports_summary() -> None:
    matcher = IgnoreMatcher(DEFAULT_IGNORE_RULES)

    cleanup = clean_selection(["src/a.py", "yarn.lock", "src/b.py", "logo.png"], matcher)

    assert cleanup.kept == ("src/a.py", "src/b.py")
    assert cleanup.removed == ("yarn.lock", "logo.png")
    assert cleanup.summary() == (
        "Removed 2 unnecessary files from selection. Kept 2 core files for AI context."
    )


def test_clean_selection_without_matches() -> None:
    cleanup = clean_selection(["src/a.py"], IgnoreMatcher(DEFAULT_IGNORE_RULES))

    assert cleanup.removed == ()
    assert cleanup.summary() == "No unnecessary files found in current selection."


def test_merge_ignore_rules_layers_user_overrides() -> None:
    defaults = (IgnoreRule.literal("yarn.lock"), IgnoreRule.expression(r"\.map$"))
    overrides = IgnoreOverrides(
        extra=(IgnoreRule.literal("secrets.txt"), IgnoreRule.literal("yarn.lock")),
        disabled=(r"\.map$",),
    )

    merged = merge_ignore_rules(defaults, overrides)

    assert merged == (IgnoreRule.literal("yarn.lock"), IgnoreRule.literal("secrets.txt"))
    assert defaults == (IgnoreRule.literal("yarn.lock"), IgnoreRule.expression(r"\.map$"))


def test_merge_ignore_rules_can_replace_defaults() -> None:
    overrides = IgnoreOverrides(extra=(IgnoreRule.literal("only.txt"),), replace_defaults=True)

    assert merge_ignore_rules(DEFAULT_IGNORE_RULES, overrides) == (IgnoreRule.literal("only.txt"),)
    assert merge_ignore_rules(DEFAULT_IGNORE_RULES) == DEFAULT_IGNORE_RULES


def test_rule_coercion_and_config_round_trip() -> None:
    literal = IgnoreRule.coerce("yarn.lock")
    expression = IgnoreRule.coerce({"pattern": r"\.log$", "flags": "i"})

    assert literal.to_config() == "yarn.lock"
    assert expression.to_config() == {"pattern": r"\.log$", "flags": "i"}
    assert IgnoreRule.coerce(expression.to_config()) == expression
    with pytest.raises(TypeError):
        IgnoreRule.coerce(42)
