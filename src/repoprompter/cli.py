"""CLI commands for building prompts and applying agent-proposed file replacements."""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml

from .memory.schema import RepoGroup
from .memory.store import SettingsStore
from .prompts import PromptBuilder
from .structured import ChangeSet
from .tools.diff_xml import DiffFormatError, parse_diff_xml
from .tools.filesystem import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_WORKERS, MAX_FILE_BYTES, read_files, scan_repository
from .tools.ignore import IgnoreMatcher, clean_selection
from .tools.patch import ApplyError, apply_change_set, preview_change_set

APP_HELP = "Build AI prompts from a repository and apply XML whole-file diffs."
DEFAULT_CONFIG_NAME = "config.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "project": {
        "repo_root": ".",
    },
    "scan": {
        "max_file_bytes": MAX_FILE_BYTES,
        "max_workers": DEFAULT_MAX_WORKERS,
        "chunk_size": DEFAULT_CHUNK_SIZE,
    },
    "prompt": {
        "include_diff_instructions": True,
    },
    "paths": {
        "settings": ".repoprompter/settings.json",
    },
    "logging": {
        "level": "WARNING",
    },
}

app = typer.Typer(help=APP_HELP)


def _merge_config(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively overlay ``overrides`` onto a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Path, *, required: bool = True) -> Dict[str, Any]:
    """Load YAML configuration from disk merged over the default template."""
    if not config_path.exists():
        if required:
            raise typer.BadParameter(f"Config file not found: {config_path}")
        return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        typer.echo(f"Failed to parse config: {error}")
        raise typer.Exit(code=1) from error

    if not isinstance(data, dict):
        typer.echo("Configuration must be a mapping at the top level.")
        raise typer.Exit(code=1)

    return _merge_config(DEFAULT_CONFIG_TEMPLATE, data)


def _resolve_repo_root(config: Dict[str, Any], config_path: Path) -> Path:
    """Resolve the repository root from configuration."""
    project_cfg = config.get("project") or {}
    repo_root_path = Path(project_cfg.get("repo_root", "."))
    if not repo_root_path.is_absolute():
        repo_root_path = (config_path.parent / repo_root_path).resolve()
    return repo_root_path


def _positive_int(value: Any, default: int) -> int:
    if isinstance(value, int) and value > 0:
        return value
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return default
        if parsed > 0:
            return parsed
    return default


def _configure_logging(config: Dict[str, Any], verbose: bool) -> None:
    level_name = "DEBUG" if verbose else str((config.get("logging") or {}).get("level") or "WARNING")
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


class _Session:
    """Configuration and collaborators shared by a single command invocation."""

    def __init__(self, config_option: Optional[str], verbose: bool = False) -> None:
        self.config_path = Path(config_option or DEFAULT_CONFIG_NAME)
        self.config = load_config(self.config_path, required=config_option is not None)
        _configure_logging(self.config, verbose)
        self.repo_root = _resolve_repo_root(self.config, self.config_path)
        if not self.repo_root.is_dir():
            typer.echo(f"Repository root does not exist: {self.repo_root}")
            raise typer.Exit(code=1)
        scan_cfg = self.config.get("scan") or {}
        self.max_file_bytes = _positive_int(scan_cfg.get("max_file_bytes"), MAX_FILE_BYTES)
        self.max_workers = _positive_int(scan_cfg.get("max_workers"), DEFAULT_MAX_WORKERS)
        self.chunk_size = _positive_int(scan_cfg.get("chunk_size"), DEFAULT_CHUNK_SIZE)

    @property
    def repo_key(self) -> str:
        return self.repo_root.as_posix()

    def open_store(self) -> SettingsStore:
        return SettingsStore.from_config(self.config, repo_root=self.repo_root)

    def matcher(self, store: SettingsStore) -> IgnoreMatcher:
        matcher = IgnoreMatcher(store.ignore_rules())
        for rule in matcher.invalid_rules:
            typer.echo(f"Warning: ignore pattern {rule.pattern!r} is invalid and never matches.")
        return matcher


_CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help=f"Path to the configuration file (defaults to ./{DEFAULT_CONFIG_NAME} when present).",
)
_VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")


def _load_diff(diff_path: Path) -> ChangeSet:
    try:
        xml_text = diff_path.read_text(encoding="utf-8")
    except OSError as error:
        typer.echo(f"Unable to read diff file {diff_path}: {error}")
        raise typer.Exit(code=1) from error
    try:
        return parse_diff_xml(xml_text)
    except DiffFormatError as error:
        typer.echo(f"Invalid diff ({error.code}): {error}")
        raise typer.Exit(code=1) from error


@app.command()
def scan(
    config: Optional[str] = _CONFIG_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """List repository files that survive the ignore rules."""
    session = _Session(config, verbose)
    with session.open_store() as store:
        matcher = session.matcher(store)
    for path in scan_repository(session.repo_root, matcher):
        typer.echo(path)


@app.command()
def prompt(
    files: List[str] = typer.Option([], "--file", "-f", help="Relative path to include (repeatable)."),
    group: Optional[str] = typer.Option(None, "--group", "-g", help="Saved group whose files are included."),
    instructions: Optional[str] = typer.Option(
        None,
        "--instructions",
        "-i",
        help="Instructions for the agent (defaults to the saved repository instructions).",
    ),
    diff: Optional[bool] = typer.Option(
        None,
        "--diff/--plain",
        help="Prepend the XML response-format instructions.",
    ),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the prompt to this file."),
    config: Optional[str] = _CONFIG_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """Build a prompt from selected files and user instructions."""
    session = _Session(config, verbose)
    with session.open_store() as store:
        settings = store.get_repo_settings(session.repo_key)
        selected = list(files)
        if group:
            saved = settings.group(group)
            if saved is None:
                typer.echo(f"Unknown group: {group}")
                raise typer.Exit(code=1)
            selected.extend(path for path in saved.files if path not in selected)
        if instructions is not None:
            store.update_repo_settings(session.repo_key, user_instructions=instructions)

    if not selected:
        typer.echo("No files selected; pass --file or --group.")
        raise typer.Exit(code=1)

    batch = read_files(
        session.repo_root,
        selected,
        max_bytes=session.max_file_bytes,
        max_workers=session.max_workers,
        chunk_size=session.chunk_size,
    )
    for issue in batch.issues:
        typer.echo(f"Warning: {issue.path}: {issue.message}", err=True)

    prompt_cfg = session.config.get("prompt") or {}
    builder = PromptBuilder(
        instructions=settings.user_instructions,
        include_diff_instructions=bool(prompt_cfg.get("include_diff_instructions", True)),
    )
    text = builder.build(
        selected,
        batch.contents,
        instructions=instructions,
        include_diff_instructions=diff,
    )
    if output is not None:
        output.write_text(text, encoding="utf-8")
        typer.echo(f"Wrote prompt for {len(selected)} file(s) to {output}")
    else:
        typer.echo(text, nl=False)


@app.command()
def parse(
    diff_path: Path = typer.Argument(..., help="XML diff produced by the agent."),
    as_json: bool = typer.Option(False, "--json", help="Print the parsed change set as JSON."),
) -> None:
    """Validate an XML diff and list the files it replaces."""
    change_set = _load_diff(diff_path)
    if as_json:
        typer.echo(json.dumps(change_set.to_dict(), indent=2))
        return
    if not change_set:
        typer.echo("Diff is empty; nothing to apply.")
        return
    for change in change_set:
        typer.echo(f"{change.file_name} ({len(change.new_content)} chars)")


@app.command()
def preview(
    diff_path: Path = typer.Argument(..., help="XML diff produced by the agent."),
    config: Optional[str] = _CONFIG_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """Show a unified diff of every proposed replacement without writing."""
    session = _Session(config, verbose)
    change_set = _load_diff(diff_path)
    if not change_set:
        typer.echo("Diff is empty; nothing to apply.")
        return
    for entry in preview_change_set(session.repo_root, change_set):
        status = "new file" if not entry.exists else ("unchanged" if entry.unchanged else "modified")
        typer.echo(f"== {entry.file_name} [{status}] {entry.old_length} -> {entry.new_length} chars")
        if entry.diff:
            typer.echo(entry.diff, nl=not entry.diff.endswith("\n"))


@app.command()
def apply(
    diff_path: Path = typer.Argument(..., help="XML diff produced by the agent."),
    only: List[str] = typer.Option([], "--only", help="Apply only these files (repeatable)."),
    skip: List[str] = typer.Option([], "--skip", help="Reject these files and apply the rest (repeatable)."),
    config: Optional[str] = _CONFIG_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """Write the proposed replacements to disk."""
    session = _Session(config, verbose)
    change_set = _load_diff(diff_path)
    missing = [name for name in (*only, *skip) if change_set.get(name) is None]
    if missing:
        typer.echo(f"Not present in diff: {', '.join(dict.fromkeys(missing))}")
        raise typer.Exit(code=1)
    if only:
        change_set = change_set.only(*only)
    if skip:
        change_set = change_set.without(*skip)
    if not change_set:
        typer.echo("Diff is empty; nothing to apply.")
        return

    try:
        result = apply_change_set(session.repo_root, change_set)
    except ApplyError as error:
        typer.echo(f"Failed to apply {error.failed_file}: {error.cause}")
        if error.partial:
            typer.echo(f"Partial batch written: {', '.join(error.written)}")
        else:
            typer.echo("No files were written.")
        raise typer.Exit(code=1) from error

    for name in result.written:
        typer.echo(f"Applied {name}")
    typer.echo(f"Applied {len(result.written)} file(s).")


@app.command()
def clean(
    group: Optional[str] = typer.Option(None, "--group", "-g", help="Saved group to prune in place."),
    files: List[str] = typer.Option([], "--file", "-f", help="Selection to filter (repeatable)."),
    config: Optional[str] = _CONFIG_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """Drop files matched by the ignore rules from a selection."""
    session = _Session(config, verbose)
    with session.open_store() as store:
        matcher = session.matcher(store)
        if group:
            saved = store.get_group(session.repo_key, group)
            if saved is None:
                typer.echo(f"Unknown group: {group}")
                raise typer.Exit(code=1)
            cleanup = clean_selection(saved.files, matcher)
            if cleanup.removed:
                store.save_group(session.repo_key, RepoGroup(name=group, files=list(cleanup.kept)))
        else:
            cleanup = clean_selection(files, matcher)
            for path in cleanup.kept:
                typer.echo(path)

    for path in cleanup.removed:
        typer.echo(f"- {path}", err=True)
    typer.echo(cleanup.summary(), err=True)


@app.command("groups")
def list_groups(
    config: Optional[str] = _CONFIG_OPTION,
) -> None:
    """List saved file groups for the repository."""
    session = _Session(config)
    with session.open_store() as store:
        groups = store.list_groups(session.repo_key)
    if not groups:
        typer.echo("No saved groups.")
        return
    for group in groups:
        typer.echo(f"{group.name} ({len(group.files)} file(s))")
        for path in group.files:
            typer.echo(f"  - {path}")


@app.command("group-save")
def group_save(
    name: str = typer.Argument(..., help="Group name."),
    files: List[str] = typer.Argument(..., help="Relative file paths in the group."),
    config: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Create or replace a saved file group."""
    session = _Session(config)
    with session.open_store() as store:
        store.save_group(session.repo_key, RepoGroup(name=name, files=list(dict.fromkeys(files))))
    typer.echo(f"Saved group {name} with {len(set(files))} file(s).")


@app.command("group-delete")
def group_delete(
    name: str = typer.Argument(..., help="Group name."),
    config: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Delete a saved file group."""
    session = _Session(config)
    with session.open_store() as store:
        removed = store.delete_group(session.repo_key, name)
    if not removed:
        typer.echo(f"Unknown group: {name}")
        raise typer.Exit(code=1)
    typer.echo(f"Deleted group {name}.")


@app.command()
def instructions(
    text: Optional[str] = typer.Argument(None, help="New instructions; omit to print the saved ones."),
    config: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Show or replace the saved user instructions for the repository."""
    session = _Session(config)
    with session.open_store() as store:
        if text is None:
            typer.echo(store.get_repo_settings(session.repo_key).user_instructions)
            return
        store.update_repo_settings(session.repo_key, user_instructions=text)
    typer.echo("Saved instructions.")


if __name__ == "__main__":
    app()
