"""Tool integrations for scanning, filtering, parsing, and patching repositories."""

from .diff_xml import (
    DiffFormatError,
    DuplicateFileError,
    InvalidXmlError,
    MissingNameError,
    MissingReplaceError,
    NoFileElementsError,
    UnexpectedElementError,
    UnsafePathError,
    parse_diff_xml,
    serialise_change_set,
)
from .filesystem import BatchReadResult, ReadIssue, read_file, read_files, scan_repository
from .ignore import (
    DEFAULT_IGNORE_RULES,
    IgnoreMatcher,
    IgnoreOverrides,
    IgnoreRule,
    SelectionCleanup,
    clean_selection,
    is_ignored,
    merge_ignore_rules,
)
from .patch import (
    ApplyError,
    ChangePreview,
    PatchError,
    PatchResult,
    apply_change_set,
    apply_diff_xml,
    preview_change_set,
)
from .paths import PathTraversalError, check_relative_path, resolve_safe

__all__ = [
    "ApplyError",
    "BatchReadResult",
    "ChangePreview",
    "DEFAULT_IGNORE_RULES",
    "DiffFormatError",
    "DuplicateFileError",
    "IgnoreMatcher",
    "IgnoreOverrides",
    "IgnoreRule",
    "InvalidXmlError",
    "MissingNameError",
    "MissingReplaceError",
    "NoFileElementsError",
    "PatchError",
    "PatchResult",
    "PathTraversalError",
    "ReadIssue",
    "SelectionCleanup",
    "UnexpectedElementError",
    "UnsafePathError",
    "apply_change_set",
    "apply_diff_xml",
    "check_relative_path",
    "clean_selection",
    "is_ignored",
    "merge_ignore_rules",
    "parse_diff_xml",
    "preview_change_set",
    "read_file",
    "read_files",
    "resolve_safe",
    "scan_repository",
    "serialise_change_set",
]
