"""Parse and serialise whole-file replacement diffs exchanged with an agent.

Accepted documents are either a single wrapper element holding ``file``
children::

    <root>
      <file name="relative/path.ext">
        <replace>ENTIRE NEW FILE CONTENTS</replace>
      </file>
    </root>

or the same ``file`` elements concatenated at the top level without a
wrapper. Validation is fail-fast over the whole document: the first problem
aborts the parse and no partial change set is returned.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from typing import Any, Mapping
from xml.sax.saxutils import escape, quoteattr

from ..structured import ChangeSet, FileChange
from .paths import PathTraversalError, check_relative_path

LOGGER = logging.getLogger(__name__)

FILE_TAG = "file"
REPLACE_TAG = "replace"
NAME_ATTRIBUTE = "name"
_DOCUMENT_TAG = "repoprompter-diff-document"
_DOCUMENT_OPEN = f"<{_DOCUMENT_TAG}>"
_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>")
_CONTENT_ENTITIES = {"\r": "&#13;"}


class DiffFormatError(ValueError):
    """Raised when a diff document violates the replacement schema."""

    code = "diff_format"

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class InvalidXmlError(DiffFormatError):
    code = "invalid_xml"


class NoFileElementsError(DiffFormatError):
    code = "no_file_elements"


class UnexpectedElementError(DiffFormatError):
    code = "unexpected_element"


class MissingNameError(DiffFormatError):
    code = "missing_name"

    def __init__(self, index: int) -> None:
        super().__init__(
            f"File element #{index} is missing the 'name' attribute.",
            details={"index": index},
        )
        self.index = index


class DuplicateFileError(DiffFormatError):
    code = "duplicate_file"

    def __init__(self, name: str, *, index: int) -> None:
        super().__init__(
            f"File {name!r} appears more than once (again at element #{index}).",
            details={"name": name, "index": index},
        )
        self.name = name


class MissingReplaceError(DiffFormatError):
    code = "missing_replace"

    def __init__(self, name: str, *, index: int) -> None:
        super().__init__(
            f"File {name!r} has no <replace> element.",
            details={"name": name, "index": index},
        )
        self.name = name


class UnsafePathError(DiffFormatError, PathTraversalError):
    """Diff entry whose ``name`` would escape the base directory."""

    code = "path_traversal"

    def __init__(self, name: str, reason: str, *, index: int) -> None:
        PathTraversalError.__init__(self, name, reason, details={"index": index})
        self.name = name


def _strip_prolog(xml_text: str) -> str:
    text = xml_text.lstrip("\ufeff")
    return _XML_DECLARATION.sub("", text, count=1)


def _load_document(xml_text: str) -> ET.Element:
    """Parse ``xml_text`` inside a synthetic element so both shapes share one tree."""
    wrapped = f"{_DOCUMENT_OPEN}{_strip_prolog(xml_text)}</{_DOCUMENT_TAG}>"
    try:
        return ET.fromstring(wrapped)
    except ET.ParseError as error:
        line, column = getattr(error, "position", (0, 0))
        if line == 1:
            column = max(column - len(_DOCUMENT_OPEN), 0)
        detail = str(error).split(":", 1)[0]
        raise InvalidXmlError(
            f"Diff is not well-formed XML: {detail} (line {line}, column {column}).",
            details={"line": line, "column": column, "parser": str(error)},
        ) from error


def _has_text(value: str | None) -> bool:
    return bool(value and value.strip())


def _locate_file_elements(document: ET.Element) -> list[ET.Element]:
    top_level = list(document)
    if _has_text(document.text) or any(_has_text(child.tail) for child in top_level):
        raise InvalidXmlError("Diff contains text outside of any element.")
    if not top_level:
        raise NoFileElementsError("Diff contains no <file> elements.")

    tags = {child.tag for child in top_level}
    if tags == {FILE_TAG}:
        return top_level
    if FILE_TAG in tags:
        stray = sorted(tag for tag in tags if tag != FILE_TAG)
        raise UnexpectedElementError(
            f"Top-level <file> elements are mixed with other elements: {', '.join(stray)}.",
            details={"elements": stray},
        )
    if len(top_level) > 1:
        raise UnexpectedElementError(
            "Diff must have a single wrapper element or only top-level <file> elements.",
            details={"elements": [child.tag for child in top_level]},
        )

    wrapper = top_level[0]
    children = list(wrapper)
    if _has_text(wrapper.text) or any(_has_text(child.tail) for child in children):
        raise InvalidXmlError(
            f"Wrapper <{wrapper.tag}> contains text outside of any <file> element.",
            details={"wrapper": wrapper.tag},
        )
    if not any(child.tag == FILE_TAG for child in children):
        raise NoFileElementsError(
            f"Wrapper <{wrapper.tag}> contains no <file> elements.",
            details={"wrapper": wrapper.tag},
        )
    stray = sorted({child.tag for child in children if child.tag != FILE_TAG})
    if stray:
        raise UnexpectedElementError(
            f"Wrapper <{wrapper.tag}> contains unexpected elements: {', '.join(stray)}.",
            details={"wrapper": wrapper.tag, "elements": stray},
        )
    return children


def _read_replace(element: ET.Element, name: str, index: int) -> str:
    replacements = [child for child in element if child.tag == REPLACE_TAG]
    others = sorted({child.tag for child in element if child.tag != REPLACE_TAG})
    if others:
        raise UnexpectedElementError(
            f"File {name!r} contains unexpected elements: {', '.join(others)}.",
            details={"name": name, "index": index, "elements": others},
        )
    if not replacements:
        raise MissingReplaceError(name, index=index)
    if len(replacements) > 1:
        raise UnexpectedElementError(
            f"File {name!r} has {len(replacements)} <replace> elements; expected one.",
            details={"name": name, "index": index},
        )
    return "".join(replacements[0].itertext())


def parse_diff_xml(xml_text: str | None) -> ChangeSet:
    """Parse ``xml_text`` into a validated `ChangeSet`.

    Blank input yields an empty change set. Any schema violation raises a
    `DiffFormatError` subclass naming the offending element.
    """
    if not xml_text or not xml_text.strip():
        LOGGER.debug("parse_diff_xml called with empty input")
        return ChangeSet()

    document = _load_document(xml_text)
    elements = _locate_file_elements(document)

    changes: list[FileChange] = []
    seen: set[str] = set()
    for index, element in enumerate(elements):
        name = element.get(NAME_ATTRIBUTE)
        if name is None or not name.strip():
            raise MissingNameError(index)
        if name in seen:
            raise DuplicateFileError(name, index=index)
        seen.add(name)
        content = _read_replace(element, name, index)
        try:
            check_relative_path(name)
        except PathTraversalError as error:
            raise UnsafePathError(name, error.reason, index=index) from error
        changes.append(FileChange(file_name=name, new_content=content))

    LOGGER.debug("Parsed diff with %d file change(s)", len(changes))
    return ChangeSet(tuple(changes))


def serialise_change_set(change_set: ChangeSet) -> str:
    """Render ``change_set`` as a canonical ``<root>`` diff document."""
    lines = ["<root>"]
    for change in change_set:
        lines.append(f"  <{FILE_TAG} {NAME_ATTRIBUTE}={quoteattr(change.file_name, _CONTENT_ENTITIES)}>")
        lines.append(f"    <{REPLACE_TAG}>{escape(change.new_content, _CONTENT_ENTITIES)}</{REPLACE_TAG}>")
        lines.append(f"  </{FILE_TAG}>")
    lines.append("</root>")
    return "\n".join(lines) + "\n"


__all__ = [
    "DiffFormatError",
    "DuplicateFileError",
    "InvalidXmlError",
    "MissingNameError",
    "MissingReplaceError",
    "NoFileElementsError",
    "UnexpectedElementError",
    "UnsafePathError",
    "parse_diff_xml",
    "serialise_change_set",
]
