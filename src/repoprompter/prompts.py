"""Prompt templates and builders for file-map prompts sent to an agent."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

FENCE = "```"

XML_FORMATTING_INSTRUCTIONS = """<xml_formatting_instructions>
Respond only with XML describing whole-file replacements. Use exactly this structure:

<root>
  <file name="relative/path/to/file.ext">
    <replace>ENTIRE NEW FILE CONTENTS</replace>
  </file>
</root>

Rules:
- Emit one <file> element per changed file; never list the same name twice.
- The name attribute is the path relative to the repository root, using "/" separators. Absolute paths and ".." segments are rejected.
- Every <file> element holds exactly one <replace> element and nothing else.
- <replace> carries the complete new contents of the file, not a partial patch. Leave it empty to truncate a file.
- Escape "&", "<" and ">" inside <replace> as &amp;, &lt; and &gt;.
- Only existing directories can receive files; files are never deleted.
- Do not add any text before or after the <root> element.
</xml_formatting_instructions>"""


def render_format_instructions() -> str:
    """Return the response-schema block prepended in diff-instructed mode."""
    return XML_FORMATTING_INSTRUCTIONS


def render_file_map(selected_paths: Sequence[str], contents_by_path: Mapping[str, str]) -> str:
    parts = ["<file_map>\n"]
    for path in selected_paths:
        content = contents_by_path.get(path, "")
        parts.append(f"File: {path}\n{FENCE}\n{content}\n{FENCE}\n\n")
    parts.append("</file_map>\n")
    return "".join(parts)


def render_user_instructions(instructions: str) -> str:
    return f"<user_instructions>\n{instructions}\n</user_instructions>\n"


def build_prompt(
    selected_paths: Sequence[str],
    contents_by_path: Mapping[str, str],
    instructions: str,
    include_diff_instructions: bool = False,
) -> str:
    """Assemble the prompt text for ``selected_paths`` in the order given.

    Content is embedded verbatim; nothing is escaped, so callers must avoid
    content that breaks the fence. Paths missing from ``contents_by_path``
    render with an empty body.
    """
    body = f"{render_file_map(selected_paths, contents_by_path)}\n{render_user_instructions(instructions)}"
    if include_diff_instructions:
        return f"{render_format_instructions()}\n\n{body}"
    return body


@dataclass(slots=True)
class PromptBuilder:
    """Prompt defaults shared by the command-line entry points."""

    instructions: str = ""
    include_diff_instructions: bool = True

    def build(
        self,
        selected_paths: Sequence[str],
        contents_by_path: Mapping[str, str],
        *,
        instructions: str | None = None,
        include_diff_instructions: bool | None = None,
    ) -> str:
        return build_prompt(
            selected_paths,
            contents_by_path,
            self.instructions if instructions is None else instructions,
            self.include_diff_instructions if include_diff_instructions is None else include_diff_instructions,
        )


__all__ = [
    "FENCE",
    "PromptBuilder",
    "XML_FORMATTING_INSTRUCTIONS",
    "build_prompt",
    "render_file_map",
    "render_format_instructions",
    "render_user_instructions",
]
