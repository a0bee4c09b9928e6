from __future__ import annotations

import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@dataclass(slots=True)
class TinyRepo:
    """Fixture payload representing the synthetic repository under test."""

    root: Path
    config_path: Path

    def read(self, relative: str) -> str:
        return (self.root / relative).read_text(encoding="utf-8")


@pytest.fixture()
def tiny_repo(tmp_path: Path) -> TinyRepo:
    """Create a small repository with source files, noise, and a config file."""

    repo_root = tmp_path / "tiny-repo"
    repo_root.mkdir()

    src_dir = repo_root / "src" / "tiny_app"
    src_dir.mkdir(parents=True)
    (src_dir / "__init__.py").write_text('"""Tiny app package."""\n', encoding="utf-8")
    (src_dir / "calculator.py").write_text(
        textwrap.dedent(
            """
            from __future__ import annotations


            def add(left: int, right: int) -> int:
                return left + right
            """
        ).lstrip(),
        encoding="utf-8",
    )
    (repo_root / "notes.txt").write_text("alpha\n", encoding="utf-8")
    (repo_root / "package-lock.json").write_text("{}\n", encoding="utf-8")

    vendored = repo_root / "node_modules" / "left-pad"
    vendored.mkdir(parents=True)
    (vendored / "index.js").write_text("module.exports = 1;\n", encoding="utf-8")

    (repo_root / "config.yaml").write_text(
        textwrap.dedent(
            """
            project:
              repo_root: .
            scan:
              max_file_bytes: 4096
              max_workers: 2
              chunk_size: 2
            paths:
              settings: .repoprompter/settings.json
            """
        ).lstrip(),
        encoding="utf-8",
    )

    return TinyRepo(root=repo_root, config_path=repo_root / "config.yaml")
