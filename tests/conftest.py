"""Shared test fixtures for repolens."""

from pathlib import Path
from typing import Dict, Union

import pytest

from repolens.config import AnalyzerConfig
from repolens.indexer.models import FileRecord
from repolens.tools.analysis_tool import RepositoryAnalyzer


def write_tree(root: Path, files: Dict[str, Union[str, bytes]]) -> Path:
    """Write ``files`` (relative path -> content) under ``root``."""
    for rel_path, content in files.items():
        path = root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


def make_record(path: str, language: str) -> FileRecord:
    return FileRecord(path=path, language=language, size_bytes=0, line_count=0, fingerprint="0" * 64)


@pytest.fixture()
def make_repo(tmp_path: Path):
    """Factory creating a repository directory from a path -> content mapping."""

    def _make(files: Dict[str, Union[str, bytes]], name: str = "repo") -> Path:
        root = tmp_path / name
        root.mkdir(exist_ok=True)
        return write_tree(root, files)

    return _make


@pytest.fixture()
def config(tmp_path: Path) -> AnalyzerConfig:
    return AnalyzerConfig(max_workers=2, snapshot_dir=tmp_path / "snapshots")


@pytest.fixture()
def analyzer(config: AnalyzerConfig) -> RepositoryAnalyzer:
    return RepositoryAnalyzer(config)


@pytest.fixture()
def sample_repo(make_repo) -> Path:
    """Small multi-language repository with cross-file references."""
    return make_repo(
        {
            "app/__init__.py": "",
            "app/models.py": (
                "class Base:\n"
                "    def save(self):\n"
                "        return self.validate()\n"
                "\n"
                "    def validate(self):\n"
                "        return True\n"
                "\n"
                "\n"
                "class User(Base):\n"
                "    name = ''\n"
                "\n"
                "    def greet(self):\n"
                "        return self.save()\n"
            ),
            "app/main.py": (
                "from app.models import User\n"
                "from . import models\n"
                "\n"
                "MAX_USERS = 10\n"
                "\n"
                "\n"
                "def run():\n"
                "    return User().greet()\n"
            ),
            "web/src/api.ts": (
                "import { helper } from './util';\n"
                "export class ApiClient extends BaseClient implements Client {\n"
                "  get(path: string) {\n"
                "    return helper(path);\n"
                "  }\n"
                "}\n"
            ),
            "web/src/util.ts": "export function helper(p: string) {\n  return p;\n}\n",
            "README.md": "# Sample\n",
        }
    )
