from __future__ import annotations

from pathlib import Path

import pytest

from sandboxed_fs.operations import FileSystemOperations
from sandboxed_fs.security import AllowedRoots


@pytest.fixture
def sandbox(tmp_path: Path) -> Path:
    root = tmp_path / "sandbox"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def outside(tmp_path: Path) -> Path:
    path = tmp_path / "outside"
    path.mkdir()
    (path / "secret.txt").write_text("secret", encoding="utf-8")
    return path.resolve()


@pytest.fixture
def roots(sandbox: Path) -> AllowedRoots:
    return AllowedRoots.from_directories([str(sandbox)])


@pytest.fixture
def ops(roots: AllowedRoots) -> FileSystemOperations:
    return FileSystemOperations(roots)
