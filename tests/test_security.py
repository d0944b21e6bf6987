from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

from sandboxed_fs.errors import AccessDenied, ConfigurationError, ParentMissing
from sandboxed_fs.security import (
    AllowedRoots,
    assert_allowed,
    expand_home,
    is_path_within,
    normalize_path,
    validate_path,
)


def test_traversal_outside_denied(sandbox: Path, roots: AllowedRoots) -> None:
    target = normalize_path(sandbox / ".." / "elsewhere" / "file.txt")
    with pytest.raises(AccessDenied):
        assert_allowed(target, roots)


@pytest.mark.asyncio
async def test_nested_directory_allowed(sandbox: Path, roots: AllowedRoots) -> None:
    nested = sandbox / "nested" / "child"
    nested.mkdir(parents=True)
    (nested / "file.txt").write_text("x", encoding="utf-8")

    assert await validate_path(str(nested / "file.txt"), roots) == nested / "file.txt"
    assert await validate_path(str(sandbox), roots) == sandbox


@pytest.mark.asyncio
async def test_symlink_escape_denied(sandbox: Path, outside: Path, roots: AllowedRoots) -> None:
    sneaky = sandbox / "link_out"
    sneaky.symlink_to(outside)

    with pytest.raises(AccessDenied):
        await validate_path(str(sneaky / "secret.txt"), roots)
    with pytest.raises(AccessDenied):
        await validate_path(str(sneaky), roots)


@pytest.mark.asyncio
async def test_dangling_symlink_to_outside_denied(sandbox: Path, outside: Path, roots: AllowedRoots) -> None:
    dangling = sandbox / "dangling"
    dangling.symlink_to(outside / "not-yet.txt")

    with pytest.raises(AccessDenied):
        await validate_path(str(dangling), roots)


@pytest.mark.asyncio
async def test_dangling_symlink_checks_run_off_the_event_loop(
    sandbox: Path, outside: Path, roots: AllowedRoots, monkeypatch: pytest.MonkeyPatch
) -> None:
    (sandbox / "dangling").symlink_to(outside / "not-yet.txt")
    offloaded: list = []
    real_to_thread = asyncio.to_thread

    async def recording_to_thread(func, *args, **kwargs):
        offloaded.append(func)
        return await real_to_thread(func, *args, **kwargs)

    monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)

    with pytest.raises(AccessDenied):
        await validate_path(str(sandbox / "dangling"), roots)

    assert os.path.islink in offloaded
    assert os.path.realpath in offloaded


@pytest.mark.asyncio
async def test_symlink_inside_sandbox_returns_real_path(sandbox: Path, roots: AllowedRoots) -> None:
    real = sandbox / "real.txt"
    real.write_text("data", encoding="utf-8")
    (sandbox / "alias.txt").symlink_to(real)

    assert await validate_path(str(sandbox / "alias.txt"), roots) == real


@pytest.mark.asyncio
async def test_sibling_directory_denied(tmp_path: Path) -> None:
    base = tmp_path.resolve()
    allowed_root = base / "allowed"
    sibling = base / "sibling"
    allowed_root.mkdir()
    sibling.mkdir()
    roots = AllowedRoots.from_directories([str(allowed_root)])

    with pytest.raises(AccessDenied):
        await validate_path(str(sibling / "note.txt"), roots)


@pytest.mark.asyncio
async def test_prefix_sibling_without_separator_denied(tmp_path: Path) -> None:
    base = tmp_path.resolve()
    (base / "b").mkdir()
    (base / "bc").mkdir()
    roots = AllowedRoots.from_directories([str(base / "b")])

    with pytest.raises(AccessDenied):
        await validate_path(str(base / "bc" / "file.txt"), roots)


def test_is_path_within_requires_separator_boundary() -> None:
    assert is_path_within("/data", ["/data"])
    assert is_path_within("/data/x/y", ["/data"])
    assert not is_path_within("/data-other", ["/data"])
    assert not is_path_within("/dat", ["/data"])
    assert is_path_within("/anything", ["/"])


@pytest.mark.asyncio
async def test_new_file_under_existing_parent_returns_unresolved_path(
    sandbox: Path, roots: AllowedRoots
) -> None:
    target = sandbox / "new.txt"
    assert await validate_path(str(target), roots) == target


@pytest.mark.asyncio
async def test_missing_parent_raises(sandbox: Path, roots: AllowedRoots) -> None:
    with pytest.raises(ParentMissing):
        await validate_path(str(sandbox / "missing" / "new.txt"), roots)


@pytest.mark.asyncio
async def test_parent_symlink_outside_denied(sandbox: Path, outside: Path, roots: AllowedRoots) -> None:
    (sandbox / "out").symlink_to(outside)
    with pytest.raises(AccessDenied):
        await validate_path(str(sandbox / "out" / "new.txt"), roots)


@pytest.mark.asyncio
async def test_relative_path_resolved_against_cwd(
    sandbox: Path, roots: AllowedRoots, monkeypatch: pytest.MonkeyPatch
) -> None:
    (sandbox / "rel.txt").write_text("x", encoding="utf-8")
    monkeypatch.chdir(sandbox)
    assert await validate_path("rel.txt", roots) == sandbox / "rel.txt"
    with pytest.raises(AccessDenied):
        await validate_path("../rel.txt", roots)


def test_expand_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    assert expand_home("~") == os.path.join(str(tmp_path), "")
    assert expand_home("~/docs") == os.path.join(str(tmp_path), "docs")
    assert expand_home("/abs/~/x") == "/abs/~/x"
    assert normalize_path("~/docs/../notes") == os.path.join(str(tmp_path), "notes")


def test_allowed_roots_rejects_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        AllowedRoots.from_directories([str(tmp_path / "nope")])


def test_allowed_roots_rejects_file(tmp_path: Path) -> None:
    file_path = tmp_path / "file.txt"
    file_path.write_text("x", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        AllowedRoots.from_directories([str(file_path)])


def test_allowed_roots_rejects_empty() -> None:
    with pytest.raises(ConfigurationError):
        AllowedRoots.from_directories([])


def test_allowed_roots_are_normalized_and_deduplicated(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()
    roots = AllowedRoots.from_directories([str(root), str(root / "." / ".." / "root")])
    assert roots.directories == (str(root),)
    assert roots.resolved == (str(root.resolve()),)
