"""
Depth-first traversal helpers shared by search, tree building and copying.

Every descendant is re-validated against the sandbox, and directories are
tracked by their real path so a symlink loop is entered at most once.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional, Sequence, Set

import pathspec

from .models import TreeNode
from .security import AllowedRoots, validate_path

LOGGER = logging.getLogger(__name__)


def _scan(path: str) -> List[os.DirEntry]:
    with os.scandir(path) as it:
        return sorted(it, key=lambda entry: entry.name.lower())


async def list_entries(path: str | os.PathLike[str]) -> List[os.DirEntry]:
    """Directory entries sorted case-insensitively by name."""
    return await asyncio.to_thread(_scan, os.fspath(path))


def _exclude_line(pattern: str) -> str:
    # Wildcard globs are relative to the search root; bare names match any segment.
    if "*" in pattern and not pattern.startswith(("/", "**")):
        return "/" + pattern
    if pattern.startswith(("!", "#")):
        return "\\" + pattern
    return pattern


def build_exclude_spec(patterns: Sequence[str]) -> Optional[pathspec.PathSpec]:
    """
    Compile exclude globs relative to the search root.

    A bare name such as ``build`` matches that segment at any depth. A glob
    with ``*`` is anchored at the root, so ``*.log`` excludes ``a.log`` but
    not ``sub/a.log``; use ``**/*.log`` for every depth. Hidden entries are
    matched like any other, and ``!`` has no negating meaning.
    """
    cleaned = [_exclude_line(p.strip()) for p in patterns if p and p.strip()]
    if not cleaned:
        return None
    return pathspec.GitIgnoreSpec.from_lines(cleaned)


def _is_excluded(exclude: Optional[pathspec.PathSpec], relative: str, is_dir: bool) -> bool:
    if exclude is None:
        return False
    candidate = relative.replace(os.sep, "/")
    if is_dir:
        candidate += "/"
    return exclude.match_file(candidate)


async def search_files(
    root: Path,
    pattern: str,
    exclude_patterns: Sequence[str],
    roots: AllowedRoots,
) -> List[str]:
    """
    Find entries under `root` whose name contains `pattern` (case-insensitive).

    Entries that fail validation or cannot be listed are skipped silently. An
    excluded entry is neither reported nor descended into.
    """
    results: List[str] = []
    needle = pattern.lower()
    exclude = build_exclude_spec(exclude_patterns)
    root_str = os.fspath(root)
    visited: Set[str] = {os.path.realpath(root_str)}

    async def walk(current: str) -> None:
        try:
            entries = await list_entries(current)
        except OSError as exc:
            LOGGER.debug("Skipping unreadable directory %s: %s", current, exc)
            return

        for entry in entries:
            full_path = os.path.join(current, entry.name)
            try:
                real = await validate_path(full_path, roots)
            except OSError:
                continue

            is_dir = entry.is_dir()
            relative = os.path.relpath(full_path, root_str)
            if _is_excluded(exclude, relative, is_dir):
                continue

            if needle in entry.name.lower():
                results.append(full_path)

            if is_dir:
                real_str = os.fspath(real)
                if real_str in visited:
                    LOGGER.debug("Not re-entering %s (already visited as %s)", full_path, real_str)
                    continue
                visited.add(real_str)
                await walk(full_path)

    await walk(root_str)
    return results


async def build_tree(path: str | os.PathLike[str], roots: AllowedRoots) -> List[TreeNode]:
    """Return the nested TreeNode listing of a directory."""
    visited: Set[str] = set()

    async def build(current: str) -> List[TreeNode]:
        valid = os.fspath(await validate_path(current, roots))
        visited.add(valid)
        nodes: List[TreeNode] = []
        for entry in await list_entries(valid):
            if entry.is_dir():
                sub_path = os.path.join(current, entry.name)
                if os.path.realpath(sub_path) in visited:
                    children: List[TreeNode] = []
                else:
                    children = await build(sub_path)
                nodes.append({"name": entry.name, "type": "directory", "children": children})
            else:
                nodes.append({"name": entry.name, "type": "file"})
        return nodes

    return await build(os.fspath(path))


def _restore_metadata(src: str, dst: str, warnings: List[str]) -> None:
    stats = os.stat(src)
    os.utime(dst, ns=(stats.st_atime_ns, stats.st_mtime_ns))
    try:
        os.chmod(dst, stats.st_mode)
    except OSError as exc:
        message = f"Could not set permissions for {dst}: {exc}"
        LOGGER.warning(message)
        warnings.append(message)


def copy_file_preserving(src: str, dst: str, warnings: List[str]) -> None:
    """Copy file contents, then re-apply timestamps and (best effort) the mode bits."""
    shutil.copyfile(src, dst)
    _restore_metadata(src, dst, warnings)


async def copy_tree(
    src: Path,
    dst: Path,
    roots: AllowedRoots,
    recursive: bool = True,
) -> List[str]:
    """
    Copy a directory tree, preserving times and permissions.

    Subdirectories are copied only when `recursive` is true. Each source
    descendant is validated so a symlink cannot pull outside content into the
    sandbox. Permission failures are collected and returned as warnings.
    """
    warnings: List[str] = []
    visited: Set[str] = set()

    async def copy_dir(source: str, destination: str) -> None:
        visited.add(os.path.realpath(source))
        await asyncio.to_thread(os.makedirs, destination, exist_ok=True)
        for entry in await list_entries(source):
            src_path = os.fspath(await validate_path(os.path.join(source, entry.name), roots))
            dst_path = os.path.join(destination, entry.name)
            if entry.is_dir():
                if recursive and src_path not in visited:
                    await copy_dir(src_path, dst_path)
            else:
                await asyncio.to_thread(copy_file_preserving, src_path, dst_path, warnings)
        # Root metadata last, after children stop touching its mtime.
        await asyncio.to_thread(_restore_metadata, source, destination, warnings)

    await copy_dir(os.fspath(src), os.fspath(dst))
    return warnings
