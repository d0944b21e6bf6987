from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Tuple

from .errors import AccessDenied, ConfigurationError, ParentMissing

LOGGER = logging.getLogger(__name__)


def expand_home(user_path: str) -> str:
    """Expand a leading ``~`` or ``~/`` to the current user's home directory."""
    if user_path == "~" or user_path.startswith("~/"):
        return os.path.join(os.path.expanduser("~"), user_path[2:])
    return user_path


def normalize_path(user_path: str | os.PathLike[str]) -> str:
    """
    Return an absolute, syntactically normalized path string.

    Relative paths are anchored to the process working directory. `.` and
    `..` segments and redundant separators are collapsed without touching the
    disk, so symlinks are NOT resolved here.
    """
    expanded = expand_home(os.fspath(user_path))
    return os.path.normpath(os.path.abspath(expanded))


def is_path_within(path: str, roots: Iterable[str]) -> bool:
    """
    Containment check between normalized absolute path strings.

    A root admits itself and anything below it. The character following the
    shared prefix must be a separator, so ``/data`` does not admit
    ``/data-other``.
    """
    for root in roots:
        if path == root:
            return True
        prefix = root if root.endswith(os.sep) else root + os.sep
        if path.startswith(prefix):
            return True
    return False


@dataclass(frozen=True)
class AllowedRoots:
    """Immutable, ordered set of sandbox directories fixed at startup."""

    directories: Tuple[str, ...]
    resolved: Tuple[str, ...] = ()

    @classmethod
    def from_directories(cls, raw_dirs: Iterable[str]) -> "AllowedRoots":
        normalized: list[str] = []
        resolved: list[str] = []
        for raw in raw_dirs:
            expanded = expand_home(raw)
            if not os.path.exists(expanded):
                raise ConfigurationError(f"Error accessing directory {raw}: no such directory")
            if not os.path.isdir(expanded):
                raise ConfigurationError(f"{raw} is not a directory")
            absolute = normalize_path(expanded)
            if absolute in normalized:
                continue
            normalized.append(absolute)
            # Real form too, so a root that is itself a symlink passes the post-resolution checks.
            real = os.path.normpath(os.path.realpath(absolute))
            if real not in resolved:
                resolved.append(real)
        if not normalized:
            raise ConfigurationError("At least one allowed directory is required.")
        return cls(tuple(normalized), tuple(resolved))

    def __iter__(self):
        return iter(self.directories)

    def __len__(self) -> int:
        return len(self.directories)

    def contains(self, path: str) -> bool:
        return is_path_within(path, self.directories + self.resolved)

    def describe(self) -> str:
        return ", ".join(self.directories)


def assert_allowed(path: str, roots: AllowedRoots) -> None:
    """Ensure the normalized path is within at least one allowed root."""
    if not roots.contains(path):
        LOGGER.warning("Access denied for %s", path)
        raise AccessDenied(
            f"Access denied - path outside allowed directories: {path} not in {roots.describe()}"
        )


def _realpath(path: str) -> str:
    # strict=True: a missing target raises OSError instead of resolving lexically.
    return os.path.realpath(path, strict=True)


async def validate_path(requested_path: str | os.PathLike[str], roots: AllowedRoots) -> Path:
    """
    Validate a user-supplied path against the sandbox and return a safe path.

    Existing targets are returned in their real (symlink-resolved) form. For
    targets that do not exist yet the parent directory is resolved and checked
    instead, and the unresolved absolute path is returned.

    Raises:
        AccessDenied: the path, its symlink target, or its parent escapes the sandbox.
        ParentMissing: the target does not exist and neither does its parent.
    """
    absolute = normalize_path(requested_path)
    assert_allowed(absolute, roots)

    try:
        real = os.path.normpath(await asyncio.to_thread(_realpath, absolute))
    except OSError:
        if await asyncio.to_thread(os.path.islink, absolute):
            # Dangling symlink: writing through it would create its target.
            target = os.path.normpath(await asyncio.to_thread(os.path.realpath, absolute))
            if not roots.contains(target):
                LOGGER.warning("Dangling symlink %s points outside sandbox: %s", absolute, target)
                raise AccessDenied("Access denied - symlink target outside allowed directories")
        parent = os.path.dirname(absolute)
        try:
            real_parent = os.path.normpath(await asyncio.to_thread(_realpath, parent))
        except OSError as exc:
            raise ParentMissing(f"Parent directory does not exist: {parent}") from exc
        if not roots.contains(real_parent):
            LOGGER.warning("Parent of %s resolves outside sandbox: %s", absolute, real_parent)
            raise AccessDenied("Access denied - parent directory outside allowed directories")
        return Path(absolute)

    if not roots.contains(real):
        LOGGER.warning("Symlink %s resolves outside sandbox: %s", absolute, real)
        raise AccessDenied("Access denied - symlink target outside allowed directories")
    return Path(real)
