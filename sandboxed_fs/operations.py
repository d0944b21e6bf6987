"""
Coarse filesystem operations exposed as MCP tools.

Each operation validates every path argument against the allowed roots
before it touches the filesystem, then performs a single kind of effect.
`FileSystemOperations.call` is the request boundary: it checks argument
shape and turns any failure into an error `ToolResult`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from .editing import apply_file_edits
from .errors import AlreadyExists, InvalidArguments, IsADirectory, NotADirectory, NotEmpty
from .models import TOOL_ARGUMENTS, EditOperation, ToolResult
from .security import AllowedRoots, validate_path
from .walker import build_tree, copy_file_preserving, copy_tree, list_entries, search_files

LOGGER = logging.getLogger(__name__)


def _read_text(path: Path, head: Optional[int], tail: Optional[int]) -> str:
    if head is not None:
        lines: list[str] = []
        with path.open("r", encoding="utf-8") as f:
            for idx, line in enumerate(f):
                if idx >= head:
                    break
                lines.append(line)
        return "".join(lines)

    if tail is not None:
        buffer: deque[str] = deque(maxlen=tail)
        with path.open("r", encoding="utf-8") as f:
            for line in f:
                buffer.append(line)
        return "".join(buffer)

    return path.read_text(encoding="utf-8")


def _format_time(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).isoformat()


def _file_info(path: Path) -> Dict[str, Any]:
    stats = path.stat()
    # st_birthtime only exists on macOS/BSD; fall back to ctime elsewhere.
    created = getattr(stats, "st_birthtime", stats.st_ctime)
    return {
        "size": stats.st_size,
        "created": _format_time(created),
        "modified": _format_time(stats.st_mtime),
        "accessed": _format_time(stats.st_atime),
        "isDirectory": path.is_dir(),
        "isFile": path.is_file(),
        "permissions": oct(stats.st_mode)[-3:],
    }


class FileSystemOperations:
    """Sandboxed filesystem operations bound to one immutable set of allowed roots."""

    def __init__(self, roots: AllowedRoots) -> None:
        self.roots = roots

    async def _validate(self, path: str) -> Path:
        return await validate_path(path, self.roots)

    async def read_file(self, path: str, head: Optional[int] = None, tail: Optional[int] = None) -> str:
        """
        Read a UTF-8 text file with optional head/tail limits (by lines).
        If both head and tail are provided, head takes precedence.
        """
        if head is not None and head < 0:
            raise InvalidArguments("head must be non-negative.")
        if tail is not None and tail < 0:
            raise InvalidArguments("tail must be non-negative.")
        if head is not None:
            tail = None

        target = await self._validate(path)
        if await asyncio.to_thread(target.is_dir):
            raise IsADirectory(f"Cannot read directory as file: {path}")
        return await asyncio.to_thread(_read_text, target, head, tail)

    async def read_multiple_files(self, paths: Sequence[str]) -> str:
        """Read several files concurrently; a failure is reported per path without aborting."""

        async def read_one(path: str) -> str:
            try:
                content = await self.read_file(path)
            except Exception as exc:
                return f"{path}: Error - {exc}"
            return f"{path}:\n{content}\n"

        results = await asyncio.gather(*(read_one(path) for path in paths))
        return "\n---\n".join(results)

    async def write_file(self, path: str, content: str) -> str:
        target = await self._validate(path)
        await asyncio.to_thread(target.write_text, content, encoding="utf-8")
        LOGGER.info("Wrote %s", target)
        return f"Successfully wrote to {path}"

    async def edit_file(self, path: str, edits: Sequence[EditOperation], dry_run: bool = False) -> str:
        target = await self._validate(path)
        result = await apply_file_edits(target, edits, dry_run=dry_run)
        return result.diff

    async def create_directory(self, path: str) -> str:
        target = await self._validate(path)
        await asyncio.to_thread(target.mkdir, parents=True, exist_ok=True)
        return f"Successfully created directory {path}"

    async def list_directory(self, path: str) -> str:
        target = await self._validate(path)
        if not await asyncio.to_thread(target.is_dir):
            raise NotADirectory(f"Not a directory: {path}")
        entries = await list_entries(target)
        return "\n".join(f"{'[DIR]' if entry.is_dir() else '[FILE]'} {entry.name}" for entry in entries)

    async def directory_tree(self, path: str) -> str:
        target = await self._validate(path)
        if not await asyncio.to_thread(target.is_dir):
            raise NotADirectory(f"Not a directory: {path}")
        tree = await build_tree(target, self.roots)
        return json.dumps(tree, indent=2)

    async def move_file(self, source: str, destination: str) -> str:
        """Move/rename a file or directory; destination must not exist."""
        src_path = await self._validate(source)
        dst_path = await self._validate(destination)

        if not await asyncio.to_thread(os.path.lexists, src_path):
            raise FileNotFoundError(f"Source not found: {source}")
        if await asyncio.to_thread(os.path.lexists, dst_path):
            raise AlreadyExists(f"Destination already exists: {destination}")

        await asyncio.to_thread(os.rename, src_path, dst_path)
        LOGGER.info("Moved %s -> %s", src_path, dst_path)
        return f"Successfully moved {source} to {destination}"

    async def search_files(self, path: str, pattern: str, exclude_patterns: Sequence[str] = ()) -> str:
        base = await self._validate(path)
        if not await asyncio.to_thread(base.is_dir):
            raise NotADirectory(f"Search root must be a directory: {path}")
        matches = await search_files(base, pattern, exclude_patterns, self.roots)
        return "\n".join(matches) if matches else "No matches found"

    async def get_file_info(self, path: str) -> str:
        target = await self._validate(path)
        info = await asyncio.to_thread(_file_info, target)
        lines = []
        for key, value in info.items():
            if isinstance(value, bool):
                value = str(value).lower()
            lines.append(f"{key}: {value}")
        return "\n".join(lines)

    async def copy_file(self, source: str, destination: str) -> str:
        src_path = await self._validate(source)
        dst_path = await self._validate(destination)

        if not await asyncio.to_thread(src_path.exists):
            raise FileNotFoundError(f"Source file does not exist or is not accessible: {source}")
        if await asyncio.to_thread(os.path.lexists, dst_path):
            raise AlreadyExists(f"Destination already exists: {destination}")
        if await asyncio.to_thread(src_path.is_dir):
            raise IsADirectory(f"Source is a directory. Use copy_directory instead: {source}")

        warnings: List[str] = []
        await asyncio.to_thread(copy_file_preserving, os.fspath(src_path), os.fspath(dst_path), warnings)
        return self._with_warnings(f"Successfully copied {source} to {destination}", warnings)

    async def copy_directory(self, source: str, destination: str, recursive: bool = True) -> str:
        src_path = await self._validate(source)
        dst_path = await self._validate(destination)

        if not await asyncio.to_thread(src_path.exists):
            raise FileNotFoundError(f"Source directory does not exist or is not accessible: {source}")
        if not await asyncio.to_thread(src_path.is_dir):
            raise NotADirectory(f"Source is not a directory: {source}")
        if await asyncio.to_thread(os.path.lexists, dst_path):
            raise AlreadyExists(f"Destination already exists: {destination}")
        real_parent = await asyncio.to_thread(os.path.realpath, dst_path.parent)
        real_dst = Path(real_parent) / dst_path.name
        if real_dst == src_path or src_path in real_dst.parents:
            raise InvalidArguments(f"Cannot copy a directory into itself: {destination}")

        warnings = await copy_tree(src_path, dst_path, self.roots, recursive=recursive)
        LOGGER.info("Copied directory %s -> %s (recursive=%s)", src_path, dst_path, recursive)
        return self._with_warnings(f"Successfully copied directory {source} to {destination}", warnings)

    async def delete_file(self, path: str, force: bool = False) -> str:
        target = await self._validate(path)

        if not await asyncio.to_thread(os.path.lexists, target):
            raise FileNotFoundError(f"File or directory does not exist or is not accessible: {path}")

        is_dir = await asyncio.to_thread(target.is_dir)
        if is_dir:
            if force:
                await asyncio.to_thread(shutil.rmtree, target)
            else:
                if await list_entries(target):
                    raise NotEmpty(f"Directory is not empty. Use 'force: true' to delete: {path}")
                await asyncio.to_thread(target.rmdir)
        else:
            await asyncio.to_thread(target.unlink)

        LOGGER.info("Deleted %s", target)
        return f"Successfully deleted {'directory' if is_dir else 'file'}: {path}"

    async def list_allowed_directories(self) -> str:
        return "Allowed directories:\n" + "\n".join(self.roots)

    @staticmethod
    def _with_warnings(message: str, warnings: Sequence[str]) -> str:
        if not warnings:
            return message
        return message + "\nWarnings:\n" + "\n".join(warnings)

    async def call(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> ToolResult:
        """Run a tool by name, converting every failure into an error result."""
        try:
            args_model = TOOL_ARGUMENTS.get(name)
            if args_model is None:
                raise InvalidArguments(f"Unknown tool: {name}")
            try:
                parsed = args_model.model_validate(dict(arguments or {}))
            except ValidationError as exc:
                raise InvalidArguments(f"Invalid arguments for {name}: {exc}") from exc

            handler = getattr(self, name)
            text = await handler(**{field: getattr(parsed, field) for field in type(parsed).model_fields})
        except Exception as exc:
            LOGGER.warning("Tool %s failed: %s", name, exc)
            return ToolResult(text=f"Error: {exc}", is_error=True)
        return ToolResult(text=text)
