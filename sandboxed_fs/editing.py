"""
Whitespace-tolerant text patching.

Edits are applied in order to one evolving buffer: each edit sees the output
of the previous one. An edit first tries an exact substring match and then
falls back to a line-block match that ignores leading/trailing whitespace,
re-indenting the replacement to fit the surrounding code.
"""

from __future__ import annotations

import asyncio
import difflib
import logging
import re
from dataclasses import dataclass
from functools import reduce
from itertools import islice
from pathlib import Path
from typing import List, Sequence

from .errors import EditNotFound
from .models import EditOperation

LOGGER = logging.getLogger(__name__)

_LEADING_WS = re.compile(r"^\s*")


@dataclass(slots=True)
class EditResult:
    """Outcome of applying a batch of edits to a file."""

    diff: str
    content: str
    written: bool


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _leading_whitespace(line: str) -> str:
    return _LEADING_WS.match(line).group(0)


def _reindent(new_lines: List[str], old_lines: List[str], indent: str) -> List[str]:
    result: List[str] = []
    for idx, line in enumerate(new_lines):
        if idx == 0:
            result.append(indent + line.lstrip())
            continue
        old_ws = _leading_whitespace(old_lines[idx]) if idx < len(old_lines) else ""
        new_ws = _leading_whitespace(line)
        if old_ws and new_ws:
            relative = max(0, len(new_ws) - len(old_ws))
            result.append(indent + " " * relative + line.lstrip())
        else:
            result.append(line)
    return result


def apply_edit(content: str, edit: EditOperation) -> str:
    """
    Apply a single edit to already-normalized content and return the new text.

    Raises:
        EditNotFound: neither the exact nor the whitespace-tolerant match succeeded.
    """
    old_text = normalize_line_endings(edit.old_text)
    new_text = normalize_line_endings(edit.new_text)

    if old_text in content:
        return content.replace(old_text, new_text, 1)

    old_lines = old_text.split("\n")
    content_lines = content.split("\n")
    window = len(old_lines)

    for start in range(len(content_lines) - window + 1):
        candidate = content_lines[start : start + window]
        if all(old.strip() == cur.strip() for old, cur in zip(old_lines, candidate)):
            indent = _leading_whitespace(content_lines[start])
            replacement = _reindent(new_text.split("\n"), old_lines, indent)
            LOGGER.debug("Whitespace-tolerant match at line %s", start + 1)
            return "\n".join(content_lines[:start] + replacement + content_lines[start + window :])

    raise EditNotFound(edit.old_text)


def apply_edits(content: str, edits: Sequence[EditOperation]) -> str:
    """Fold `apply_edit` over the normalized content; the first failure aborts."""
    return reduce(apply_edit, edits, normalize_line_endings(content))


def create_unified_diff(original: str, modified: str, filepath: str = "file") -> str:
    original = normalize_line_endings(original)
    modified = normalize_line_endings(modified)

    lines = [
        f"Index: {filepath}\n",
        "=" * 67 + "\n",
        f"--- {filepath}\toriginal\n",
        f"+++ {filepath}\tmodified\n",
    ]
    hunks = difflib.unified_diff(
        original.splitlines(keepends=True),
        modified.splitlines(keepends=True),
        n=4,
    )
    # difflib's own ---/+++ header is replaced by the labelled one above.
    for line in islice(hunks, 2, None):
        if line.endswith("\n"):
            lines.append(line)
        else:
            lines.append(line + "\n")
            lines.append("\\ No newline at end of file\n")
    return "".join(lines)


def fence_diff(diff: str) -> str:
    """Wrap a diff in a backtick fence longer than any backtick run inside it."""
    fence_len = 3
    while "`" * fence_len in diff:
        fence_len += 1
    fence = "`" * fence_len
    return f"{fence}diff\n{diff}{fence}\n\n"


async def apply_file_edits(
    path: Path,
    edits: Sequence[EditOperation],
    dry_run: bool = False,
) -> EditResult:
    """
    Apply edits to a file and return the fenced unified diff.

    The file is written only when every edit matched and `dry_run` is false.
    """
    raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
    original = normalize_line_endings(raw)
    modified = apply_edits(original, edits)

    diff = fence_diff(create_unified_diff(original, modified, str(path)))

    written = False
    if not dry_run:
        await asyncio.to_thread(path.write_text, modified, encoding="utf-8")
        written = True
        LOGGER.info("Applied %s edit(s) to %s", len(edits), path)
    return EditResult(diff=diff, content=modified, written=written)
