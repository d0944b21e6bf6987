from __future__ import annotations

import argparse
import functools
import logging
import sys
from typing import Any, Dict, List, Optional, Sequence

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.types import TextContent

from .config import TRANSPORTS, load_settings
from .errors import ConfigurationError
from .models import EditOperation
from .operations import FileSystemOperations
from .security import AllowedRoots

LOGGER = logging.getLogger(__name__)

TOOLS_HELP = """\
available tools:
  read_file                 read the contents of a file
  read_multiple_files       read several files at once
  write_file                create or overwrite a file
  edit_file                 apply search/replace edits and show a diff
  create_directory          create a directory (and parents)
  list_directory            list the entries of a directory
  directory_tree            show the directory structure as JSON
  move_file                 move or rename files and directories
  search_files              find files by name
  get_file_info             show size, times and permissions
  copy_file                 copy a file
  copy_directory            copy a directory and its contents
  delete_file               delete a file or directory
  list_allowed_directories  show the directories this server may access

example:
  {"name": "read_file", "arguments": {"path": "/srv/data/notes.txt"}}
"""


class SandboxedFastMCP(FastMCP):
    """
    FastMCP server whose tool calls go through `FileSystemOperations.call`.

    The registered tool functions publish the schemas. Calls arriving over the
    transport are dispatched here directly, so a failure reaches the client
    as the bare ``Error: <message>`` text with ``isError`` set, without the
    ``Error executing tool ...`` wrapper that FastMCP adds to raised errors.
    """

    def __init__(self, operations: FileSystemOperations, name: str = "sandboxed-filesystem") -> None:
        self.operations = operations
        super().__init__(name)

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Sequence[TextContent]:
        result = await self.operations.call(name, arguments)
        if result.is_error:
            # The low-level server turns this into isError with str(exc) as the text.
            raise ToolError(result.text)
        return [TextContent(type="text", text=result.text)]


def build_server(operations: FileSystemOperations) -> SandboxedFastMCP:
    """Create the MCP server with every filesystem tool bound to `operations`."""
    server = SandboxedFastMCP(operations)
    tool = functools.partial(server.tool, structured_output=False)

    async def invoke(name: str, arguments: Dict[str, Any]) -> str:
        result = await operations.call(name, arguments)
        if result.is_error:
            raise ToolError(result.text)
        return result.text

    @tool()
    async def read_file(path: str, head: Optional[int] = None, tail: Optional[int] = None) -> str:
        """
        Read the complete contents of a file as UTF-8 text.
        Optional head/tail limit the result to the first/last N lines.
        Only works within allowed directories.
        """
        return await invoke("read_file", {"path": path, "head": head, "tail": tail})

    @tool()
    async def read_multiple_files(paths: List[str]) -> str:
        """Read several files at once; a failed read is reported for that path only."""
        return await invoke("read_multiple_files", {"paths": paths})

    @tool()
    async def write_file(path: str, content: str) -> str:
        """Create a new file or completely overwrite an existing one."""
        return await invoke("write_file", {"path": path, "content": content})

    @tool()
    async def edit_file(path: str, edits: List[EditOperation], dryRun: bool = False) -> str:
        """
        Apply ordered search/replace edits to a text file and return a git-style diff.
        Matching tolerates differences in indentation. Use dryRun to preview.
        """
        payload = [edit.model_dump(by_alias=True) for edit in edits]
        return await invoke("edit_file", {"path": path, "edits": payload, "dryRun": dryRun})

    @tool()
    async def create_directory(path: str) -> str:
        """Create a directory, including missing parents; succeeds if it already exists."""
        return await invoke("create_directory", {"path": path})

    @tool()
    async def list_directory(path: str) -> str:
        """List directory entries with [DIR]/[FILE] prefixes."""
        return await invoke("list_directory", {"path": path})

    @tool()
    async def directory_tree(path: str) -> str:
        """Recursive JSON tree of files and directories."""
        return await invoke("directory_tree", {"path": path})

    @tool()
    async def move_file(source: str, destination: str) -> str:
        """Move or rename a file or directory. Fails if the destination exists."""
        return await invoke("move_file", {"source": source, "destination": destination})

    @tool()
    async def search_files(path: str, pattern: str, excludePatterns: Optional[List[str]] = None) -> str:
        """
        Recursively search for files and directories whose name contains `pattern`
        (case-insensitive). excludePatterns are glob patterns relative to `path`.
        """
        return await invoke(
            "search_files",
            {"path": path, "pattern": pattern, "excludePatterns": excludePatterns or []},
        )

    @tool()
    async def get_file_info(path: str) -> str:
        """Return size, timestamps, type and permissions of a file or directory."""
        return await invoke("get_file_info", {"path": path})

    @tool()
    async def copy_file(source: str, destination: str) -> str:
        """Copy a file, preserving timestamps and permissions. Fails if the destination exists."""
        return await invoke("copy_file", {"source": source, "destination": destination})

    @tool()
    async def copy_directory(source: str, destination: str, recursive: bool = True) -> str:
        """Copy a directory and its contents. Fails if the destination exists."""
        return await invoke(
            "copy_directory",
            {"source": source, "destination": destination, "recursive": recursive},
        )

    @tool()
    async def delete_file(path: str, force: bool = False) -> str:
        """
        Delete a file or directory. Non-empty directories require force=true.
        This cannot be undone.
        """
        return await invoke("delete_file", {"path": path, "force": force})

    @tool()
    async def list_allowed_directories() -> str:
        """Return the directories this server is allowed to access."""
        return await invoke("list_allowed_directories", {})

    return server


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sandboxed-fs",
        description="Sandboxed filesystem MCP server.",
        epilog=TOOLS_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("directories", nargs="*", help="Directory to allow (repeatable).")
    parser.add_argument(
        "--allow",
        action="append",
        dest="allowed",
        default=[],
        help="Directory to allow (repeatable, same as a positional argument).",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO).")
    parser.add_argument("--transport", choices=TRANSPORTS, default=None, help="MCP transport (default: stdio).")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    try:
        settings = load_settings(
            list(args.directories) + list(args.allowed),
            log_level=args.log_level,
            transport=args.transport,
        )
        logging.basicConfig(
            level=settings.log_level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            stream=sys.stderr,
        )
        roots = AllowedRoots.from_directories(settings.allowed_directories)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    LOGGER.info("Allowed directories: %s", roots.describe())
    server = build_server(FileSystemOperations(roots))
    LOGGER.info("Sandboxed filesystem server running on %s", settings.transport)
    server.run(settings.transport)


if __name__ == "__main__":
    main()
