from __future__ import annotations

from typing import Dict, List, Literal, NotRequired, Optional, Type, TypedDict

from pydantic import BaseModel, ConfigDict, Field


class _Args(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class EditOperation(_Args):
    old_text: str = Field(..., alias="oldText", description="Text to search for - must match exactly")
    new_text: str = Field(..., alias="newText", description="Text to replace with")


class PathArgs(_Args):
    path: str


class ReadFileArgs(PathArgs):
    head: Optional[int] = Field(None, ge=0)
    tail: Optional[int] = Field(None, ge=0)


class ReadMultipleFilesArgs(_Args):
    paths: List[str]


class WriteFileArgs(PathArgs):
    content: str


class EditFileArgs(PathArgs):
    edits: List[EditOperation]
    dry_run: bool = Field(False, alias="dryRun", description="Preview changes using git-style diff format")


class SourceDestinationArgs(_Args):
    source: str
    destination: str


class SearchFilesArgs(PathArgs):
    pattern: str
    exclude_patterns: List[str] = Field(default_factory=list, alias="excludePatterns")


class CopyDirectoryArgs(SourceDestinationArgs):
    recursive: bool = Field(True, description="Copy the whole directory recursively when true")


class DeleteFileArgs(PathArgs):
    force: bool = Field(False, description="Delete even non-empty directories when true")


class NoArgs(_Args):
    pass


TOOL_ARGUMENTS: Dict[str, Type[_Args]] = {
    "read_file": ReadFileArgs,
    "read_multiple_files": ReadMultipleFilesArgs,
    "write_file": WriteFileArgs,
    "edit_file": EditFileArgs,
    "create_directory": PathArgs,
    "list_directory": PathArgs,
    "directory_tree": PathArgs,
    "move_file": SourceDestinationArgs,
    "search_files": SearchFilesArgs,
    "get_file_info": PathArgs,
    "copy_file": SourceDestinationArgs,
    "copy_directory": CopyDirectoryArgs,
    "delete_file": DeleteFileArgs,
    "list_allowed_directories": NoArgs,
}


class TreeNode(TypedDict):
    name: str
    type: Literal["file", "directory"]
    children: NotRequired[List["TreeNode"]]


class ToolResult(BaseModel):
    text: str
    is_error: bool = False
