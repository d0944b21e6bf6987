"""
Sandboxed filesystem MCP server.
"""

from .editing import EditResult, apply_edit, apply_edits, apply_file_edits, create_unified_diff, fence_diff
from .errors import (
    AccessDenied,
    AlreadyExists,
    ConfigurationError,
    EditNotFound,
    FilesystemError,
    InvalidArguments,
    IsADirectory,
    NotADirectory,
    NotEmpty,
    ParentMissing,
)
from .models import EditOperation, ToolResult, TreeNode
from .operations import FileSystemOperations
from .security import AllowedRoots, assert_allowed, is_path_within, normalize_path, validate_path

__all__ = [
    "AccessDenied",
    "AllowedRoots",
    "AlreadyExists",
    "ConfigurationError",
    "EditNotFound",
    "EditOperation",
    "EditResult",
    "FileSystemOperations",
    "FilesystemError",
    "InvalidArguments",
    "IsADirectory",
    "NotADirectory",
    "NotEmpty",
    "ParentMissing",
    "ToolResult",
    "TreeNode",
    "apply_edit",
    "apply_edits",
    "apply_file_edits",
    "assert_allowed",
    "create_unified_diff",
    "fence_diff",
    "is_path_within",
    "normalize_path",
    "validate_path",
]
