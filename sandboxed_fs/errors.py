from __future__ import annotations


class FilesystemError(Exception):
    """Base class for every error raised by the sandboxed filesystem tools."""


class AccessDenied(FilesystemError, PermissionError):
    """Raised when a path, its symlink target or its parent is outside the sandbox."""


class ParentMissing(FilesystemError, FileNotFoundError):
    """Raised when the parent of a not-yet-created path does not exist."""


class InvalidArguments(FilesystemError, ValueError):
    """Raised when a tool request does not have the expected shape."""


class EditNotFound(FilesystemError, ValueError):
    """Raised when an edit's search text matches nothing in the file."""

    def __init__(self, old_text: str) -> None:
        super().__init__(f"Could not find exact match for edit:\n{old_text}")
        self.old_text = old_text


class AlreadyExists(FilesystemError, FileExistsError):
    """Raised when a destination is already present and overwriting is not allowed."""


class NotEmpty(FilesystemError, OSError):
    """Raised when deleting a non-empty directory without force."""


class NotADirectory(FilesystemError, NotADirectoryError):
    pass


class IsADirectory(FilesystemError, IsADirectoryError):
    pass


class ConfigurationError(FilesystemError, ValueError):
    """Raised at startup when the allowed directories are unusable."""
