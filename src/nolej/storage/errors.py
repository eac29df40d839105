"""Storage error types for document workspaces and the content store.

All errors are fail-closed: operations that cannot complete safely raise.
"""

from __future__ import annotations


class StorageError(Exception):
    """Base exception for local file storage.

    Attributes:
        message: Human-readable error message.
        document_id: Document associated with the operation (if applicable).
        name: File or package name associated with the operation (if applicable).
    """

    def __init__(
        self,
        message: str,
        *,
        document_id: str | None = None,
        name: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.document_id = document_id
        self.name = name

    def __str__(self) -> str:
        parts = [self.message]
        if self.document_id:
            parts.append(f"document_id={self.document_id}")
        if self.name:
            parts.append(f"name={self.name}")
        return " ".join(parts)


class WorkspaceError(StorageError):
    """Raised when a workspace file cannot be read or written."""


class PathTraversalError(WorkspaceError):
    """Raised when a document id or file name would escape the workspace root."""

    def __init__(
        self,
        message: str = "Invalid name: path traversal detected",
        *,
        document_id: str | None = None,
        name: str | None = None,
    ) -> None:
        super().__init__(message, document_id=document_id, name=name)


class ContentStoreError(StorageError):
    """Raised when a package cannot be registered in the content store."""
