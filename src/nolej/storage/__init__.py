"""Local file storage: document workspaces and the H5P content store."""

from nolej.storage.content_store import ContentStore, FilesystemContentStore
from nolej.storage.errors import (
    ContentStoreError,
    PathTraversalError,
    StorageError,
    WorkspaceError,
)
from nolej.storage.workspace import DocumentWorkspace

__all__ = [
    "ContentStore",
    "ContentStoreError",
    "DocumentWorkspace",
    "FilesystemContentStore",
    "PathTraversalError",
    "StorageError",
    "WorkspaceError",
]
