"""GitHub-backed content repository."""

from .client import (
    ALL_FOLDERS,
    LISTABLE_FOLDERS,
    ContentRepoClient,
    FileEntry,
    StoredFile,
    create_http_client,
)
from .errors import (
    ContentRepoError,
    EmptyContent,
    InvalidFolder,
    MissingToken,
    NotAFile,
    ParseError,
    RenameIncomplete,
    UpstreamError,
    UpstreamUnavailable,
)

__all__ = [
    "ALL_FOLDERS",
    "LISTABLE_FOLDERS",
    "ContentRepoClient",
    "ContentRepoError",
    "EmptyContent",
    "FileEntry",
    "InvalidFolder",
    "MissingToken",
    "NotAFile",
    "ParseError",
    "RenameIncomplete",
    "StoredFile",
    "UpstreamError",
    "UpstreamUnavailable",
    "create_http_client",
]
