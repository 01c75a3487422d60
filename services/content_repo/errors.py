"""Errors raised by the content repository client.

Every error knows the HTTP status the proxy answers with and the JSON body it
sends, so the API layer can translate them without inspecting each type.
"""

from __future__ import annotations

from typing import Any


class ContentRepoError(Exception):
    """Base class for content repository failures."""

    status_code = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_body(self) -> dict[str, Any]:
        return {"error": self.message, **self.details}


class MissingToken(ContentRepoError):
    """The GitHub token is not configured."""

    status_code = 500

    def __init__(self) -> None:
        super().__init__("GITHUB_TOKEN missing on server")


class InvalidFolder(ContentRepoError):
    status_code = 400

    def __init__(self, folder: str | None, valid: tuple[str, ...]) -> None:
        super().__init__(
            f"Invalid folder {folder!r}; expected one of: {', '.join(valid)}",
            valid=list(valid),
        )


class NotAFile(ContentRepoError):
    """The requested path resolves to a directory."""

    status_code = 400

    def __init__(self, path: str) -> None:
        super().__init__(f"Path is not a file: {path}", path=path)


class EmptyContent(ContentRepoError):
    status_code = 400

    def __init__(self, path: str) -> None:
        super().__init__(f"File has no content: {path}", path=path)


class ParseError(ContentRepoError):
    """The stored payload could not be decoded as JSON."""

    status_code = 400

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Failed to parse {path}: {reason}", path=path)


class UpstreamError(ContentRepoError):
    """A 4xx answer from GitHub, passed through verbatim.

    A JSON object body goes back to the caller unchanged, so the text is under
    GitHub's own ``message`` key rather than ``error``. Any other body is
    wrapped as ``{"error": ..., "body": ...}``. Stale ``sha`` writes surface
    here as 409 or 422.
    """

    def __init__(self, status_code: int, body: Any) -> None:
        message = None
        if isinstance(body, dict):
            message = body.get("message") or body.get("error")
        super().__init__(message or f"GitHub request failed ({status_code})")
        self.status_code = status_code
        self.body = body

    def to_body(self) -> dict[str, Any]:
        if isinstance(self.body, dict):
            return dict(self.body)
        return {"error": self.message, "body": self.body}


class UpstreamUnavailable(ContentRepoError):
    """Network failure or 5xx from GitHub; callers may retry."""

    status_code = 502

    def __init__(self, reason: str) -> None:
        super().__init__("GitHub is unavailable", reason=reason)


class RenameIncomplete(ContentRepoError):
    """The new copy was committed but the old file could not be deleted."""

    status_code = 502

    def __init__(self, old_path: str, new_path: str, result: dict, cause: ContentRepoError) -> None:
        super().__init__(
            f"Saved {new_path} but could not delete {old_path}: {cause.message}",
            path=new_path,
            originalPath=old_path,
            commit=result,
            reason=cause.message,
        )
        self.old_path = old_path
        self.new_path = new_path
        self.result = result
        self.cause = cause


__all__ = [
    "ContentRepoError",
    "EmptyContent",
    "InvalidFolder",
    "MissingToken",
    "NotAFile",
    "ParseError",
    "RenameIncomplete",
    "UpstreamError",
    "UpstreamUnavailable",
]
