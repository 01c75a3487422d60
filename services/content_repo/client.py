"""GitHub Contents API client used as the sole gateway to the content store.

Only this module sees the GitHub token. Every call goes straight to GitHub:
there is no caching and no retry, callers decide whether to try again.
"""

from __future__ import annotations

import asyncio
import base64
import json
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from shared.config import Settings, settings
from shared.logging import log_error, log_info, log_warning
from shared.posts import CONTENT_FOLDERS

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

ALL_FOLDERS = "All"
LISTABLE_FOLDERS = (*CONTENT_FOLDERS, ALL_FOLDERS)
GITHUB_API_VERSION = "2022-11-28"


class FileEntry(BaseModel):
    """A JSON file found directly inside a content folder."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    path: str
    name: str
    download_ref: str | None = None


class StoredFile(BaseModel):
    """Decoded file content together with the sha needed for writes."""

    content: Any
    sha: str | None = None
    path: str


def encode_content(content: Any) -> str:
    """Serialize ``content`` as pretty JSON and base64 encode it for GitHub."""
    text = json.dumps(content, indent=2, ensure_ascii=False)
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_content(path: str, encoded: str) -> Any:
    try:
        raw = base64.b64decode(encoded)
        return json.loads(raw.decode("utf-8"))
    except ValueError as exc:
        raise ParseError(path, str(exc)) from exc


def create_http_client(config: Settings = settings) -> httpx.AsyncClient:
    """HTTP client pointed at the GitHub API; the token is added per request."""
    return httpx.AsyncClient(
        base_url=config.GITHUB_API_URL,
        timeout=config.UPSTREAM_TIMEOUT_SEC,
        follow_redirects=True,
    )


class ContentRepoClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        token: str,
        owner: str,
        repo: str,
        branch: str = "",
        committer_name: str = "Site Bot",
        committer_email: str = "bot@example.com",
    ) -> None:
        if not token:
            raise MissingToken()
        self._http = http
        self._token = token
        self._owner = owner
        self._repo = repo
        self._branch = branch
        self._committer = {"name": committer_name, "email": committer_email}

    @classmethod
    def from_settings(
        cls, http: httpx.AsyncClient, config: Settings = settings
    ) -> "ContentRepoClient":
        return cls(
            http,
            token=config.GITHUB_TOKEN,
            owner=config.GITHUB_OWNER,
            repo=config.GITHUB_REPO,
            branch=config.GITHUB_BRANCH,
            committer_name=config.COMMITTER_NAME,
            committer_email=config.COMMITTER_EMAIL,
        )

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    def _contents_url(self, path: str) -> str:
        return f"/repos/{self._owner}/{self._repo}/contents/{quote(path, safe='/')}"

    def _ref_params(self) -> dict[str, str]:
        return {"ref": self._branch} if self._branch else {}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        log_info("upstream_request", method=method, path=path)
        try:
            resp = await self._http.request(
                method,
                self._contents_url(path),
                json=json,
                params=params,
                headers=self._headers(),
            )
        except httpx.HTTPError as exc:
            log_error(
                "upstream_unavailable",
                method=method,
                path=path,
                error_class=exc.__class__.__name__,
                error_message=str(exc),
            )
            raise UpstreamUnavailable(str(exc)) from exc

        log_info("upstream_response", method=method, path=path, status=resp.status_code)
        if resp.status_code >= 500:
            raise UpstreamUnavailable(f"GitHub returned {resp.status_code}")
        try:
            body = resp.json()
        except ValueError:
            body = resp.text
        if resp.status_code >= 400:
            raise UpstreamError(resp.status_code, body)
        return body

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def list_folder(self, folder: str) -> list[FileEntry]:
        """List JSON files directly inside ``folder``.

        ``All`` lists every content folder concurrently. A folder that fails
        is logged and left out rather than failing the whole listing.
        """
        if folder == ALL_FOLDERS:
            return await self._list_all()
        if folder not in CONTENT_FOLDERS:
            raise InvalidFolder(folder, LISTABLE_FOLDERS)

        body = await self._request("GET", folder, params=self._ref_params())
        if not isinstance(body, list):
            log_warning("list_not_a_folder", folder=folder)
            return []
        return [
            FileEntry(
                path=item["path"],
                name=item["name"],
                download_ref=item.get("download_url"),
            )
            for item in body
            if item.get("type") == "file" and item.get("name", "").endswith(".json")
        ]

    async def _list_all(self) -> list[FileEntry]:
        results = await asyncio.gather(
            *(self.list_folder(folder) for folder in CONTENT_FOLDERS),
            return_exceptions=True,
        )
        entries: list[FileEntry] = []
        for folder, result in zip(CONTENT_FOLDERS, results):
            if isinstance(result, ContentRepoError):
                log_warning(
                    "list_folder_skipped",
                    folder=folder,
                    error_class=result.__class__.__name__,
                    error_message=result.message,
                )
                continue
            if isinstance(result, BaseException):
                raise result
            entries.extend(result)
        return entries

    async def get_file(self, path: str) -> StoredFile:
        """Fetch and decode one stored JSON file along with its sha."""
        body = await self._request("GET", path, params=self._ref_params())
        if isinstance(body, list) or (isinstance(body, dict) and body.get("type") == "dir"):
            raise NotAFile(path)
        if not isinstance(body, dict):
            raise ParseError(path, "unexpected response from GitHub")
        encoded = body.get("content")
        if not encoded:
            raise EmptyContent(path)
        return StoredFile(
            content=decode_content(path, encoded),
            sha=body.get("sha"),
            path=body.get("path") or path,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def commit_file(
        self, path: str, content: Any, message: str, sha: str | None = None
    ) -> dict[str, Any]:
        """Create ``path`` (no ``sha``) or update it (``sha`` of the version read).

        GitHub rejects an update whose ``sha`` is stale; that rejection is
        raised unchanged as :class:`UpstreamError`.
        """
        payload: dict[str, Any] = {
            "message": message,
            "content": encode_content(content),
            "committer": self._committer,
        }
        if sha:
            payload["sha"] = sha
        if self._branch:
            payload["branch"] = self._branch
        return await self._request("PUT", path, json=payload)

    async def delete_file(self, path: str, sha: str, message: str) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "message": message,
            "sha": sha,
            "committer": self._committer,
        }
        if self._branch:
            payload["branch"] = self._branch
        return await self._request("DELETE", path, json=payload)

    async def rename_file(
        self,
        old_path: str,
        old_sha: str,
        new_path: str,
        content: Any,
        message: str,
    ) -> dict[str, Any]:
        """Move a file by creating the new copy, then deleting the old one.

        The two commits are not atomic. A failed create leaves the old file
        untouched; a failed delete raises :class:`RenameIncomplete` with the
        new copy already committed.
        """
        if old_path == new_path:
            raise ValueError("rename_file needs two different paths")
        result = await self.commit_file(new_path, content, message)
        try:
            await self.delete_file(old_path, old_sha, f"{message} (remove {old_path})")
        except ContentRepoError as exc:
            log_error(
                "rename_incomplete",
                old_path=old_path,
                new_path=new_path,
                error_class=exc.__class__.__name__,
                error_message=exc.message,
            )
            raise RenameIncomplete(old_path, new_path, result, exc) from exc
        log_info("renamed", old_path=old_path, new_path=new_path)
        return result


__all__ = [
    "ALL_FOLDERS",
    "LISTABLE_FOLDERS",
    "ContentRepoClient",
    "FileEntry",
    "StoredFile",
    "create_http_client",
    "decode_content",
    "encode_content",
]
