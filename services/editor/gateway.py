"""Access to the content store from the editor and reader side.

:class:`ContentGateway` is what the commit workflow and the section loader
need. :class:`ContentRepoClient` satisfies it directly; :class:`ProxyClient`
satisfies it through the HTTP proxy so the GitHub token never leaves the
server.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx

from services.content_repo import (
    ContentRepoError,
    FileEntry,
    RenameIncomplete,
    StoredFile,
    UpstreamUnavailable,
)
from shared.config import Settings, settings
from shared.logging import log_debug, log_error


class ContentGateway(Protocol):
    async def list_folder(self, folder: str) -> list[FileEntry]: ...

    async def get_file(self, path: str) -> StoredFile: ...

    async def commit_file(
        self, path: str, content: Any, message: str, sha: str | None = None
    ) -> dict[str, Any]: ...

    async def delete_file(self, path: str, sha: str, message: str) -> dict[str, Any]: ...

    async def rename_file(
        self,
        old_path: str,
        old_sha: str,
        new_path: str,
        content: Any,
        message: str,
    ) -> dict[str, Any]: ...


class ProxyError(ContentRepoError):
    """Non-2xx answer from the proxy, carrying its status and JSON body."""

    def __init__(self, status_code: int, body: Any) -> None:
        message = None
        if isinstance(body, dict):
            message = body.get("error") or body.get("message")
        super().__init__(message or f"Request failed ({status_code})")
        self.status_code = status_code
        self.body = body

    def to_body(self) -> dict[str, Any]:
        if isinstance(self.body, dict):
            return self.body
        return {"error": self.message}


def create_proxy_http_client(config: Settings = settings) -> httpx.AsyncClient:
    """HTTP client for the proxy, carrying the admin token when configured."""
    headers: dict[str, str] = {}
    if config.ADMIN_API_TOKEN:
        headers["Authorization"] = f"Bearer {config.ADMIN_API_TOKEN}"
    return httpx.AsyncClient(
        base_url=config.API_BASE_URL,
        headers=headers,
        timeout=config.UPSTREAM_TIMEOUT_SEC,
    )


class ProxyClient:
    """Talks to ``/api/*`` on the content proxy."""

    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        log_debug("proxy_request", method=method, url=url)
        try:
            resp = await self._http.request(method, url, params=params, json=json)
        except httpx.HTTPError as exc:
            log_error(
                "proxy_unavailable",
                method=method,
                url=url,
                error_class=exc.__class__.__name__,
                error_message=str(exc),
            )
            raise UpstreamUnavailable(str(exc)) from exc
        try:
            body = resp.json()
        except ValueError:
            body = resp.text
        if resp.status_code >= 400:
            raise _error_from_response(resp.status_code, body)
        return body

    async def list_folder(self, folder: str) -> list[FileEntry]:
        body = await self._request("GET", "/api/list", params={"folder": folder})
        return [FileEntry.model_validate(item) for item in body]

    async def get_file(self, path: str) -> StoredFile:
        body = await self._request(
            "GET", "/api/file", params={"path": path, "meta": "true"}
        )
        return StoredFile.model_validate(body)

    async def get_about(self) -> Any:
        return await self._request("GET", "/api/about")

    async def commit_file(
        self, path: str, content: Any, message: str, sha: str | None = None
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "path": path,
            "contentJson": content,
            "message": message,
        }
        if sha:
            payload["sha"] = sha
        return await self._request("POST", "/api/commit", json=payload)

    async def delete_file(self, path: str, sha: str, message: str) -> dict[str, Any]:
        payload = {"path": path, "message": message, "sha": sha}
        return await self._request("DELETE", "/api/commit", json=payload)

    async def rename_file(
        self,
        old_path: str,
        old_sha: str,
        new_path: str,
        content: Any,
        message: str,
    ) -> dict[str, Any]:
        payload = {
            "path": new_path,
            "contentJson": content,
            "message": message,
            "originalPath": old_path,
            "originalSha": old_sha,
        }
        return await self._request("POST", "/api/commit", json=payload)


def _error_from_response(status_code: int, body: Any) -> ContentRepoError:
    # The proxy reports a half-finished rename with the surviving commit.
    if isinstance(body, dict) and "originalPath" in body and "commit" in body:
        cause = ProxyError(status_code, {"error": body.get("reason") or "delete failed"})
        return RenameIncomplete(body["originalPath"], body["path"], body["commit"], cause)
    return ProxyError(status_code, body)


__all__ = ["ContentGateway", "ProxyClient", "ProxyError", "create_proxy_http_client"]
