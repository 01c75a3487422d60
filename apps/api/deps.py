"""FastAPI dependencies shared by the content routes."""

from __future__ import annotations

import httpx
from fastapi import Depends, Header, HTTPException, Request

from services.content_repo import ContentRepoClient
from shared.config import settings


def get_http_client(request: Request) -> httpx.AsyncClient:
    """The GitHub HTTP client opened at application startup."""
    return request.app.state.http


def get_repo_client(
    http: httpx.AsyncClient = Depends(get_http_client),
) -> ContentRepoClient:
    """Repository client for one request; raises ``MissingToken`` when unset."""
    return ContentRepoClient.from_settings(http, settings)


def require_token(authorization: str | None = Header(default=None)) -> None:
    """Guard write routes with ``ADMIN_API_TOKEN`` when one is configured."""
    expected = settings.ADMIN_API_TOKEN
    if not expected:
        return
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")
    token = authorization.split(" ", 1)[1]
    if token != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")


__all__ = ["get_http_client", "get_repo_client", "require_token"]
