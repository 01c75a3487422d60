"""Content routes proxied to the GitHub-backed repository."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from services.content_repo import ContentRepoClient
from shared.logging import log_info
from shared.posts import ABOUT_PATH

from .deps import get_repo_client, require_token

router = APIRouter(prefix="/api", tags=["content"])


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CommitRequest(_CamelModel):
    """Create or update a file; ``originalPath`` turns it into a rename."""

    path: str = ""
    content_json: Any = None
    message: str = ""
    sha: str | None = None
    original_path: str | None = None
    original_sha: str | None = None


class DeleteRequest(_CamelModel):
    path: str = ""
    message: str = ""
    sha: str = ""


@router.get("/list")
async def list_files(
    folder: str | None = None,
    repo: ContentRepoClient = Depends(get_repo_client),
) -> list[dict[str, Any]]:
    entries = await repo.list_folder(folder or "")
    return [entry.model_dump(by_alias=True) for entry in entries]


@router.get("/file")
async def get_file(
    path: str | None = None,
    meta: bool = False,
    repo: ContentRepoClient = Depends(get_repo_client),
) -> Any:
    if not path:
        raise HTTPException(status_code=400, detail="path is required")
    stored = await repo.get_file(path)
    if meta:
        return stored.model_dump()
    return stored.content


@router.get("/about")
async def get_about(repo: ContentRepoClient = Depends(get_repo_client)) -> Any:
    stored = await repo.get_file(ABOUT_PATH)
    return stored.content


@router.post("/commit")
async def commit(
    payload: CommitRequest,
    _: None = Depends(require_token),
    repo: ContentRepoClient = Depends(get_repo_client),
) -> Any:
    if not payload.path or payload.content_json is None or not payload.message:
        raise HTTPException(
            status_code=400, detail="path, contentJson, and message are required"
        )

    original = payload.original_path
    if original and original != payload.path:
        if original == ABOUT_PATH:
            raise HTTPException(status_code=400, detail="The About post cannot be renamed")
        if not payload.original_sha:
            raise HTTPException(
                status_code=400, detail="originalSha is required to rename a file"
            )
        log_info("commit_rename", original_path=original, path=payload.path)
        return await repo.rename_file(
            original,
            payload.original_sha,
            payload.path,
            payload.content_json,
            payload.message,
        )

    log_info("commit", path=payload.path, update=bool(payload.sha))
    return await repo.commit_file(
        payload.path, payload.content_json, payload.message, payload.sha
    )


@router.delete("/commit")
async def delete(
    payload: DeleteRequest,
    _: None = Depends(require_token),
    repo: ContentRepoClient = Depends(get_repo_client),
) -> Any:
    if not (payload.path and payload.message and payload.sha):
        raise HTTPException(
            status_code=400, detail="path, message, and sha are required"
        )
    if payload.path == ABOUT_PATH:
        raise HTTPException(status_code=400, detail="The About post cannot be deleted")
    log_info("delete", path=payload.path)
    return await repo.delete_file(payload.path, payload.sha, payload.message)


__all__ = ["router", "CommitRequest", "DeleteRequest"]
