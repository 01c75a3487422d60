"""Command line admin for site content, going through the content proxy."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer

from services.content_repo import ContentRepoError
from shared.config import settings
from shared.logging import configure
from shared.posts import to_iso

from .feed import SectionLoader
from .gateway import ProxyClient, create_proxy_http_client
from .workflow import CommitWorkflow, EditorState, WorkflowError

app = typer.Typer(add_completion=False)

T = TypeVar("T")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Defaults to LOG_LEVEL"),
) -> None:
    """Manage site posts through the content proxy."""
    configure(log_level)


def _run(fn: Callable[[ProxyClient], Awaitable[T]]) -> T:
    async def _main() -> T:
        async with create_proxy_http_client(settings) as http:
            return await fn(ProxyClient(http))

    try:
        return asyncio.run(_main())
    except (WorkflowError, ContentRepoError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)


def _changes(**options: Any) -> dict[str, Any]:
    """Form changes for the options that were actually given."""
    changes = {key: value for key, value in options.items() if value is not None}
    if "metadata" in changes:
        changes["metadata_text"] = changes.pop("metadata")
    if "active" in changes:
        changes["is_active"] = changes.pop("active")
    return changes


def _report(workflow: CommitWorkflow) -> None:
    if workflow.errors:
        for error in workflow.errors:
            typer.echo(f"invalid: {error}", err=True)
        raise typer.Exit(code=1)
    if workflow.state == EditorState.FAILED:
        typer.echo(workflow.error, err=True)
        raise typer.Exit(code=1)
    if workflow.dry_run and workflow.last_plan is not None:
        plan = workflow.last_plan
        typer.echo(workflow.message)
        typer.echo(json.dumps(plan.content, indent=2))
        return
    typer.echo(workflow.message)
    if workflow.content_url:
        typer.echo(workflow.content_url)


@app.command("list")
def list_files(folder: str = typer.Argument("All", help="Words, Lines, Motion, Sound or All")) -> None:
    """List stored post files."""

    async def _main(gateway: ProxyClient):
        return await gateway.list_folder(folder)

    for entry in _run(_main):
        typer.echo(entry.path)


@app.command()
def show(path: str) -> None:
    """Print one stored post with its sha."""

    async def _main(gateway: ProxyClient):
        return await gateway.get_file(path)

    stored = _run(_main)
    typer.echo(f"sha: {stored.sha}")
    typer.echo(json.dumps(stored.content, indent=2))


@app.command()
def feed(section: str = typer.Argument("All")) -> None:
    """Print the active posts of a section, newest first."""

    async def _main(gateway: ProxyClient):
        loader = SectionLoader(gateway)
        if section == "About":
            return await loader.load_about()
        return await loader.load(section)

    state = _run(_main)
    if state.error:
        typer.echo(state.error, err=True)
        raise typer.Exit(code=1)
    for post in state.posts:
        date = post.date if isinstance(post.date, str) else to_iso(post.date)
        typer.echo(f"{date[:10]}  {post.type:<6}  {post.title}")


@app.command()
def new(
    post_type: str = typer.Argument(..., help="Words, Lines, Motion, Sound or About"),
    title: str = typer.Option(..., "--title"),
    date: Optional[str] = typer.Option(None, "--date", help="YYYY-MM-DD, defaults to today"),
    description: Optional[str] = typer.Option(None, "--description"),
    text: Optional[str] = typer.Option(None, "--text"),
    image: Optional[str] = typer.Option(None, "--image", help="Comma separated image URLs"),
    image_width: Optional[str] = typer.Option(None, "--image-width"),
    video_url: Optional[str] = typer.Option(None, "--video-url"),
    audio_url: Optional[str] = typer.Option(None, "--audio-url"),
    audio_embed: Optional[str] = typer.Option(None, "--audio-embed"),
    metadata: Optional[str] = typer.Option(None, "--metadata", help="JSON object"),
    active: Optional[bool] = typer.Option(None, "--active/--inactive"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the commit without sending it"),
) -> None:
    """Create a post."""
    changes = _changes(
        title=title,
        date=date,
        description=description,
        text=text,
        image=image,
        image_width=image_width,
        video_url=video_url,
        audio_url=audio_url,
        audio_embed=audio_embed,
        metadata=metadata,
        active=active,
    )

    async def _main(gateway: ProxyClient) -> CommitWorkflow:
        workflow = CommitWorkflow(gateway, dry_run=dry_run)
        workflow.start_new(post_type)
        workflow.edit(**changes)
        await workflow.submit()
        return workflow

    _report(_run(_main))


@app.command()
def edit(
    path: str,
    title: Optional[str] = typer.Option(None, "--title"),
    date: Optional[str] = typer.Option(None, "--date"),
    description: Optional[str] = typer.Option(None, "--description"),
    text: Optional[str] = typer.Option(None, "--text"),
    image: Optional[str] = typer.Option(None, "--image"),
    image_width: Optional[str] = typer.Option(None, "--image-width"),
    video_url: Optional[str] = typer.Option(None, "--video-url"),
    audio_url: Optional[str] = typer.Option(None, "--audio-url"),
    audio_embed: Optional[str] = typer.Option(None, "--audio-embed"),
    metadata: Optional[str] = typer.Option(None, "--metadata"),
    active: Optional[bool] = typer.Option(None, "--active/--inactive"),
    dry_run: bool = typer.Option(False, "--dry-run"),
) -> None:
    """Modify a stored post; a new title or date renames its file."""
    changes = _changes(
        title=title,
        date=date,
        description=description,
        text=text,
        image=image,
        image_width=image_width,
        video_url=video_url,
        audio_url=audio_url,
        audio_embed=audio_embed,
        metadata=metadata,
        active=active,
    )

    async def _main(gateway: ProxyClient) -> CommitWorkflow:
        workflow = CommitWorkflow(gateway, dry_run=dry_run)
        if await workflow.load(path) is None:
            raise WorkflowError(workflow.error or f"Could not load {path}")
        workflow.edit(**changes)
        await workflow.submit()
        return workflow

    _report(_run(_main))


@app.command()
def delete(
    path: str,
    yes: bool = typer.Option(False, "--yes", help="Do not ask for confirmation"),
) -> None:
    """Delete a stored post."""
    if not yes:
        typer.confirm(f"Delete {path}?", abort=True)

    async def _main(gateway: ProxyClient) -> CommitWorkflow:
        workflow = CommitWorkflow(gateway)
        if await workflow.load(path) is None:
            raise WorkflowError(workflow.error or f"Could not load {path}")
        await workflow.delete()
        return workflow

    _report(_run(_main))


if __name__ == "__main__":  # pragma: no cover
    app()
