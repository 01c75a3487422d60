"""Editor-side commit workflow for creating, modifying and deleting posts.

One :class:`CommitWorkflow` drives a single in-progress edit::

    EMPTY -> LOADED -> EDITING -> SUBMITTING -> SUCCEEDED | FAILED

Starting a new post goes straight to ``EDITING``; ``FAILED`` stays editable.
Form edits never touch the network. Submitting validates first and only then
derives the storage path and commits through a :class:`ContentGateway`.

The workflow assumes a single editor. A concurrent writer makes the next
commit fail the ``sha`` check upstream; the fix is to reload and edit again.
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from services.content_repo import ContentRepoError, RenameIncomplete
from shared.config import Settings, settings
from shared.logging import log_error, log_info
from shared.posts import (
    ABOUT,
    ABOUT_PATH,
    DEFAULT_IMAGE_WIDTH,
    LINES,
    MOTION,
    PLACEHOLDER_SLUG,
    POST_TYPES,
    SOUND,
    PostBase,
    PostFormatError,
    derive_path,
    format_image_input,
    from_storage_record,
    new_post_id,
    parse_image_input,
    parse_timestamp,
    slugify,
    to_storage_record,
    utcnow,
    validate_post,
)

from .gateway import ContentGateway


class EditorState(str, Enum):
    EMPTY = "empty"
    LOADED = "loaded"
    EDITING = "editing"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class WorkflowError(Exception):
    """A commit or delete refused before any network call."""


class NoPostLoaded(WorkflowError):
    pass


class MissingShaForRename(WorkflowError):
    def __init__(self) -> None:
        super().__init__("Cannot rename file: missing original SHA. Reload and try again.")


class MissingShaForDelete(WorkflowError):
    def __init__(self) -> None:
        super().__init__("Cannot delete: missing file SHA. Reload the post and try again.")


class AboutNotDeletable(WorkflowError):
    def __init__(self) -> None:
        super().__init__("The About post cannot be deleted")


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _form_value(value: Any) -> Any:
    # Non-string values pass through unchanged.
    return "" if value is None else value


def _stripped(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip() or None
    return value


@dataclass
class PostForm:
    """Editable fields of a post, as entered in the admin form."""

    post_type: str
    title: str = ""
    date: str = ""
    description: str = ""
    is_active: bool = True
    text: str = ""
    image: str = ""
    image_width: str = DEFAULT_IMAGE_WIDTH
    video_url: Any = ""
    audio_url: str = ""
    audio_embed: str = ""
    metadata_text: str = "{}"
    instagram: str = ""
    substack: str = ""

    @property
    def slug(self) -> str:
        return slugify(self.title) or PLACEHOLDER_SLUG

    @classmethod
    def from_post(cls, post: PostBase) -> "PostForm":
        metadata = dict(post.metadata)
        instagram = _text(metadata.pop("instagram", ""))
        substack = _text(metadata.pop("substack", ""))
        parsed_date = parse_timestamp(post.date)
        return cls(
            post_type=post.type,
            title=post.title,
            date=_day(parsed_date) if parsed_date else str(post.date),
            description=post.description,
            is_active=post.is_active is not False,
            text=post.text,
            image=format_image_input(getattr(post, "image", None)),
            image_width=getattr(post, "image_width", None) or DEFAULT_IMAGE_WIDTH,
            video_url=_form_value(getattr(post, "video_url", None)),
            audio_url=_text(getattr(post, "audio_url", None) or metadata.get("audioUrl")),
            audio_embed=_text(metadata.get("audioEmbed") or metadata.get("audioHtml")),
            metadata_text=json.dumps(metadata, indent=2),
            instagram=instagram,
            substack=substack,
        )


@dataclass
class LoadedPost:
    """The last version read from or written to the store."""

    content: PostBase
    sha: str | None
    path: str


@dataclass
class CommitPlan:
    """What ``submit`` is about to send."""

    kind: str  # "create", "update" or "rename"
    path: str
    content: dict[str, Any]
    message: str
    sha: str | None = None
    original_path: str | None = None
    original_sha: str | None = None


_TYPE_SPECIFIC_FIELDS = ("text", "image", "image_width", "video_url", "audio_url", "audio_embed")


class CommitWorkflow:
    def __init__(
        self,
        gateway: ContentGateway,
        *,
        config: Settings = settings,
        clock: Callable[[], datetime] = utcnow,
        dry_run: bool = False,
    ) -> None:
        self._gateway = gateway
        self._config = config
        self._clock = clock
        self.dry_run = dry_run

        self.state = EditorState.EMPTY
        self.form: PostForm | None = None
        self.loaded: LoadedPost | None = None
        self.errors: list[str] = []
        self.error: str | None = None
        self.message: str | None = None
        self.content_url: str | None = None
        self.last_plan: CommitPlan | None = None
        self._load_generation = 0

    # ------------------------------------------------------------------
    # Selecting a post
    # ------------------------------------------------------------------
    def start_new(self, post_type: str) -> PostForm:
        if post_type not in POST_TYPES:
            raise ValueError(f"Unknown post type: {post_type!r}")
        self._reset()
        self.form = PostForm(
            post_type=post_type,
            date=_day(self._clock()),
            instagram=self._config.INSTAGRAM_URL if post_type == ABOUT else "",
            substack=self._config.SUBSTACK_URL if post_type == ABOUT else "",
        )
        self.state = EditorState.EDITING
        return self.form

    async def load(self, path: str) -> LoadedPost | None:
        """Fetch ``path`` and its sha. A newer ``load`` call discards this one."""
        self._load_generation += 1
        generation = self._load_generation
        self._reset()
        try:
            stored = await self._gateway.get_file(path)
            post = from_storage_record(stored.content)
        except (ContentRepoError, PostFormatError) as exc:
            if generation == self._load_generation:
                self.error = getattr(exc, "message", None) or str(exc)
                log_error("load_failed", path=path, error_message=self.error)
            return None
        if generation != self._load_generation:
            return None

        self.loaded = LoadedPost(content=post, sha=stored.sha, path=stored.path)
        self.form = PostForm.from_post(post)
        self.state = EditorState.LOADED
        log_info("loaded", path=stored.path, type=post.type)
        return self.loaded

    def _reset(self) -> None:
        self.state = EditorState.EMPTY
        self.form = None
        self.loaded = None
        self.errors = []
        self.error = None
        self.message = None
        self.content_url = None

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------
    def edit(self, **changes: Any) -> PostForm:
        """Apply form changes locally; the slug follows the title."""
        if self.form is None:
            raise NoPostLoaded("Select or start a post first")
        known = {f.name for f in dataclasses.fields(PostForm)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown form fields: {', '.join(sorted(unknown))}")

        new_type = changes.get("post_type", self.form.post_type)
        if new_type != self.form.post_type:
            if self.loaded is not None:
                raise WorkflowError("The type of an existing post cannot change")
            if new_type not in POST_TYPES:
                raise ValueError(f"Unknown post type: {new_type!r}")
            defaults = PostForm(post_type=new_type)
            for name in _TYPE_SPECIFIC_FIELDS:
                changes.setdefault(name, getattr(defaults, name))
            if new_type == ABOUT:
                changes.setdefault("instagram", self._config.INSTAGRAM_URL)
                changes.setdefault("substack", self._config.SUBSTACK_URL)

        self.form = dataclasses.replace(self.form, **changes)
        self.state = EditorState.EDITING
        return self.form

    def _parse_metadata(self) -> tuple[dict[str, Any], str | None]:
        text = self.form.metadata_text.strip()
        if not text:
            return {}, None
        try:
            parsed = json.loads(text)
        except ValueError:
            return {}, "Invalid JSON in metadata"
        return (parsed if isinstance(parsed, dict) else {}), None

    def build_post(self, now: datetime | None = None) -> PostBase:
        """Assemble the post the form currently describes."""
        if self.form is None:
            raise NoPostLoaded("Select or start a post first")
        form = self.form
        now = now or self._clock()
        metadata, _ = self._parse_metadata()

        if form.post_type == SOUND and form.audio_embed.strip():
            metadata["audioEmbed"] = form.audio_embed.strip()
        else:
            metadata.pop("audioEmbed", None)
        if not form.audio_url.strip():
            metadata.pop("audioUrl", None)
        if form.post_type == ABOUT:
            metadata["instagram"] = form.instagram.strip() or self._config.INSTAGRAM_URL
            metadata["substack"] = form.substack.strip() or self._config.SUBSTACK_URL

        record: dict[str, Any] = {}
        created_at: Any = now
        post_id = ""
        if self.loaded is not None:
            record = to_storage_record(self.loaded.content)
            created_at = self.loaded.content.created_at or now
            post_id = self.loaded.content.id
        parsed_date = parse_timestamp(form.date)

        record.update(
            {
                "type": form.post_type,
                "id": post_id or new_post_id(form.post_type, now),
                "slug": form.slug,
                "title": form.title,
                "date": parsed_date if parsed_date is not None else form.date,
                "description": form.description,
                "createdAt": created_at,
                "updatedAt": now,
                "isActive": form.is_active,
                "metadata": metadata,
                "text": form.text,
            }
        )
        if form.post_type in (LINES, SOUND):
            record["image"] = parse_image_input(form.image)
            record["imageWidth"] = form.image_width
        if form.post_type == MOTION:
            record["videoUrl"] = _stripped(form.video_url)
        if form.post_type == SOUND:
            record["audioUrl"] = form.audio_url.strip() or None
        return from_storage_record(record)

    def validate(self) -> list[str]:
        """Validation errors for the current form; empty when it can be saved."""
        _, metadata_error = self._parse_metadata()
        errors = validate_post(self.build_post())
        if metadata_error:
            errors.append(metadata_error)
        return errors

    def plan(self, post: PostBase) -> CommitPlan:
        """Decide between create, in-place update and rename for ``post``."""
        path = derive_path(post.type, post.date, post.slug)
        content = to_storage_record(post)
        if self.loaded is None:
            return CommitPlan(
                kind="create",
                path=path,
                content=content,
                message=f"Create {post.type} {post.title} via admin UI",
            )
        message = f"Update {post.type} post: {post.title}"
        if path == self.loaded.path or post.type == ABOUT:
            return CommitPlan(
                kind="update",
                path=self.loaded.path if post.type == ABOUT else path,
                content=content,
                message=message,
                sha=self.loaded.sha,
            )
        if not self.loaded.sha:
            raise MissingShaForRename()
        return CommitPlan(
            kind="rename",
            path=path,
            content=content,
            message=message,
            original_path=self.loaded.path,
            original_sha=self.loaded.sha,
        )

    # ------------------------------------------------------------------
    # Committing
    # ------------------------------------------------------------------
    async def submit(self) -> dict[str, Any] | None:
        """Validate and commit the form.

        Returns the commit result, or ``None`` when nothing was committed.
        Upstream failures leave the workflow in ``FAILED`` with the upstream
        message in :attr:`error` and the loaded version untouched.
        """
        if self.form is None:
            raise NoPostLoaded("Select or start a post first")
        if self.state == EditorState.SUBMITTING:
            raise WorkflowError("A commit is already in progress")

        self.message = None
        self.content_url = None
        now = self._clock()
        self.errors = self.validate()
        if self.errors:
            self.state = EditorState.EDITING
            self.error = "; ".join(self.errors)
            return None

        post = self.build_post(now)
        try:
            plan = self.plan(post)
        except MissingShaForRename as exc:
            self.state = EditorState.FAILED
            self.error = str(exc)
            raise
        self.last_plan = plan

        if self.dry_run:
            self.error = None
            self.message = f"Dry run: would {plan.kind} {plan.path}"
            log_info("dry_run", kind=plan.kind, path=plan.path)
            return None

        self.state = EditorState.SUBMITTING
        log_info("submit", kind=plan.kind, path=plan.path)
        try:
            result = await self._send(plan)
        except RenameIncomplete as exc:
            # The new copy exists; further edits have to start from it.
            self.loaded = LoadedPost(content=post, sha=_result_sha(exc.result), path=plan.path)
            self.state = EditorState.FAILED
            self.error = exc.message
            return None
        except ContentRepoError as exc:
            self.state = EditorState.FAILED
            self.error = exc.message
            log_error("submit_failed", kind=plan.kind, path=plan.path, error_message=exc.message)
            return None
        except Exception:
            self.state = EditorState.FAILED
            raise

        previous_sha = self.loaded.sha if self.loaded else None
        self.loaded = LoadedPost(
            content=post, sha=_result_sha(result) or previous_sha, path=plan.path
        )
        self.content_url = _result_url(result) or self._blob_url(plan.path)
        self.state = EditorState.SUCCEEDED
        self.error = None
        self.message = "Post created" if plan.kind == "create" else "Post updated"
        log_info("committed", kind=plan.kind, path=plan.path)
        return result

    async def _send(self, plan: CommitPlan) -> dict[str, Any]:
        if plan.kind == "rename":
            return await self._gateway.rename_file(
                plan.original_path,
                plan.original_sha,
                plan.path,
                plan.content,
                plan.message,
            )
        return await self._gateway.commit_file(
            plan.path, plan.content, plan.message, plan.sha
        )

    async def delete(self) -> dict[str, Any] | None:
        """Delete the loaded post. About can never be deleted."""
        if self.form is not None and self.form.post_type == ABOUT:
            raise AboutNotDeletable()
        if self.loaded is not None and (
            self.loaded.content.type == ABOUT or self.loaded.path == ABOUT_PATH
        ):
            raise AboutNotDeletable()
        if self.loaded is None:
            raise NoPostLoaded("Select a post to delete")
        if not self.loaded.sha:
            raise MissingShaForDelete()

        loaded = self.loaded
        self.state = EditorState.SUBMITTING
        try:
            result = await self._gateway.delete_file(
                loaded.path,
                loaded.sha,
                f"Delete post: {loaded.content.title or loaded.path}",
            )
        except ContentRepoError as exc:
            self.state = EditorState.FAILED
            self.error = exc.message
            log_error("delete_failed", path=loaded.path, error_message=exc.message)
            return None

        self._reset()
        self.state = EditorState.SUCCEEDED
        self.message = "Post deleted"
        log_info("deleted", path=loaded.path)
        return result

    def _blob_url(self, path: str) -> str:
        branch = self._config.GITHUB_BRANCH or "main"
        return f"{self._config.repo_html_url}/blob/{branch}/{path}"


def _day(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d")


def _result_sha(result: dict[str, Any] | None) -> str | None:
    content = (result or {}).get("content") or {}
    return content.get("sha")


def _result_url(result: dict[str, Any] | None) -> str | None:
    content = (result or {}).get("content") or {}
    return content.get("html_url")


__all__ = [
    "AboutNotDeletable",
    "CommitPlan",
    "CommitWorkflow",
    "EditorState",
    "LoadedPost",
    "MissingShaForDelete",
    "MissingShaForRename",
    "NoPostLoaded",
    "PostForm",
    "WorkflowError",
]
