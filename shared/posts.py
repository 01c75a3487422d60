"""Post model shared by the proxy, the editor workflow and the section loader.

Posts are a tagged union keyed by ``type``. Every variant carries the same
envelope (id, slug, title, date, timestamps, ``isActive`` and an open
``metadata`` mapping); variant models add their own fields. Field names are
snake_case in Python and camelCase in the stored JSON.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

WORDS = "Words"
LINES = "Lines"
MOTION = "Motion"
SOUND = "Sound"
ABOUT = "About"

POST_TYPES = (WORDS, LINES, MOTION, SOUND, ABOUT)
CONTENT_FOLDERS = (WORDS, LINES, MOTION, SOUND)

ABOUT_PATH = "About/about.json"
PLACEHOLDER_SLUG = "post"
DEFAULT_IMAGE_WIDTH = "600px"
STORAGE_EXTENSION = ".json"
TIMESTAMP_FIELDS = ("date", "createdAt", "updatedAt")

# Stored timestamps that fail to parse are kept as the raw string.
Timestamp = Union[datetime, str]


class PostFormatError(ValueError):
    """Raised when a stored record cannot be interpreted as a post."""


def _as_text(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (str, datetime)):
        return value
    return str(value)


class PostBase(BaseModel):
    """Envelope fields shared by every post variant.

    Stored records are read leniently: ``null`` text fields become ``""``, a
    ``null`` ``isActive`` means active and a ``null`` ``metadata`` is empty.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    id: str = ""
    slug: str = ""
    title: str = ""
    date: Timestamp = ""
    description: str = ""
    created_at: Timestamp = ""
    updated_at: Timestamp = ""
    is_active: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)
    text: str = ""

    @field_validator(
        "id", "slug", "title", "description", "text",
        "date", "created_at", "updated_at",
        mode="before",
    )
    @classmethod
    def _null_text(cls, value: Any) -> Any:
        return _as_text(value)

    @field_validator("is_active", mode="before")
    @classmethod
    def _null_active(cls, value: Any) -> Any:
        return True if value is None else value

    @field_validator("metadata", mode="before")
    @classmethod
    def _null_metadata(cls, value: Any) -> Any:
        return value if isinstance(value, Mapping) else {}


class _ImagePost(PostBase):
    image: str | list[str] | None = None
    image_width: str = DEFAULT_IMAGE_WIDTH

    @field_validator("image", mode="before")
    @classmethod
    def _image_urls(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(item) for item in value if item is not None]
        return _as_text(value) or None

    @field_validator("image_width", mode="before")
    @classmethod
    def _default_width(cls, value: Any) -> Any:
        return _as_text(value) or DEFAULT_IMAGE_WIDTH


class WordsPost(PostBase):
    type: Literal["Words"] = WORDS


class LinesPost(_ImagePost):
    type: Literal["Lines"] = LINES


class MotionPost(PostBase):
    type: Literal["Motion"] = MOTION
    # Checked by ``validate_post`` rather than at parse time.
    video_url: Any = None


class SoundPost(_ImagePost):
    type: Literal["Sound"] = SOUND
    audio_url: str | None = None

    @field_validator("audio_url", mode="before")
    @classmethod
    def _blank_audio(cls, value: Any) -> Any:
        return _as_text(value) or None

    @property
    def audio_embed(self) -> str | None:
        return self.metadata.get("audioEmbed") or self.metadata.get("audioHtml")


class AboutPost(PostBase):
    type: Literal["About"] = ABOUT


Post = Annotated[
    Union[WordsPost, LinesPost, MotionPost, SoundPost, AboutPost],
    Field(discriminator="type"),
]

POST_MODELS: dict[str, type[PostBase]] = {
    WORDS: WordsPost,
    LINES: LinesPost,
    MOTION: MotionPost,
    SOUND: SoundPost,
    ABOUT: AboutPost,
}

_POST_ADAPTER: TypeAdapter[Post] = TypeAdapter(Post)

_WHITESPACE_RE = re.compile(r"\s+")
_INVALID_SLUG_CHARS_RE = re.compile(r"[^a-z0-9-]")
_HYPHEN_RUN_RE = re.compile(r"-+")


def slugify(title: str) -> str:
    """Return a URL and filename safe slug for ``title``."""
    slug = title.lower().strip()
    slug = _WHITESPACE_RE.sub("-", slug)
    slug = _INVALID_SLUG_CHARS_RE.sub("", slug)
    slug = _HYPHEN_RUN_RE.sub("-", slug)
    return slug.strip("-")


def utcnow() -> datetime:
    """Current UTC time truncated to the millisecond precision we store."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 value into an aware datetime, or ``None``.

    Date-only strings (``YYYY-MM-DD``) mean midnight UTC, as do naive values.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_iso(value: datetime) -> str:
    """Format ``value`` the way stored records carry timestamps."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (
        value.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def derive_path(post_type: str, date: Timestamp, slug: str) -> str:
    """Return the storage path for a post.

    About always lives at :data:`ABOUT_PATH`; every other type is stored as
    ``{type}/{YYYY-MM-DD}_{slug}.json``.
    """
    if post_type == ABOUT:
        return ABOUT_PATH
    if post_type not in POST_TYPES:
        raise ValueError(f"Unknown post type: {post_type!r}")
    parsed = parse_timestamp(date)
    if parsed is None:
        raise ValueError(f"Invalid post date: {date!r}")
    day = parsed.astimezone(timezone.utc).strftime("%Y-%m-%d")
    return f"{post_type}/{day}_{slug or PLACEHOLDER_SLUG}{STORAGE_EXTENSION}"


def new_post_id(post_type: str, now: datetime | None = None) -> str:
    """Identifier assigned to a post when it is first created."""
    now = now or utcnow()
    return f"{post_type.lower()}_{int(now.timestamp() * 1000)}"


def parse_image_input(text: str) -> str | list[str] | None:
    """Turn the comma separated image field into the stored value."""
    text = text.strip()
    if not text:
        return None
    if "," not in text:
        return text
    return [item.strip() for item in text.split(",") if item.strip()]


def format_image_input(value: str | list[str] | None) -> str:
    if isinstance(value, list):
        return ", ".join(value)
    return value or ""


def build_post(post_type: str, **fields: Any) -> Post:
    """Construct the variant model for ``post_type``."""
    try:
        model = POST_MODELS[post_type]
    except KeyError:
        raise ValueError(f"Unknown post type: {post_type!r}") from None
    return model(**fields)


def to_storage_record(post: PostBase) -> dict[str, Any]:
    """Serialize ``post`` into the JSON mapping written to the repository."""
    record = post.model_dump(by_alias=True)
    for key, value in record.items():
        if isinstance(value, datetime):
            record[key] = to_iso(value)
    return record


def from_storage_record(record: Mapping[str, Any]) -> Post:
    """Build a post from a stored JSON mapping.

    ``date``, ``createdAt`` and ``updatedAt`` are parsed into datetimes when
    they are valid timestamps and left untouched otherwise.
    """
    if not isinstance(record, Mapping):
        raise PostFormatError("Post record must be a JSON object")
    post_type = record.get("type")
    if post_type not in POST_TYPES:
        raise PostFormatError(f"Unknown post type: {post_type!r}")

    data = dict(record)
    for key in TIMESTAMP_FIELDS:
        if data.get(key) is None:
            data.pop(key, None)
            continue
        parsed = parse_timestamp(data[key])
        if parsed is not None:
            data[key] = parsed
    try:
        return _POST_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise PostFormatError(str(exc)) from exc


def validate_post(post: PostBase) -> list[str]:
    """Return human readable validation errors; empty when ``post`` is valid."""
    errors: list[str] = []
    if not post.title or not post.title.strip():
        errors.append("Title is required")
    if parse_timestamp(post.date) is None:
        errors.append("Valid date is required")
    if post.type == MOTION and post.video_url is not None:
        if not isinstance(post.video_url, str):
            errors.append("Video URL must be a string")
    return errors


__all__ = [
    "ABOUT",
    "ABOUT_PATH",
    "AboutPost",
    "CONTENT_FOLDERS",
    "DEFAULT_IMAGE_WIDTH",
    "LINES",
    "LinesPost",
    "MOTION",
    "MotionPost",
    "POST_MODELS",
    "POST_TYPES",
    "Post",
    "PostBase",
    "PostFormatError",
    "SOUND",
    "SoundPost",
    "WORDS",
    "WordsPost",
    "build_post",
    "derive_path",
    "format_image_input",
    "from_storage_record",
    "new_post_id",
    "parse_image_input",
    "parse_timestamp",
    "slugify",
    "to_iso",
    "to_storage_record",
    "utcnow",
]
