"""Load the posts shown for one site section."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone

from services.content_repo import ContentRepoError
from shared.logging import log_debug, log_error, log_info
from shared.posts import (
    ABOUT,
    ABOUT_PATH,
    PostBase,
    PostFormatError,
    from_storage_record,
    parse_timestamp,
)

from .gateway import ContentGateway

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class SectionState:
    """Loading/error/data result for one section."""

    section: str
    loading: bool = False
    error: str | None = None
    posts: list[PostBase] = field(default_factory=list)


def _sort_key(post: PostBase) -> datetime:
    return parse_timestamp(post.date) or _OLDEST


async def fetch_section(gateway: ContentGateway, section: str) -> list[PostBase]:
    """List, fetch, parse, filter and sort the posts of ``section``.

    Any file that fails to load fails the whole section, unlike the ``All``
    listing which skips folders that cannot be listed.
    """
    entries = await gateway.list_folder(section)
    stored = await asyncio.gather(*(gateway.get_file(entry.path) for entry in entries))
    active = [
        item.content
        for item in stored
        if isinstance(item.content, dict) and item.content.get("isActive") is True
    ]
    posts = [from_storage_record(record) for record in active]
    posts.sort(key=_sort_key, reverse=True)
    return posts


class SectionLoader:
    """Holds the current section state; a newer load supersedes older ones."""

    def __init__(self, gateway: ContentGateway) -> None:
        self._gateway = gateway
        self._generation = 0
        self.state = SectionState(section="")

    def cancel(self) -> None:
        """Discard the result of any load still in flight."""
        self._generation += 1

    async def load(self, section: str) -> SectionState:
        self._generation += 1
        generation = self._generation
        self.state = SectionState(section=section, loading=True)

        if section == ABOUT:
            result = SectionState(section=section)
        else:
            try:
                posts = await fetch_section(self._gateway, section)
            except (ContentRepoError, PostFormatError) as exc:
                message = getattr(exc, "message", None) or str(exc)
                log_error("section_failed", section=section, error_message=message)
                result = SectionState(section=section, error=message)
            else:
                log_info("section_loaded", section=section, count=len(posts))
                result = SectionState(section=section, posts=posts)

        if generation != self._generation:
            log_debug("section_discarded", section=section)
            return result
        self.state = result
        return result

    async def load_about(self) -> SectionState:
        """Fetch the singleton About post."""
        self._generation += 1
        generation = self._generation
        self.state = SectionState(section=ABOUT, loading=True)
        try:
            stored = await self._gateway.get_file(ABOUT_PATH)
            about = from_storage_record(stored.content)
        except (ContentRepoError, PostFormatError) as exc:
            message = getattr(exc, "message", None) or str(exc)
            log_error("about_failed", error_message=message)
            result = SectionState(section=ABOUT, error=message)
        else:
            result = SectionState(section=ABOUT, posts=[about])

        if generation == self._generation:
            self.state = result
        return result


__all__ = ["SectionLoader", "SectionState", "fetch_section"]
