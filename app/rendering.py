from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from app_config import content_settings
from errors import RenderFailure
from highlight import highlight_code_blocks
from markdown_parser import to_html
from sanitize import COMMENT_ALLOWLIST, TRUSTED_ALLOWLIST, sanitize


logger = logging.getLogger(__name__)


class ContentTier(str, Enum):
    # admin-authored post bodies
    trusted = "trusted"
    # comments from any signed-in account
    public = "public"


@dataclass(frozen=True)
class RenderedContent:
    """Raw markdown and the HTML derived from it; persisted together."""

    raw: str
    html: str


def _pipeline(source: str, tier: ContentTier) -> str:
    # Order is fixed: parse -> highlight -> sanitize.
    # Sanitizing any earlier would let highlight markup reach the page unchecked.
    fragment = to_html(source)
    fragment = highlight_code_blocks(fragment)
    if tier == ContentTier.public:
        return sanitize(fragment, COMMENT_ALLOWLIST)
    if content_settings.SANITIZE_TRUSTED_CONTENT:
        return sanitize(fragment, TRUSTED_ALLOWLIST)
    return fragment


def render(source: str, tier: ContentTier) -> str:
    """Render markdown to an HTML fragment for the given trust tier.

    Empty input yields ``""``. Any internal failure raises ``RenderFailure``;
    partial or unsanitized output is never returned.
    """
    try:
        tier = ContentTier(tier)
        if not source:
            return ""
        return _pipeline(source, tier)
    except Exception as e:
        logger.exception(
            "markdown render failed: tier=%s length=%d", getattr(tier, "value", tier), len(source or "")
        )
        raise RenderFailure("Failed to render content") from e


async def render_async(source: str, tier: ContentTier) -> str:
    # CPU-bound; keep it off the event loop.
    return await asyncio.to_thread(render, source, tier)


async def render_content(source: str, tier: ContentTier) -> RenderedContent:
    return RenderedContent(raw=source, html=await render_async(source, tier))


async def render_preview(source: str) -> str:
    """Editor preview for admin-authored bodies."""
    if not source:
        return ""
    return await render_async(source, ContentTier.trusted)
