"""Atom feed parsing for arXiv API responses."""

import io
import logging
import re
from typing import List

import feedparser

from .models import Paper, parse_timestamp

logger = logging.getLogger(__name__)


class FeedParseError(ValueError):
    """Raised when a feed body is not well-formed Atom."""


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def parse_feed(raw: str) -> List[Paper]:
    """
    Parse an arXiv Atom response into Paper records.

    Args:
        raw: Response body as returned by the arXiv API

    Returns:
        List of Paper objects (empty when the feed has no entries)

    Raises:
        FeedParseError: If the markup is malformed
    """
    parsed = feedparser.parse(io.BytesIO(raw.encode("utf-8")))

    if parsed.bozo and not isinstance(parsed.bozo_exception, feedparser.CharacterEncodingOverride):
        raise FeedParseError(f"Malformed feed: {parsed.bozo_exception}")

    papers = []
    for entry in parsed.entries:
        entry_id = entry.get("id")
        if not entry_id:
            logger.debug("Skipping feed entry without id")
            continue

        summary = entry.get("summary")
        papers.append(
            Paper(
                id=entry_id,
                title=_collapse(entry.get("title", "")),
                authors=[a.get("name", "").strip() for a in entry.get("authors", []) if a.get("name")],
                published=parse_timestamp(entry.get("published")),
                categories=[t.get("term") for t in entry.get("tags", []) if t.get("term")],
                abstract=_collapse(summary) if summary else None,
            )
        )

    return papers
