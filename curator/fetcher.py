"""arXiv feed operations: recent titles per category and abstract lookups."""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import requests

from .backoff import BackoffFetcher
from .models import AbstractsResult, FetchConfig, Paper, TitlesResult
from .parser import FeedParseError, parse_feed

logger = logging.getLogger(__name__)

MAX_PAPERS_PER_CATEGORY = 200
DEFAULT_PAPERS_PER_CATEGORY = 100
MAX_ABSTRACT_BATCH = 20

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def short_id(url: str) -> str:
    """Derive the arXiv short id (e.g. ``2501.01234v1``) from an abs URL."""
    value = url.strip().rstrip("/")
    if "/abs/" in value:
        value = value.split("/abs/", 1)[1]
    return value


def deduplicate_papers(papers: List[Paper]) -> List[Paper]:
    """
    Remove duplicate papers based on id.

    The first occurrence is kept; categories of later duplicates are merged
    into it.
    """
    by_id: Dict[str, Paper] = {}
    for paper in papers:
        existing = by_id.get(paper.id)
        if existing is None:
            by_id[paper.id] = paper
        else:
            existing.add_categories(paper.categories)
    return list(by_id.values())


class ArxivFeedSource:
    """Worker-side operations against the public arXiv API."""

    def __init__(
        self,
        config: Optional[FetchConfig] = None,
        fetcher: Optional[BackoffFetcher] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the source.

        Args:
            config: FetchConfig with categories, endpoint and pacing
            fetcher: BackoffFetcher used for every request
            sleep: Function used for pacing between requests
        """
        self.config = config or FetchConfig()
        self.fetcher = fetcher or BackoffFetcher(sleep=sleep)
        self.sleep = sleep

    def category_url(self, category: str, max_results: int) -> str:
        return (
            f"{self.config.base_url}/query?search_query=cat:{category}"
            f"&start=0&max_results={max_results}"
            f"&sortBy=submittedDate&sortOrder=descending"
        )

    def lookup_url(self, arxiv_id: str) -> str:
        return f"{self.config.base_url}/query?id_list={arxiv_id}"

    def get_all_titles(self, papers_per_category: int = DEFAULT_PAPERS_PER_CATEGORY) -> TitlesResult:
        """
        Fetch the newest papers of every configured category.

        A category whose fetch or parse fails is skipped.

        Args:
            papers_per_category: Number of newest entries per category (max 200)

        Returns:
            TitlesResult with deduplicated papers, newest first
        """
        papers_per_category = min(int(papers_per_category), MAX_PAPERS_PER_CATEGORY)
        categories = self.config.categories
        logger.info(f"Fetching {papers_per_category} titles from each category")

        all_papers: List[Paper] = []
        counts: Dict[str, int] = {}

        for index, category in enumerate(categories):
            logger.info(f"Fetching {category}...")
            counts[category] = 0
            url = self.category_url(category, papers_per_category)

            try:
                body = self.fetcher.fetch(
                    url,
                    max_attempts=self.config.max_attempts,
                    base_delay=self.config.base_delay,
                )
                papers = parse_feed(body)
            except (requests.RequestException, FeedParseError) as e:
                logger.error(f"Error fetching papers from {category}: {e}")
                papers = None

            if papers is not None:
                for paper in papers:
                    # Listing carries titles only
                    paper.abstract = None
                    paper.add_categories([category])
                all_papers.extend(papers)
                counts[category] = len(papers)
                logger.info(f"Fetched {len(papers)} papers from {category}")

            if index < len(categories) - 1:
                self.sleep(self.config.category_delay)

        unique_papers = deduplicate_papers(all_papers)
        unique_papers.sort(key=lambda p: p.published or _OLDEST, reverse=True)
        logger.info(f"Total unique papers fetched: {len(unique_papers)}")

        return TitlesResult(
            total_papers=len(unique_papers),
            papers_by_category=counts,
            papers=unique_papers,
        )

    def get_abstracts_for_papers(self, paper_urls: List[str]) -> AbstractsResult:
        """
        Look up full abstracts for up to 20 papers, one request per paper.

        Papers whose lookup fails are left out of the result.

        Args:
            paper_urls: arXiv entry URLs (only the first 20 are used)

        Returns:
            AbstractsResult with the papers that were fetched
        """
        paper_urls = list(paper_urls)[:MAX_ABSTRACT_BATCH]
        total = len(paper_urls)
        logger.info(f"Fetching abstracts for {total} papers")

        details: List[Paper] = []
        for i, url in enumerate(paper_urls):
            logger.info(f"Fetching {i + 1}/{total}: {url}")

            try:
                body = self.fetcher.fetch(
                    self.lookup_url(short_id(url)),
                    max_attempts=self.config.lookup_max_attempts,
                    base_delay=self.config.lookup_base_delay,
                )
                papers = parse_feed(body)
            except (requests.RequestException, FeedParseError) as e:
                logger.warning(f"  Failed: {e}")
                papers = []
            else:
                if not papers:
                    logger.warning("  No data found")

            if papers:
                paper = papers[0]
                if paper.abstract:
                    details.append(paper)
                    logger.info("  Success")
                else:
                    logger.warning("  Entry has no abstract")

            if i < total - 1:
                self.sleep(self.config.paper_delay)

        logger.info(f"Successfully fetched {len(details)}/{total} abstracts")
        return AbstractsResult(requested=total, fetched=len(details), papers=details)
