"""Data models for arXiv papers moving through the curation pipeline."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional


DEFAULT_CATEGORIES = ["cs.LG", "cs.AI", "cs.CL", "stat.ML"]

DEFAULT_KEYWORDS = [
    "reward",
    "rlhf",
    "alignment",
    "preference",
    "human feedback",
    "constitutional",
    "safety",
    "robustness",
    "evaluation",
    "benchmark",
    "inference",
    "post-training",
    "fine-tuning",
]


def parse_timestamp(raw: Optional[str]) -> Optional[datetime]:
    """Parse an RFC3339 feed timestamp, returning None when it is unusable."""
    if not raw or not isinstance(raw, str):
        return None

    value = raw.strip().replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class Paper:
    """Represents a single arXiv paper with the metadata the curator needs."""

    # Entry URL as returned by the feed, also the deduplication key
    id: str
    title: str
    authors: List[str] = field(default_factory=list)
    published: Optional[datetime] = None
    categories: List[str] = field(default_factory=list)

    # Filled in by later stages
    abstract: Optional[str] = None
    score: Optional[int] = None
    reasoning: Optional[str] = None

    @property
    def authors_text(self) -> str:
        return ", ".join(self.authors)

    def add_categories(self, categories: List[str]) -> None:
        """Merge categories into this paper, keeping first-seen order."""
        for category in categories:
            if category and category not in self.categories:
                self.categories.append(category)

    def to_dict(self) -> dict:
        """Convert paper to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "authors": self.authors,
            "published": self.published.isoformat() if self.published else None,
            "categories": self.categories,
            "abstract": self.abstract,
            "score": self.score,
            "reasoning": self.reasoning,
        }

    @staticmethod
    def from_dict(data: dict) -> "Paper":
        """
        Create a Paper from its dictionary form.

        Args:
            data: Dictionary produced by ``to_dict`` (possibly from another process)

        Returns:
            Paper: A Paper instance
        """
        authors = data.get("authors") or []
        if isinstance(authors, str):
            authors = [a.strip() for a in authors.split(",") if a.strip()]

        return Paper(
            id=data["id"],
            title=data.get("title", ""),
            authors=list(authors),
            published=parse_timestamp(data.get("published")),
            categories=list(data.get("categories") or []),
            abstract=data.get("abstract"),
            score=data.get("score"),
            reasoning=data.get("reasoning"),
        )


@dataclass
class TitlesResult:
    """Outcome of listing recent titles across categories."""

    total_papers: int
    papers_by_category: Dict[str, int]
    papers: List[Paper]

    def to_dict(self) -> dict:
        return {
            "total_papers": self.total_papers,
            "papers_by_category": self.papers_by_category,
            "papers": [p.to_dict() for p in self.papers],
        }

    @staticmethod
    def from_dict(data: dict) -> "TitlesResult":
        papers = [Paper.from_dict(p) for p in data.get("papers", [])]
        return TitlesResult(
            total_papers=data.get("total_papers", len(papers)),
            papers_by_category=dict(data.get("papers_by_category") or {}),
            papers=papers,
        )


@dataclass
class AbstractsResult:
    """Outcome of a batch abstract lookup."""

    requested: int
    fetched: int
    papers: List[Paper]

    def to_dict(self) -> dict:
        return {
            "requested": self.requested,
            "fetched": self.fetched,
            "papers": [p.to_dict() for p in self.papers],
        }

    @staticmethod
    def from_dict(data: dict) -> "AbstractsResult":
        papers = [Paper.from_dict(p) for p in data.get("papers", [])]
        return AbstractsResult(
            requested=data.get("requested", len(papers)),
            fetched=data.get("fetched", len(papers)),
            papers=papers,
        )


@dataclass
class FetchConfig:
    """Configuration for talking to the arXiv feed."""

    categories: List[str] = field(default_factory=lambda: list(DEFAULT_CATEGORIES))
    base_url: str = "http://export.arxiv.org/api"
    category_delay: float = 2.0
    paper_delay: float = 1.0

    # Bulk category queries vs. single-paper lookups
    max_attempts: int = 3
    base_delay: float = 1.0
    lookup_max_attempts: int = 2
    lookup_base_delay: float = 0.5

    @classmethod
    def from_dict(cls, config: dict) -> "FetchConfig":
        """Create FetchConfig from the ``arxiv`` config section."""
        return cls(
            categories=list(config.get("categories") or DEFAULT_CATEGORIES),
            base_url=config.get("base_url", "http://export.arxiv.org/api"),
            category_delay=config.get("category_delay", 2.0),
            paper_delay=config.get("paper_delay", 1.0),
            max_attempts=config.get("max_attempts", 3),
            base_delay=config.get("base_delay", 1.0),
            lookup_max_attempts=config.get("lookup_max_attempts", 2),
            lookup_base_delay=config.get("lookup_base_delay", 0.5),
        )


@dataclass
class FilterConfig:
    """Configuration for the filtering funnel."""

    papers_per_category: int = 50
    days_back: int = 2
    max_candidates: int = 10
    min_score: int = 5
    keywords: List[str] = field(default_factory=lambda: list(DEFAULT_KEYWORDS))

    @classmethod
    def from_dict(cls, config: dict) -> "FilterConfig":
        """Create FilterConfig from the ``filter`` config section."""
        return cls(
            papers_per_category=config.get("papers_per_category", 50),
            days_back=config.get("days_back", 2),
            max_candidates=config.get("max_candidates", 10),
            min_score=config.get("min_score", 5),
            keywords=list(config.get("keywords") or DEFAULT_KEYWORDS),
        )
