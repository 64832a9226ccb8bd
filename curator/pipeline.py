"""Staged curation funnel: titles -> recent -> keyword candidates -> abstracts -> scores."""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Protocol, Sequence

from .models import AbstractsResult, FilterConfig, Paper, TitlesResult
from .scorer import RelevanceScorer

logger = logging.getLogger(__name__)


class FeedSource(Protocol):
    def get_all_titles(self, papers_per_category: int) -> TitlesResult:
        ...

    def get_abstracts_for_papers(self, paper_urls: List[str]) -> AbstractsResult:
        ...


@dataclass
class CurationResult:
    """Summary of one curation run."""

    total_scanned: int
    recent_papers: int
    days_back: int
    candidates: int
    analyzed: List[Paper] = field(default_factory=list)
    relevant: List[Paper] = field(default_factory=list)

    @property
    def average_score(self) -> Optional[float]:
        if not self.analyzed:
            return None
        return sum(p.score or 0 for p in self.analyzed) / len(self.analyzed)

    def to_dict(self) -> dict:
        return {
            "total_scanned": self.total_scanned,
            "recent_papers": self.recent_papers,
            "days_back": self.days_back,
            "candidates": self.candidates,
            "analyzed": [p.to_dict() for p in self.analyzed],
            "relevant": [p.to_dict() for p in self.relevant],
        }


def filter_recent(papers: Sequence[Paper], days_back: int, now: datetime) -> List[Paper]:
    """Keep papers published at or after ``now - days_back``; undated papers are dropped."""
    cutoff = now - timedelta(days=days_back)
    return [p for p in papers if p.published is not None and p.published >= cutoff]


def filter_by_keywords(papers: Sequence[Paper], keywords: Sequence[str], limit: int) -> List[Paper]:
    """Case-insensitive substring match of keywords against title and authors."""
    lowered = [kw.lower() for kw in keywords if kw]
    matches = []
    for paper in papers:
        text = f"{paper.title} {paper.authors_text}".lower()
        if any(kw in text for kw in lowered):
            matches.append(paper)
    return matches[: max(0, limit)]


def rank_relevant(papers: Sequence[Paper], min_score: int) -> List[Paper]:
    """Keep papers scoring at least ``min_score``, highest first (ties keep order)."""
    kept = [p for p in papers if (p.score or 0) >= min_score]
    return sorted(kept, key=lambda p: p.score or 0, reverse=True)


class CurationPipeline:
    """Runs the curation funnel against a feed source and a scorer."""

    def __init__(
        self,
        source: FeedSource,
        scorer: RelevanceScorer,
        config: Optional[FilterConfig] = None,
        score_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """
        Initialize the pipeline.

        Args:
            source: Provides titles and abstracts (worker client or in-process source)
            scorer: RelevanceScorer used for every abstract-bearing candidate
            config: FilterConfig with funnel parameters
            score_delay: Seconds to wait between scoring calls
            sleep: Function used for pacing
            clock: Returns the current UTC time
        """
        self.source = source
        self.scorer = scorer
        self.config = config or FilterConfig()
        self.score_delay = score_delay
        self.sleep = sleep
        self.clock = clock

    def run(self) -> CurationResult:
        cfg = self.config

        logger.info("[1/4] Fetching recent titles...")
        titles = self.source.get_all_titles(cfg.papers_per_category)

        recent = filter_recent(titles.papers, cfg.days_back, self.clock())
        logger.info(f"Found {len(recent)} papers from last {cfg.days_back} days")

        logger.info("[2/4] Filtering by keywords...")
        candidates = filter_by_keywords(recent, cfg.keywords, cfg.max_candidates)
        logger.info(f"Found {len(candidates)} keyword-filtered candidates")

        if not candidates:
            logger.info("No relevant papers found in keyword filtering")
            return CurationResult(
                total_scanned=titles.total_papers,
                recent_papers=len(recent),
                days_back=cfg.days_back,
                candidates=0,
            )

        logger.info("[3/4] Fetching abstracts...")
        abstracts = self.source.get_abstracts_for_papers([p.id for p in candidates])
        logger.info(f"Retrieved {abstracts.fetched} abstracts")

        logger.info("[4/4] Scoring with the language model...")
        analyzed = self._score_all([p for p in abstracts.papers if p.abstract])

        relevant = rank_relevant(analyzed, cfg.min_score)
        logger.info(f"Found {len(relevant)} papers scoring {cfg.min_score}+ points")

        return CurationResult(
            total_scanned=titles.total_papers,
            recent_papers=len(recent),
            days_back=cfg.days_back,
            candidates=len(candidates),
            analyzed=analyzed,
            relevant=relevant,
        )

    def _score_all(self, papers: List[Paper]) -> List[Paper]:
        for i, paper in enumerate(papers):
            logger.info(f"Analyzing {i + 1}/{len(papers)}: {paper.title[:50]}...")
            result = self.scorer.score(paper)
            paper.score = result.score
            paper.reasoning = result.reasoning
            logger.debug(f"Model response for {paper.id}: {result.full_response}")

            if i < len(papers) - 1:
                self.sleep(self.score_delay)
        return papers
