"""arXiv Curator - fetch, filter and score recent arXiv papers with a local LLM."""

__version__ = "1.0.0"

from .models import Paper, FetchConfig, FilterConfig, TitlesResult, AbstractsResult
from .backoff import BackoffFetcher
from .parser import FeedParseError, parse_feed
from .fetcher import ArxivFeedSource
from .scorer import RelevanceScorer, ScorerConfig
from .pipeline import CurationPipeline, CurationResult

__all__ = [
    "Paper",
    "FetchConfig",
    "FilterConfig",
    "TitlesResult",
    "AbstractsResult",
    "BackoffFetcher",
    "FeedParseError",
    "parse_feed",
    "ArxivFeedSource",
    "RelevanceScorer",
    "ScorerConfig",
    "CurationPipeline",
    "CurationResult",
]
