#!/usr/bin/env python3
"""
arXiv Curator - Main entry point

Fetches recent arXiv titles through a worker process, narrows them with date
and keyword filters, and scores the survivors with a local Llama model.
"""

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from curator import (
    ArxivFeedSource,
    CurationPipeline,
    CurationResult,
    FetchConfig,
    FilterConfig,
    RelevanceScorer,
    ScorerConfig,
)
from curator.channel import DEFAULT_REQUEST_TIMEOUT, WorkerChannel, WorkerClient
from curator.protocol import WorkerStartError

logger = logging.getLogger(__name__)


def setup_logging(config: dict) -> None:
    """Configure logging based on config."""
    log_config = config.get("logging", {})

    log_file = log_config.get("log_file", "logs/curator.log")
    level = getattr(logging, str(log_config.get("level", "INFO")).upper(), logging.INFO)
    handlers = []

    # File handler
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        handlers.append(file_handler)

    # Console handler
    if log_config.get("console_output", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        handlers.append(console_handler)

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def load_config(config_path: str = "config/config.yaml") -> dict:
    """Load configuration from YAML file; a missing file means defaults."""
    path = Path(config_path)
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Llama-powered arXiv curator")
    parser.add_argument(
        "--config",
        default="config/config.yaml",
        help="Path to configuration file",
    )
    parser.add_argument("--papers", type=int, default=None, help="Papers per category (default: 50)")
    parser.add_argument("--days", type=int, default=None, help="Days to look back (default: 2)")
    parser.add_argument("--candidates", type=int, default=None, help="Max keyword candidates (default: 10)")
    parser.add_argument("--min-score", type=int, default=None, help="Minimum Llama score (default: 5)")
    parser.add_argument(
        "--in-process",
        action="store_true",
        help="Query arXiv directly instead of through the worker process",
    )
    return parser.parse_args(argv)


def build_filter_config(config: dict, args: argparse.Namespace) -> FilterConfig:
    filter_config = FilterConfig.from_dict(config.get("filter", {}))
    if args.papers is not None:
        filter_config.papers_per_category = args.papers
    if args.days is not None:
        filter_config.days_back = args.days
    if args.candidates is not None:
        filter_config.max_candidates = args.candidates
    if args.min_score is not None:
        filter_config.min_score = args.min_score
    return filter_config


def display_results(results: CurationResult) -> None:
    """Log a human-readable report of the run."""
    logger.info("=" * 80)
    logger.info("LLAMA-POWERED ARXIV CURATOR RESULTS")
    logger.info("=" * 80)

    if not results.relevant:
        logger.info("No highly relevant papers found")
        logger.info("Try:")
        logger.info("  - Lowering --min-score")
        logger.info("  - Increasing --candidates or --days")
        logger.info("  - Checking that Ollama is running: ollama serve")
    else:
        for i, paper in enumerate(results.relevant, 1):
            logger.info(f"\nPAPER {i} - Llama Score: {paper.score}/10")
            logger.info(f"Title: {paper.title}")
            logger.info(f"Authors: {paper.authors_text}")
            if paper.published:
                logger.info(f"Published: {paper.published.date().isoformat()}")
            logger.info(f"Categories: {', '.join(paper.categories) or 'Unknown'}")
            logger.info(f"URL: {paper.id}")
            logger.info(f"Llama Analysis: {paper.reasoning}")
            logger.info(f"Abstract: {(paper.abstract or '')[:400]}...")
            logger.info("-" * 80)

    logger.info("SUMMARY:")
    logger.info(f"  Total papers scanned: {results.total_scanned}")
    logger.info(f"  Recent papers (last {results.days_back} days): {results.recent_papers}")
    logger.info(f"  Keyword candidates: {results.candidates}")
    logger.info(f"  Llama analyzed: {len(results.analyzed)}")
    logger.info(f"  Highly relevant: {len(results.relevant)}")

    if results.average_score is not None:
        logger.info(f"  Average Llama score: {results.average_score:.1f}/10")


def _terminate(signum, frame):
    raise KeyboardInterrupt


def main(argv: Optional[List[str]] = None) -> int:
    """Main execution function."""
    args = parse_args(argv)
    config = load_config(args.config)
    setup_logging(config)

    fetch_config = FetchConfig.from_dict(config.get("arxiv", {}))
    filter_config = build_filter_config(config, args)
    scorer_config = ScorerConfig.from_dict(config.get("scorer", {}))
    worker_config = config.get("worker", {})
    in_process = args.in_process or worker_config.get("in_process", False)

    logger.info("LLAMA ARXIV CURATOR CONFIGURATION:")
    logger.info(f"  Papers per category: {filter_config.papers_per_category}")
    logger.info(f"  Days back: {filter_config.days_back}")
    logger.info(f"  Max candidates: {filter_config.max_candidates}")
    logger.info(f"  Min Llama score: {filter_config.min_score}")
    logger.info(f"  Model: {scorer_config.model}")

    signal.signal(signal.SIGTERM, _terminate)

    client = None
    try:
        if in_process:
            source = ArxivFeedSource(fetch_config)
        else:
            channel = WorkerChannel.spawn(
                fetch_config=fetch_config,
                request_timeout=worker_config.get("request_timeout", DEFAULT_REQUEST_TIMEOUT),
            )
            client = WorkerClient(channel)
            client.initialize()
            logger.info("Connected to worker")
            source = client

        pipeline = CurationPipeline(
            source,
            RelevanceScorer(scorer_config),
            filter_config,
            score_delay=scorer_config.delay,
        )
        results = pipeline.run()
        display_results(results)
        return 0

    except WorkerStartError as e:
        logger.error(f"Error: {e}")
        logger.info("Troubleshooting:")
        logger.info("  1. Make sure the package is installed: pip install -e .")
        logger.info("  2. Try --in-process to skip the worker process")
        return 1
    except KeyboardInterrupt:
        logger.info("Shutting down arXiv curator...")
        return 130
    except Exception as e:
        logger.error(f"Curation failed: {e}", exc_info=True)
        raise
    finally:
        if client is not None:
            client.close()


if __name__ == "__main__":
    sys.exit(main())
