"""Tests for data models."""

import unittest
from datetime import datetime, timezone

from curator.models import (
    DEFAULT_CATEGORIES,
    FetchConfig,
    FilterConfig,
    Paper,
    TitlesResult,
    parse_timestamp,
)


class TestPaper(unittest.TestCase):
    """Test Paper model."""

    def setUp(self):
        """Set up test data."""
        self.paper = Paper(
            id="http://arxiv.org/abs/2501.12345v1",
            title="Test Paper on Reward Models",
            authors=["Alice Smith", "Bob Jones"],
            published=datetime(2025, 1, 15, tzinfo=timezone.utc),
            categories=["cs.AI"],
        )

    def test_paper_creation(self):
        """Test paper creation."""
        self.assertEqual(self.paper.title, "Test Paper on Reward Models")
        self.assertEqual(len(self.paper.authors), 2)
        self.assertIsNone(self.paper.abstract)
        self.assertIsNone(self.paper.score)
        self.assertEqual(self.paper.authors_text, "Alice Smith, Bob Jones")

    def test_add_categories_is_a_union(self):
        self.paper.add_categories(["cs.LG", "cs.AI", ""])
        self.assertEqual(self.paper.categories, ["cs.AI", "cs.LG"])

    def test_dict_round_trip(self):
        """Test conversion to and from dictionary."""
        data = self.paper.to_dict()
        self.assertEqual(data["published"], "2025-01-15T00:00:00+00:00")
        self.assertIsNone(data["reasoning"])

        restored = Paper.from_dict(data)
        self.assertEqual(restored, self.paper)

    def test_from_dict_accepts_joined_authors(self):
        paper = Paper.from_dict({"id": "x", "title": "T", "authors": "A, B"})
        self.assertEqual(paper.authors, ["A", "B"])
        self.assertIsNone(paper.published)

    def test_titles_result_from_dict(self):
        result = TitlesResult.from_dict(
            {
                "total_papers": 1,
                "papers_by_category": {"cs.AI": 1},
                "papers": [self.paper.to_dict()],
            }
        )
        self.assertEqual(result.papers[0].id, self.paper.id)
        self.assertEqual(result.papers_by_category, {"cs.AI": 1})


class TestParseTimestamp(unittest.TestCase):
    def test_zulu_suffix(self):
        parsed = parse_timestamp("2025-01-15T18:00:00Z")
        self.assertEqual(parsed, datetime(2025, 1, 15, 18, tzinfo=timezone.utc))

    def test_naive_is_treated_as_utc(self):
        parsed = parse_timestamp("2025-01-15T18:00:00")
        self.assertEqual(parsed.tzinfo, timezone.utc)

    def test_garbage(self):
        self.assertIsNone(parse_timestamp("yesterday"))
        self.assertIsNone(parse_timestamp(None))
        self.assertIsNone(parse_timestamp(""))


class TestConfigs(unittest.TestCase):
    def test_fetch_config_defaults(self):
        config = FetchConfig.from_dict({})
        self.assertEqual(config.categories, DEFAULT_CATEGORIES)
        self.assertEqual(config.max_attempts, 3)
        self.assertEqual(config.lookup_max_attempts, 2)
        self.assertEqual(config.category_delay, 2.0)

    def test_filter_config_from_dict(self):
        config = FilterConfig.from_dict({"days_back": 7, "keywords": ["agents"]})
        self.assertEqual(config.days_back, 7)
        self.assertEqual(config.keywords, ["agents"])
        self.assertEqual(config.max_candidates, 10)
        self.assertEqual(config.min_score, 5)


if __name__ == "__main__":
    unittest.main()
