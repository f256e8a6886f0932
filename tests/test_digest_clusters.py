"""Unit tests for the rule-based digest and keyword clusters."""

import unittest

from src.models.datatypes import Article
from src.pipeline.clusters import (
    OTHER, assign_buckets, build_clusters, document_frequency, select_labels, tokenize,
)
from src.pipeline.digest import ELEVATED_COVERAGE_INSIGHT, RULE_BASED_INSIGHT, build_digest


def _article(title, slug, description=""):
    return Article(
        title=title,
        description=description,
        url=f"https://news.example.com/{slug}",
        source="Wire",
        published_at="2025-01-02T00:00:00Z",
    )


SAMPLE = [
    _article("Nvidia chips rally", "a"),
    _article("Nvidia earnings beat", "b"),
    _article("Oil prices slide", "c"),
    _article("Oil output rises", "d"),
    _article("Quiet weekend ahead", "e"),
    _article("Sports roundup tonight", "f"),
]


class TestDigest(unittest.TestCase):
    def test_bullets_unique_and_capped(self):
        articles = [_article(f"Headline {i}", str(i)) for i in range(7)]
        articles.insert(1, _article("headline  0", "dup"))
        digest = build_digest(articles)
        self.assertEqual(digest.bullets, [f"Headline {i}" for i in range(5)])
        self.assertEqual(digest.insights, [ELEVATED_COVERAGE_INSIGHT, RULE_BASED_INSIGHT])

    def test_quiet_day(self):
        digest = build_digest(SAMPLE)
        self.assertEqual(digest.insights, [RULE_BASED_INSIGHT])

    def test_empty(self):
        digest = build_digest([])
        self.assertEqual(digest.bullets, [])
        self.assertEqual(digest.insights, [RULE_BASED_INSIGHT])


class TestClusters(unittest.TestCase):
    def test_tokenize(self):
        self.assertEqual(tokenize("AI's big-chip push, in 2025!"), ["big", "chip", "push", "2025"])

    def test_document_frequency_counts_once_per_article(self):
        freq = document_frequency([["oil", "oil", "gas"], ["oil"]])
        self.assertEqual(freq, {"oil": 2, "gas": 1})

    def test_select_labels_fallback(self):
        self.assertEqual(select_labels({"alpha": 1, "beta": 1}), ["updates"])
        self.assertEqual(select_labels({"a1": 2, "b1": 3, "c1": 2}), ["b1", "a1", "c1"])

    def test_buckets_are_total(self):
        articles = SAMPLE + [_article(f"Nvidia oil misc {i}", f"x{i}") for i in range(4)]
        buckets = assign_buckets(articles)
        assigned = [a for bucket in buckets.values() for a in bucket]
        self.assertEqual(len(assigned), len(articles))
        self.assertCountEqual(assigned, articles)
        self.assertIn(OTHER, buckets)

    def test_known_grouping(self):
        clusters = build_clusters(SAMPLE)
        self.assertEqual([c.title for c in clusters], ["Nvidia", "Oil", "Other"])
        self.assertEqual(
            clusters[0].article_urls,
            ["https://news.example.com/a", "https://news.example.com/b"],
        )
        self.assertIn('"nvidia"', clusters[0].summary)
        self.assertEqual(len(clusters[2].article_urls), 2)

    def test_deterministic_and_bounded(self):
        articles = [
            _article(f"Chip {w} report {i}", f"{w}{i}", description=f"{w} outlook")
            for i, w in enumerate(["tsmc", "intel", "tsmc", "asml", "intel",
                                   "nvidia", "tsmc", "asml", "samsung", "intel"])
        ]
        first = build_clusters(articles)
        second = build_clusters(list(articles))
        self.assertEqual(first, second)
        self.assertLessEqual(len(first), 5)
        for cluster in first:
            self.assertLessEqual(len(cluster.article_urls), 3)

    def test_no_shared_tokens(self):
        clusters = build_clusters([_article("Alpha story", "1"), _article("Beta piece", "2")])
        self.assertEqual([c.title for c in clusters], ["Other"])
        self.assertEqual(build_clusters([_article("Lonely headline", "1")]), [])
        self.assertEqual(build_clusters([]), [])


if __name__ == "__main__":
    unittest.main()
