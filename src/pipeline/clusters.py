"""Keyword clustering of a theme's articles.

Labels are the tokens that appear in the most articles (document frequency,
counted once per article). Each article joins the first label it contains;
everything else lands in an "other" bucket.
"""

import re
from typing import Dict, List

from src.core.news_utils import canonicalize_url, unique_strings
from src.models.datatypes import Article, Cluster

STOPWORDS = frozenset({
    "the", "and", "for", "with", "from", "that", "this", "are", "was", "were",
    "into", "over", "will", "just", "than", "then", "they", "their", "about",
    "after", "before", "today", "says", "said", "onto", "have", "has",
    "had", "you", "your", "its", "also", "not", "but", "new", "more", "most",
    "can", "could", "would", "should", "may", "might", "when", "what",
    "why", "how", "who", "where", "which", "market", "stocks", "stock",
})

MIN_ARTICLE_COUNT = 2
MAX_LABELS = 4
MAX_CLUSTERS = 5
MIN_OTHER_ARTICLES = 2
FALLBACK_LABEL = "updates"
# Tokens are [a-z0-9] only, so this key cannot collide with a label
OTHER = "_other"

OTHER_SUMMARY = "Stories that did not match the main keywords. (Keyword-based MVP)"

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def tokenize(text: str) -> List[str]:
    """Lowercase, turn punctuation into spaces, keep tokens of 3+ characters."""
    cleaned = _NON_ALNUM.sub(" ", (text or "").lower())
    return [t for t in cleaned.split() if len(t) >= 3]


def article_tokens(article: Article) -> List[str]:
    return [t for t in tokenize(f"{article.title} {article.description}") if t not in STOPWORDS]


def document_frequency(token_lists: List[List[str]]) -> Dict[str, int]:
    """Number of articles each token appears in, in first-seen order."""
    freq: Dict[str, int] = {}
    for tokens in token_lists:
        for word in dict.fromkeys(tokens):
            freq[word] = freq.get(word, 0) + 1
    return freq


def select_labels(freq: Dict[str, int]) -> List[str]:
    """Top tokens shared by at least two articles, or ``["updates"]`` if none are."""
    candidates = [(word, count) for word, count in freq.items() if count >= MIN_ARTICLE_COUNT]
    # Stable: ties keep first-seen order
    candidates.sort(key=lambda pair: pair[1], reverse=True)
    labels = [word for word, _ in candidates[:MAX_LABELS]]
    return labels or [FALLBACK_LABEL]


def assign_buckets(articles: List[Article]) -> Dict[str, List[Article]]:
    """Map each selected label (in priority order), then ``OTHER``, to its articles.

    Every article lands in exactly one bucket.
    """
    token_lists = [article_tokens(a) for a in articles]
    labels = select_labels(document_frequency(token_lists))

    buckets: Dict[str, List[Article]] = {label: [] for label in labels}
    buckets[OTHER] = []

    for article, tokens in zip(articles, token_lists):
        token_set = set(tokens)
        target = next((label for label in labels if label in token_set), OTHER)
        buckets[target].append(article)

    return buckets


def _bucket_urls(bucket: List[Article], max_urls: int) -> List[str]:
    urls = (canonicalize_url(a.url) for a in bucket)
    return unique_strings(u for u in urls if u)[:max_urls]


def build_clusters(articles: List[Article], max_urls: int = 3) -> List[Cluster]:
    """
    Group articles into at most five keyword clusters, "Other" last.

    Args:
        articles: The theme's articles.
        max_urls: Maximum article URLs listed per cluster.

    Returns:
        List[Cluster]: Label clusters in priority order, then an optional
        "Other" cluster when at least two articles matched no label.
    """
    if not articles:
        return []

    buckets = assign_buckets(articles)
    clusters: List[Cluster] = []

    for label, bucket in buckets.items():
        if label == OTHER or not bucket:
            continue
        clusters.append(Cluster(
            title=label[:1].upper() + label[1:],
            summary=(
                f'Grouped stories where "{label}" appears frequently in '
                f"titles/descriptions. (Keyword-based MVP)"
            ),
            article_urls=_bucket_urls(bucket, max_urls),
        ))

    other = buckets[OTHER]
    if len(other) >= MIN_OTHER_ARTICLES and len(clusters) < MAX_CLUSTERS:
        clusters.append(Cluster(
            title="Other",
            summary=OTHER_SUMMARY,
            article_urls=_bucket_urls(other, max_urls),
        ))

    return clusters[:MAX_CLUSTERS]
