"""Utility helpers for the news pipeline: URL canonicalization, dedup, host
denylist and the AI-theme relevance score."""

import re
from typing import Iterable, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from src.models.datatypes import Article

# Query parameters that only carry click-tracking state. ``utm_*`` is matched by prefix.
TRACKING_PARAMS = frozenset({
    "gclid", "fbclid", "mc_cid", "mc_eid", "ref", "ref_src", "igshid",
})

BLOCKED_HOSTS = frozenset({
    "pypi.org",
    "alltoc.com",
})

# Phrases where "AI" does not mean artificial intelligence.
FALSE_POSITIVE_PHRASES = ["air india", "all india", "aiadmk", "aiims"]

PHRASE_SIGNALS = [
    "artificial intelligence",
    "generative ai",
    "machine learning",
    "deep learning",
    "large language model",
    "language model",
    "foundation model",
    "ai safety",
    "model safety",
    "ai regulation",
    "data center",
    "datacenter",
    "ai chip",
]

TOKEN_SIGNALS = [
    "llm", "gpt", "chatgpt", "openai", "anthropic", "claude", "gemini",
    "deepmind", "nvidia", "gpu", "inference", "training", "transformer",
    "neural", "cuda",
]

_TOKEN_PATTERNS = [re.compile(rf"\b{re.escape(t)}\b", re.IGNORECASE) for t in TOKEN_SIGNALS]
_BARE_AI = re.compile(r"\bai\b", re.IGNORECASE)

STRONG_SCORE = 2
MIN_STRONG_ARTICLES = 6
MAX_WEAK_ARTICLES = 15


def normalize_text(value: Optional[str]) -> str:
    """Trim, lowercase and collapse internal whitespace."""
    return re.sub(r"\s+", " ", str(value or "").strip().lower())


def unique_strings(items: Iterable[str]) -> List[str]:
    """Keep the first occurrence of each string, comparing normalized text.

    Strings that normalize to empty are dropped.
    """
    seen = set()
    out = []
    for item in items:
        key = normalize_text(item)
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(item)
    return out


def _is_tracking_param(key: str) -> bool:
    lowered = key.lower()
    return lowered.startswith("utm_") or lowered in TRACKING_PARAMS


def canonicalize_url(raw: Optional[str]) -> str:
    """Strip tracking parameters, the fragment and trailing slashes from a URL.

    Examples:
        ``"https://x.com/a/?utm_source=t&id=4#top"`` → ``"https://x.com/a?id=4"``

    Strings that are not absolute URLs are returned stripped but otherwise
    unchanged. The operation is idempotent.
    """
    text = str(raw or "").strip()
    try:
        parts = urlsplit(text)
    except ValueError:
        return text
    if not parts.scheme or not parts.netloc:
        return text

    query = parts.query
    if query:
        pairs = parse_qsl(query, keep_blank_values=True)
        kept = [(k, v) for k, v in pairs if not _is_tracking_param(k)]
        if len(kept) != len(pairs):
            query = urlencode(kept)

    path = parts.path
    if path.endswith("/"):
        path = path.rstrip("/") or "/"

    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, query, ""))


def dedupe_key(article: Article) -> Optional[str]:
    """Identity of an article: canonical URL, else normalized title + source."""
    url = canonicalize_url(article.url)
    if url:
        return f"url:{url}"
    title_key = normalize_text(article.title)
    if title_key:
        return f"t:{title_key}|s:{normalize_text(article.source)}"
    return None


def dedupe_articles(articles: Iterable[Article]) -> List[Article]:
    """Drop repeated articles (first occurrence wins) and keyless ones.

    Surviving articles carry their canonical URL.
    """
    seen = set()
    out: List[Article] = []
    for article in articles:
        key = dedupe_key(article)
        if key is None or key in seen:
            continue
        seen.add(key)
        canonical = canonicalize_url(article.url)
        if canonical != article.url:
            article = Article(
                title=article.title,
                description=article.description,
                url=canonical,
                source=article.source,
                published_at=article.published_at,
            )
        out.append(article)
    return out


def url_host(url: Optional[str]) -> Optional[str]:
    """Return the lowercased host without a leading ``www.``, or None if unparseable."""
    if not url:
        return None
    try:
        host = urlsplit(str(url).strip()).hostname
    except ValueError:
        return None
    if not host:
        return None
    return host[4:] if host.startswith("www.") else host


def is_allowed_host(url: Optional[str]) -> bool:
    """True when the URL parses and its host is not on the denylist."""
    host = url_host(url)
    return host is not None and host not in BLOCKED_HOSTS


def ai_relevance_score(title: Optional[str], description: Optional[str]) -> int:
    """Count artificial-intelligence signals in an article's title and description.

    A known false-positive phrase (e.g. ``"air india"``) forces 0. The bare
    word ``"ai"`` only counts once some other signal has matched.
    """
    text = f"{title or ''} {description or ''}".lower()

    for phrase in FALSE_POSITIVE_PHRASES:
        if phrase in text:
            return 0

    score = sum(1 for phrase in PHRASE_SIGNALS if phrase in text)
    score += sum(1 for pattern in _TOKEN_PATTERNS if pattern.search(text))

    if score > 0 and _BARE_AI.search(text):
        score += 1

    return score


def score_articles(articles: Iterable[Article]) -> List[Tuple[Article, int]]:
    """Pair each article with its relevance score, highest first, zero scores dropped.

    The sort is stable, so equal scores keep their upstream (newest-first) order.
    """
    scored = [(a, ai_relevance_score(a.title, a.description)) for a in articles]
    scored = [(a, s) for a, s in scored if s > 0]
    return sorted(scored, key=lambda pair: pair[1], reverse=True)


def select_relevant(articles: Iterable[Article]) -> List[Article]:
    """Apply the AI-theme relevance rule.

    Keep articles scoring at least 2 when there are at least 6 of them;
    on quiet days fall back to anything scoring at least 1, capped at 15.
    """
    scored = score_articles(articles)
    strong = [a for a, s in scored if s >= STRONG_SCORE]
    if len(strong) >= MIN_STRONG_ARTICLES:
        return strong
    return [a for a, s in scored if s >= 1][:MAX_WEAK_ARTICLES]
