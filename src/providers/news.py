"""NewsAPI provider and theme query construction.

Pipeline per theme:
  1. build_news_query — curated OR-query (AI theme adds exclusion terms)
  2. NewsAPI /v2/everything — title-only for AI, title+description otherwise
  3. Host denylist
  4. AI relevance scoring (AI theme only)
  5. Canonical-URL deduplication
"""

from typing import Any, Dict, List, Optional

from src.core.logger import logger
from src.core.news_utils import (
    canonicalize_url, dedupe_articles, is_allowed_host, select_relevant,
)
from src.core.retry import RetryPolicy, fetch_with_retry
from src.models.datatypes import Article
from src.providers.base import NewsProvider

_NEWSAPI_URL = "https://newsapi.org/v2/everything"

AI_THEME = "ai"
AI_EXCLUSIONS = "-pypi -package -wordpress -dev -release"

# Multi-word phrases are quoted; NewsAPI treats bare words as single tokens.
THEME_QUERY_TERMS: Dict[str, List[str]] = {
    "ai": [
        '"artificial intelligence"',
        '"generative AI"',
        '"machine learning"',
        "LLM",
        '"large language model"',
        "ChatGPT",
        "OpenAI",
        "Anthropic",
        "Claude",
        "Gemini",
        "DeepMind",
        "NVIDIA",
        "GPU",
        '"AI chip"',
        '"data center"',
        '"model safety"',
        "regulation",
    ],
    "semiconductors": [
        "semiconductor",
        "chip",
        "chips",
        "GPU",
        "NVIDIA",
        "TSMC",
        "Intel",
        "AMD",
        "ASML",
        '"foundry"',
        '"export controls"',
        '"supply chain"',
    ],
    "energy": [
        "energy",
        "oil",
        "gas",
        "OPEC",
        "renewables",
        "solar",
        "wind",
        "LNG",
        '"power grid"',
        '"electricity prices"',
        '"energy transition"',
    ],
    "us-politics": [
        '"United States"',
        '"White House"',
        "Congress",
        "Senate",
        "House",
        "Biden",
        "Trump",
        "election",
        "campaign",
        "policy",
        "tariffs",
        "sanctions",
        '"federal government"',
    ],
}


def build_news_query(theme: str) -> str:
    """Return the NewsAPI boolean query for a theme.

    Unknown themes are searched verbatim.
    """
    terms = THEME_QUERY_TERMS.get(theme)
    raw_query = " OR ".join(terms) if terms else theme

    if theme == AI_THEME:
        return f"{raw_query} {AI_EXCLUSIONS}"
    return raw_query


def build_news_params(theme: str, page_size: int = 50, language: str = "en") -> Dict[str, Any]:
    """Query parameters for /v2/everything. AI searches titles only for precision."""
    query = build_news_query(theme)
    params: Dict[str, Any] = {}
    if theme == AI_THEME:
        params["qInTitle"] = query
    else:
        params["q"] = query
        params["searchIn"] = "title,description"
    params.update({
        "language": language,
        "pageSize": page_size,
        "sortBy": "publishedAt",
    })
    return params


def to_article(raw: Dict[str, Any]) -> Article:
    """Map a NewsAPI article object into the stable ``Article`` shape."""
    source = raw.get("source") if isinstance(raw.get("source"), dict) else {}
    return Article(
        title=raw.get("title") or "",
        description=raw.get("description") or "",
        url=canonicalize_url(raw.get("url") or ""),
        source=source.get("name") or "Unknown",
        published_at=raw.get("publishedAt") or "",
    )


def filter_articles(theme: str, raw_articles: List[Any]) -> List[Article]:
    """Denylist, (AI-only) relevance selection and deduplication of raw results."""
    allowed = [
        raw for raw in raw_articles
        if isinstance(raw, dict) and is_allowed_host(raw.get("url"))
    ]
    articles = [to_article(raw) for raw in allowed]

    if theme == AI_THEME:
        articles = select_relevant(articles)

    return dedupe_articles(articles)


class NewsAPIProvider(NewsProvider):
    """NewsAPI.org ``/v2/everything`` provider.

    The key travels in the ``X-Api-Key`` header so it never shows up in
    logged URLs.

    Args:
        api_key: NewsAPI key.
        policy: Retry policy for the search request.
        page_size: Results per request (NewsAPI maximum is 100).
        language: Article language filter.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        api_key: str,
        policy: Optional[RetryPolicy] = None,
        page_size: int = 50,
        language: str = "en",
        timeout: float = 30,
    ) -> None:
        self.api_key = api_key
        self.policy = policy or RetryPolicy()
        self.page_size = page_size
        self.language = language
        self.timeout = timeout

    def fetch_raw(self, theme: str) -> List[Any]:
        """Return the unfiltered ``articles`` array for a theme."""
        data = fetch_with_retry(
            _NEWSAPI_URL,
            label=f"news:{theme}",
            policy=self.policy,
            params=build_news_params(theme, self.page_size, self.language),
            headers={"X-Api-Key": self.api_key},
            timeout=self.timeout,
        )
        raw_articles = data.get("articles") if isinstance(data, dict) else None
        return raw_articles if isinstance(raw_articles, list) else []

    def fetch_articles(self, theme: str) -> List[Article]:
        """Fetch and filter a theme's articles. Fetch errors propagate to the caller."""
        raw_articles = self.fetch_raw(theme)
        articles = filter_articles(theme, raw_articles)
        logger.info(
            f"[news:{theme}] {len(raw_articles)} fetched -> {len(articles)} kept"
        )
        return articles
