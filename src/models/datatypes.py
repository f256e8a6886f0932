"""Data structures for the theme data pipeline.

Every structure that lands in the published JSON exposes ``to_dict()`` with the
exact key names and order the dashboard reads.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

SENTIMENT_LABELS = ("Positive", "Neutral", "Negative")
DEFAULT_SENTIMENT = "Neutral"


@dataclass(frozen=True)
class Article:
    """
    Represents a normalized news article. ``url`` is already canonicalized.
    """
    title: str
    description: str
    url: str
    source: str
    published_at: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "source": self.source,
            "publishedAt": self.published_at,
        }


@dataclass(frozen=True)
class PricePoint:
    """One end-of-day close."""
    date: str  # YYYY-MM-DD
    close: float

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "close": self.close}


@dataclass
class Cluster:
    """A keyword (or LLM) grouping of related articles."""
    title: str
    summary: str
    article_urls: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "summary": self.summary,
            "article_urls": list(self.article_urls),
        }


@dataclass
class Digest:
    bullets: List[str] = field(default_factory=list)
    insights: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return {"bullets": list(self.bullets), "insights": list(self.insights)}


@dataclass
class StockEntry:
    """
    Per-ticker block of a theme document. Score and magnitude stay 0: the
    dashboard only reads the category.
    """
    ticker: str
    price_history: List[PricePoint]
    sentiment_direction: str
    ai_explanation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ticker": self.ticker,
            "price_history": [p.to_dict() for p in self.price_history],
            "sentiment_direction": self.sentiment_direction,
            "sentiment": {
                "category": self.sentiment_direction,
                "score": 0,
                "magnitude": 0,
            },
            "ai_explanation": self.ai_explanation,
        }


@dataclass
class ThemeDocument:
    """
    Root persisted entity: one per theme per UTC day, written once and never mutated.
    """
    theme: str
    date: str
    last_updated_utc: str
    news: List[Article]
    digest: Digest
    clusters: List[Cluster]
    stocks: List[StockEntry]
    disclaimer: str = "Educational use only. Not financial advice."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "theme": self.theme,
            "date": self.date,
            "last_updated_utc": self.last_updated_utc,
            "news": [a.to_dict() for a in self.news],
            "digest": self.digest.to_dict(),
            "clusters": [c.to_dict() for c in self.clusters],
            "stocks": [s.to_dict() for s in self.stocks],
            "disclaimer": self.disclaimer,
        }


@dataclass
class Manifest:
    """Index of the latest available date per theme."""
    generated_at_utc: str = ""
    themes: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def latest_date(self, theme: str) -> Optional[str]:
        return (self.themes.get(theme) or {}).get("latest_date")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated_at_utc": self.generated_at_utc,
            "themes": {theme: dict(entry) for theme, entry in self.themes.items()},
        }


@dataclass
class Enrichment:
    """Validated LLM output, ready to override the rule-based baseline."""
    digest: Digest
    clusters: List[Cluster]
    ticker_explanations: Dict[str, str] = field(default_factory=dict)
    ticker_sentiment: Dict[str, str] = field(default_factory=dict)


@dataclass
class EnrichmentResult:
    """
    Outcome of an enrichment attempt: ``ok`` with a ``value``, or a failure
    ``reason``. Callers fall back to the rule-based output on failure.
    """
    ok: bool
    value: Optional[Enrichment] = None
    reason: str = ""

    @classmethod
    def success(cls, value: Enrichment) -> "EnrichmentResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason: str) -> "EnrichmentResult":
        return cls(ok=False, reason=reason)


@dataclass
class RunSummary:
    """What a pipeline run produced, for the entry point and tests."""
    date: str
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    manifest: Optional[Manifest] = None
