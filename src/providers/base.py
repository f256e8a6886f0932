"""Abstract base classes for data providers."""

from abc import ABC, abstractmethod
from typing import List

from src.models.datatypes import Article, EnrichmentResult, PricePoint


class MarketDataProvider(ABC):
    """Abstract interface for fetching end-of-day price history."""

    @abstractmethod
    def fetch_price_history(self, ticker: str) -> List[PricePoint]:
        """
        Fetch recent daily closes for a ticker.

        Implementations absorb upstream failures and return an empty list.

        Args:
            ticker (str): The ticker symbol (e.g. ``"NVDA"``).

        Returns:
            List[PricePoint]: Closes in ascending date order.
        """
        pass


class NewsProvider(ABC):
    """Abstract interface for fetching theme news."""

    @abstractmethod
    def fetch_articles(self, theme: str) -> List[Article]:
        """
        Fetch, filter and deduplicate articles for a theme.

        Args:
            theme (str): Theme slug (e.g. ``"ai"``).

        Returns:
            List[Article]: Normalized articles, newest relevant first.

        Raises:
            FetchError: If the upstream call fails; the theme is then skipped.
        """
        pass


class EnrichmentProvider(ABC):
    """Abstract interface for structured LLM enrichment of a theme."""

    @abstractmethod
    def enrich(self, theme: str, articles: List[Article], tickers: List[str]) -> EnrichmentResult:
        """
        Produce digest, clusters and per-ticker notes for a theme.

        Args:
            theme (str): Theme slug.
            articles (List[Article]): The theme's articles.
            tickers (List[str]): Tickers allowed in the per-ticker maps.

        Returns:
            EnrichmentResult: Success with validated content, or a failure reason.
        """
        pass
