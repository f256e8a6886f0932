"""Pipeline engine — orchestrates theme × (news, prices, enrichment) processing.

Flow per theme (strictly sequential, in tickers-file order):
  1. News        — NewsAPIProvider.fetch_articles (failure skips the theme)
  2. Baseline    — build_digest + build_clusters
  3. Enrichment  — optional LLM override of digest/clusters/ticker notes
  4. Prices      — StooqProvider.fetch_price_history for the first 5 tickers
  5. Assemble ThemeDocument and write data/<date>/<theme>.json

After every theme has been attempted the manifest is merged once and written.
Themes run one at a time and never in parallel: the upstream free tiers rate
limit aggressively and the fetcher's pacing assumes a single caller.
"""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from src.core.config import require_env
from src.core.logger import logger
from src.core.retry import RetryPolicy
from src.models.datatypes import (
    DEFAULT_SENTIMENT, SENTIMENT_LABELS, Article, Cluster, Digest,
    RunSummary, StockEntry, ThemeDocument,
)
from src.pipeline.clusters import build_clusters
from src.pipeline.digest import build_digest
from src.pipeline.manifest import (
    MANIFEST_FILENAME, load_manifest, merge_manifest, theme_document_path,
    utc_date, utc_timestamp, write_json, write_manifest,
)
from src.providers.base import EnrichmentProvider, MarketDataProvider, NewsProvider
from src.providers.enrichment import (
    DEFAULT_ENDPOINT, DEFAULT_MODEL, HuggingFaceEnrichmentProvider,
)
from src.providers.market import StooqProvider
from src.providers.news import NewsAPIProvider

ADVICE_SUFFIX = "This is an educational summary, not financial advice."
UNAVAILABLE_EXPLANATION = "Educational summary unavailable for this theme today. Not financial advice."


def compose_explanation(llm_explanation: Optional[str], top_bullet: str, top_cluster_title: str) -> str:
    """Per-ticker explanation: the LLM's text if any, else one built from the digest."""
    if isinstance(llm_explanation, str) and llm_explanation.strip():
        return f"{llm_explanation.strip()} {ADVICE_SUFFIX}"

    parts = []
    if top_bullet:
        parts.append(f"Top headline signal: {top_bullet}")
    if top_cluster_title:
        parts.append(f"Main topic cluster: {top_cluster_title}")
    if parts:
        return f"{'. '.join(parts)}. {ADVICE_SUFFIX}"

    return UNAVAILABLE_EXPLANATION


def resolve_sentiment(value: Optional[str]) -> str:
    return value if value in SENTIMENT_LABELS else DEFAULT_SENTIMENT


class PipelineEngine:
    """Orchestrates the full theme data pipeline.

    Args:
        tickers_by_theme: Ordered mapping of theme → ticker symbols.
        news: News provider.
        market: Price history provider.
        enrichment: Optional LLM enrichment provider; ``None`` keeps the rule-based output.
        data_dir: Root of the published data tree.
        max_tickers: Tickers per theme that get price history and explanations.
    """

    def __init__(
        self,
        tickers_by_theme: Dict[str, List[str]],
        news: NewsProvider,
        market: MarketDataProvider,
        enrichment: Optional[EnrichmentProvider] = None,
        data_dir: str | Path = "data",
        max_tickers: int = 5,
    ) -> None:
        self.tickers_by_theme = tickers_by_theme
        self.news = news
        self.market = market
        self.enrichment = enrichment
        self.data_dir = Path(data_dir)
        self.max_tickers = max_tickers

    @classmethod
    def from_config(cls, config: dict, tickers_by_theme: Dict[str, List[str]]) -> "PipelineEngine":
        """Build providers from config.yaml values and environment credentials.

        Raises:
            ConfigError: If ``NEWSAPI_KEY`` is not set.
        """
        fetch_cfg = config.get("fetch", {})
        news_cfg = config.get("news", {})
        llm_cfg = config.get("llm", {})
        timeout = float(fetch_cfg.get("timeout_seconds", 30))
        policy = RetryPolicy.from_config(fetch_cfg)

        news = NewsAPIProvider(
            api_key=require_env("NEWSAPI_KEY"),
            policy=policy,
            page_size=int(news_cfg.get("page_size", 50)),
            language=news_cfg.get("language", "en"),
            timeout=timeout,
        )
        market = StooqProvider(policy=policy, timeout=timeout)

        enrichment = None
        hf_api_key = os.getenv("HUGGINGFACE_API_KEY")
        hf_model = os.getenv("HUGGINGFACE_MODEL") or llm_cfg.get("default_model", DEFAULT_MODEL)
        logger.info(f"[hf] env present: {bool(hf_api_key)} model: {hf_model}")
        if hf_api_key:
            enrichment = HuggingFaceEnrichmentProvider(
                api_key=hf_api_key,
                model=hf_model,
                endpoint=llm_cfg.get("endpoint", DEFAULT_ENDPOINT),
                temperature=float(llm_cfg.get("temperature", 0.2)),
                max_tokens=int(llm_cfg.get("max_tokens", 900)),
                policy=RetryPolicy.from_config(
                    fetch_cfg, min_spacing_ms=int(llm_cfg.get("min_spacing_ms", 1300)),
                ),
                timeout=timeout * 2,
            )

        return cls(
            tickers_by_theme,
            news=news,
            market=market,
            enrichment=enrichment,
            data_dir=config.get("data_dir", "data"),
            max_tickers=int(config.get("max_tickers_per_theme", 5)),
        )

    # ── public ────────────────────────────────────────────────────────────────

    def run(self, now: Optional[datetime] = None) -> RunSummary:
        """Process every theme, then merge and write the manifest.

        Args:
            now: Run timestamp (UTC); defaults to the current time.

        Returns:
            :class:`RunSummary` with succeeded/failed themes and the new manifest.
        """
        now = now or datetime.now(timezone.utc)
        date = utc_date(now)
        summary = RunSummary(date=date)
        manifest_path = self.data_dir / MANIFEST_FILENAME
        previous = load_manifest(manifest_path)
        logger.info(f"[generate-data] START {utc_timestamp(now)} — {len(self.tickers_by_theme)} themes")

        for theme, tickers in self.tickers_by_theme.items():
            try:
                document = self.process_theme(theme, tickers or [], date)
                path = theme_document_path(self.data_dir, date, theme)
                write_json(path, document.to_dict())
            except Exception as exc:
                logger.error(f"[generate-data] Theme failed: {theme}: {exc}", exc_info=True)
                summary.failed[theme] = str(exc)
                continue
            summary.succeeded.append(theme)
            logger.info(f"Wrote {date}/{theme}.json")

        summary.manifest = merge_manifest(previous, summary.succeeded, date, utc_timestamp())
        write_manifest(manifest_path, summary.manifest)

        logger.info(
            f"[generate-data] DONE {utc_timestamp()} — "
            f"{len(summary.succeeded)} written, {len(summary.failed)} skipped"
        )
        return summary

    def process_theme(self, theme: str, tickers: List[str], date: str) -> ThemeDocument:
        """Build one theme's document. News fetch errors propagate to :meth:`run`."""
        articles = self.news.fetch_articles(theme)
        selected_tickers = tickers[:self.max_tickers]

        digest, clusters, explanations, sentiments = self._summarise(theme, articles, selected_tickers)

        top_bullet = digest.bullets[0] if digest.bullets else ""
        top_cluster_title = clusters[0].title if clusters else ""

        stocks = []
        for ticker in selected_tickers:
            stocks.append(StockEntry(
                ticker=ticker,
                price_history=self.market.fetch_price_history(ticker),
                sentiment_direction=resolve_sentiment(sentiments.get(ticker)),
                ai_explanation=compose_explanation(
                    explanations.get(ticker), top_bullet, top_cluster_title,
                ),
            ))

        return ThemeDocument(
            theme=theme,
            date=date,
            last_updated_utc=utc_timestamp(),
            news=articles,
            digest=digest,
            clusters=clusters,
            stocks=stocks,
        )

    # ── internal ──────────────────────────────────────────────────────────────

    def _summarise(
        self, theme: str, articles: List[Article], tickers: List[str],
    ) -> tuple[Digest, List[Cluster], Dict[str, str], Dict[str, str]]:
        """Rule-based baseline, overridden by enrichment when it validates."""
        digest = build_digest(articles)
        clusters = build_clusters(articles)

        if self.enrichment is None:
            logger.warning(f"[hf:{theme}] enrichment not configured, using rule-based fallback")
            return digest, clusters, {}, {}

        try:
            result = self.enrichment.enrich(theme, articles, tickers)
        except Exception as exc:
            logger.error(f"[hf:{theme}] enrichment raised: {exc}", exc_info=True)
            return digest, clusters, {}, {}

        if not result.ok or result.value is None:
            logger.warning(f"[hf:{theme}] FAILED, using rule-based fallback: {result.reason}")
            return digest, clusters, {}, {}

        logger.info(f"[hf:{theme}] OK (validated JSON)")
        value = result.value
        return value.digest, value.clusters, value.ticker_explanations, value.ticker_sentiment
