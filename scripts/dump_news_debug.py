"""
Debug dump — fetches the raw NewsAPI results for every theme and writes
output/news_debug.json, annotating each article with the denylist verdict,
its AI relevance score and whether the production filter kept it.

Run with:
    $env:PYTHONPATH="."; python scripts/dump_news_debug.py
"""

import json
import os
import sys

import requests
from dotenv import load_dotenv

load_dotenv()

from src.core.config import ConfigError, load_config, load_theme_tickers, require_env  # noqa: E402
from src.core.news_utils import ai_relevance_score, canonicalize_url, is_allowed_host  # noqa: E402
from src.core.retry import FetchError, RetryPolicy  # noqa: E402
from src.providers.news import AI_THEME, NewsAPIProvider, build_news_query, filter_articles  # noqa: E402

OUTPUT_PATH = os.path.join("output", "news_debug.json")


def _annotate(theme: str, raw_articles: list) -> dict:
    """Annotate raw results with blocked / score / kept flags."""
    kept_urls = {a.url for a in filter_articles(theme, raw_articles)}
    annotated = []
    for raw in raw_articles:
        if not isinstance(raw, dict):
            continue
        url = raw.get("url") or ""
        title = raw.get("title") or ""
        description = raw.get("description") or ""
        annotated.append({
            "title": title,
            "source": (raw.get("source") or {}).get("name") if isinstance(raw.get("source"), dict) else None,
            "url": url,
            "publishedAt": raw.get("publishedAt") or "",
            "blocked_host": not is_allowed_host(url),
            "ai_score": ai_relevance_score(title, description) if theme == AI_THEME else None,
            "KEPT": canonicalize_url(url) in kept_urls,
        })
    return {
        "query": build_news_query(theme),
        "total_fetched": len(annotated),
        "total_kept": len(kept_urls),
        "articles": annotated,
    }


def main() -> int:
    try:
        config = load_config()
        themes = load_theme_tickers(config["tickers_file"])
        api_key = require_env("NEWSAPI_KEY")
    except (FileNotFoundError, ConfigError) as exc:
        print(f"ERROR: {exc}")
        return 1

    news_cfg = config.get("news", {})
    provider = NewsAPIProvider(
        api_key=api_key,
        policy=RetryPolicy.from_config(config.get("fetch", {})),
        page_size=int(news_cfg.get("page_size", 50)),
        language=news_cfg.get("language", "en"),
    )

    out = {}
    for theme in themes:
        print(f"\n{'─'*60}")
        print(f"Theme: {theme}  q={build_news_query(theme)!r}")
        try:
            raw_articles = provider.fetch_raw(theme)
        except (FetchError, requests.RequestException) as exc:
            print(f"    [NewsAPI] {exc}")
            out[theme] = {"error": str(exc)}
            continue
        out[theme] = _annotate(theme, raw_articles)
        print(f"    fetched={out[theme]['total_fetched']}  kept={out[theme]['total_kept']}")

    os.makedirs(os.path.dirname(OUTPUT_PATH), exist_ok=True)
    with open(OUTPUT_PATH, "w", encoding="utf-8") as f:
        json.dump(out, f, indent=2, ensure_ascii=False)

    print(f"\n{'═'*60}")
    print(f"Wrote {OUTPUT_PATH}")
    print(f"{'═'*60}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
