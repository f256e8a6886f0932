"""Rule-based digest: the baseline used whenever LLM enrichment is off or fails."""

from typing import List

from src.core.news_utils import unique_strings
from src.models.datatypes import Article, Digest

MAX_BULLETS = 5
MAX_INSIGHTS = 3
BUSY_NEWS_DAY = 8

ELEVATED_COVERAGE_INSIGHT = "Coverage volume is elevated, suggesting an active news cycle."
RULE_BASED_INSIGHT = "Digest is rule-based for MVP; AI summarisation can be added later."


def build_digest(articles: List[Article]) -> Digest:
    """Top unique headlines as bullets plus a couple of canned insights."""
    bullets = unique_strings(a.title for a in articles if a.title)[:MAX_BULLETS]

    insights = []
    if len(articles) >= BUSY_NEWS_DAY:
        insights.append(ELEVATED_COVERAGE_INSIGHT)
    insights.append(RULE_BASED_INSIGHT)

    return Digest(bullets=bullets, insights=insights[:MAX_INSIGHTS])
