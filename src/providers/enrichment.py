"""Structured theme enrichment through a Hugging Face chat-completion endpoint.

Pipeline:
    articles + tickers → prompt → chat completion (json_schema response format)
    → JSON extraction → validate_payload → EnrichmentResult

The model output is untrusted. Anything that fails validation is rejected as a
whole; one retry is made with a stricter prompt, after which the caller keeps
the rule-based digest and clusters.
"""

import json
import re
from typing import Any, Dict, List, Optional, Tuple

import requests

from src.core.logger import logger
from src.core.retry import FetchError, RetryPolicy, fetch_with_retry
from src.models.datatypes import (
    SENTIMENT_LABELS, Article, Cluster, Digest, Enrichment, EnrichmentResult,
)
from src.providers.base import EnrichmentProvider

DEFAULT_ENDPOINT = "https://router.huggingface.co/v1/chat/completions"
DEFAULT_MODEL = "mistralai/Mistral-7B-Instruct-v0.2"
_DEFAULT_PROVIDER_SUFFIX = ":hf-inference"

MAX_PROMPT_ARTICLES = 20
MAX_BULLETS = 5
MAX_INSIGHTS = 3
MAX_CLUSTERS = 5
MAX_CLUSTER_URLS = 3

STRICT_PREFIX = "Return ONLY valid JSON matching the schema exactly. No extra text."

RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "digest_bullets": {
            "type": "array",
            "items": {"type": "string"},
            "minItems": 0,
            "maxItems": MAX_BULLETS,
        },
        "insights": {
            "type": "array",
            "items": {"type": "string"},
            "minItems": 0,
            "maxItems": MAX_INSIGHTS,
        },
        "clusters": {
            "type": "array",
            "minItems": 0,
            "maxItems": MAX_CLUSTERS,
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "title": {"type": "string"},
                    "summary": {"type": "string"},
                    "article_urls": {
                        "type": "array",
                        "items": {"type": "string"},
                        "minItems": 0,
                        "maxItems": 5,
                    },
                },
                "required": ["title", "summary", "article_urls"],
            },
        },
        "ticker_explanations": {
            "type": "object",
            "additionalProperties": {"type": "string"},
        },
        "ticker_sentiment": {
            "type": "object",
            "additionalProperties": {"type": "string", "enum": list(SENTIMENT_LABELS)},
        },
    },
    "required": ["digest_bullets", "insights", "clusters"],
}


def _one_line(text: Optional[str]) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def build_prompt(theme: str, articles: List[Article], tickers: List[str]) -> str:
    """Render the enrichment prompt for the top ``MAX_PROMPT_ARTICLES`` articles."""
    top = "\n\n".join(
        f"{i}. {_one_line(a.title)}\n"
        f"   source: {a.source or 'Unknown'}\n"
        f"   publishedAt: {a.published_at}\n"
        f"   url: {a.url}\n"
        f"   description: {_one_line(a.description)}"
        for i, a in enumerate(articles[:MAX_PROMPT_ARTICLES], start=1)
    )
    explanations = ",\n    ".join(
        f'"{t}": "1–2 educational sentences linking the theme to this ticker"' for t in tickers
    )
    sentiments = ",\n    ".join(f'"{t}": "Neutral"' for t in tickers)

    return f"""You are generating content for an educational dashboard. Not financial advice.

Theme: {theme}
Tickers: {", ".join(tickers)}

Articles:
{top}

Return STRICT JSON ONLY with this schema (no markdown, no extra text):

{{
  "digest_bullets": ["... up to 5 strings ..."],
  "insights": ["... up to 3 strings ..."],
  "clusters": [
    {{
      "title": "short title",
      "summary": "1 short paragraph",
      "article_urls": ["... up to 5 urls from the list above ..."]
    }}
  ],
  "ticker_explanations": {{
    {explanations}
  }},
  "ticker_sentiment": {{
    {sentiments}
  }}
}}

Rules:
- digest_bullets max 5
- insights max 3
- clusters between 3 and 5 if possible, otherwise fewer
- Use only URLs from the Articles list
- Keep ticker_explanations to only the given tickers
- ticker_sentiment values must be exactly one of: Positive, Neutral, Negative"""


def extract_json_block(text: str) -> Optional[str]:
    """Return the substring from the first ``{`` to the last ``}``, if any."""
    s = (text or "").strip()
    start = s.find("{")
    end = s.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return s[start:end + 1]


def parse_model_json(text: str) -> Tuple[Any, Optional[str]]:
    """Parse model output as JSON, falling back to the outermost ``{...}`` block.

    Oversized integers and runaway nesting count as parse failures.

    Returns:
        ``(payload, None)`` on success, ``(None, reason)`` otherwise.
    """
    try:
        return json.loads((text or "").strip()), None
    except (ValueError, RecursionError):
        pass

    block = extract_json_block(text)
    if block is None:
        return None, "No JSON block found"
    try:
        return json.loads(block), None
    except (ValueError, RecursionError):
        return None, f"JSON parse failed. Preview: {(text or '')[:300]}"


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(x, str) for x in value)


def _validate_ticker_map(
    payload: Dict[str, Any], field_name: str, allowed: List[str], enum: Optional[Tuple[str, ...]] = None,
) -> Tuple[Dict[str, str], Optional[str]]:
    if field_name not in payload:
        return {}, None
    mapping = payload[field_name]
    if not isinstance(mapping, dict):
        return {}, f"{field_name} must be an object if present"
    for key, value in mapping.items():
        if key not in allowed:
            return {}, f"{field_name} contains unknown ticker: {key}"
        if not isinstance(value, str):
            return {}, f"{field_name}[{key}] must be a string"
        if enum is not None and value not in enum:
            return {}, f"{field_name}[{key}] must be {'/'.join(enum)}"
    return dict(mapping), None


def validate_payload(payload: Any, allowed_tickers: List[str]) -> EnrichmentResult:
    """
    Check a parsed model response against the enrichment contract.

    Args:
        payload: Decoded JSON from the model.
        allowed_tickers: The only keys permitted in the per-ticker maps.

    Returns:
        EnrichmentResult: Success with cluster URLs cut to ``MAX_CLUSTER_URLS``,
        or a failure naming the first violated rule.
    """
    if not isinstance(payload, dict):
        return EnrichmentResult.failure("HF output is not an object")

    bullets = payload.get("digest_bullets")
    insights = payload.get("insights")
    clusters = payload.get("clusters")

    if not isinstance(bullets, list):
        return EnrichmentResult.failure("digest_bullets must be an array")
    if not isinstance(insights, list):
        return EnrichmentResult.failure("insights must be an array")
    if not isinstance(clusters, list):
        return EnrichmentResult.failure("clusters must be an array")

    if not _is_str_list(bullets):
        return EnrichmentResult.failure("digest_bullets must be strings")
    if not _is_str_list(insights):
        return EnrichmentResult.failure("insights must be strings")

    if len(bullets) > MAX_BULLETS:
        return EnrichmentResult.failure("digest_bullets too long")
    if len(insights) > MAX_INSIGHTS:
        return EnrichmentResult.failure("insights too long")
    if len(clusters) > MAX_CLUSTERS:
        return EnrichmentResult.failure("clusters too many")

    for cluster in clusters:
        if not isinstance(cluster, dict):
            return EnrichmentResult.failure("cluster entry must be an object")
        if not isinstance(cluster.get("title"), str):
            return EnrichmentResult.failure("cluster.title must be a string")
        if not isinstance(cluster.get("summary"), str):
            return EnrichmentResult.failure("cluster.summary must be a string")
        if not isinstance(cluster.get("article_urls"), list):
            return EnrichmentResult.failure("cluster.article_urls must be an array")
        if not _is_str_list(cluster["article_urls"]):
            return EnrichmentResult.failure("cluster.article_urls must be strings")

    explanations, reason = _validate_ticker_map(payload, "ticker_explanations", allowed_tickers)
    if reason:
        return EnrichmentResult.failure(reason)

    sentiment, reason = _validate_ticker_map(
        payload, "ticker_sentiment", allowed_tickers, enum=SENTIMENT_LABELS,
    )
    if reason:
        return EnrichmentResult.failure(reason)

    return EnrichmentResult.success(Enrichment(
        digest=Digest(bullets=list(bullets), insights=list(insights)),
        clusters=[
            Cluster(
                title=c["title"],
                summary=c["summary"],
                article_urls=c["article_urls"][:MAX_CLUSTER_URLS],
            )
            for c in clusters
        ],
        ticker_explanations=explanations,
        ticker_sentiment=sentiment,
    ))


def extract_message_text(response: Any) -> str:
    """Pull the generated text out of a chat-completion response."""
    if not isinstance(response, dict):
        return ""
    choices = response.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    first = choices[0]
    message = first.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]
    if isinstance(first.get("text"), str):
        return first["text"]
    return ""


class HuggingFaceEnrichmentProvider(EnrichmentProvider):
    """Hugging Face router (OpenAI-compatible chat completions) enrichment.

    Args:
        api_key: Hugging Face access token.
        model: Model id; ``:hf-inference`` is appended when no provider is given.
        endpoint: Chat-completion URL.
        temperature: Sampling temperature.
        max_tokens: Output token budget.
        policy: Retry policy for each HTTP call.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        endpoint: str = DEFAULT_ENDPOINT,
        temperature: float = 0.2,
        max_tokens: int = 900,
        policy: Optional[RetryPolicy] = None,
        timeout: float = 60,
    ) -> None:
        self.api_key = api_key
        self.model = model if ":" in model else f"{model}{_DEFAULT_PROVIDER_SUFFIX}"
        self.endpoint = endpoint
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.policy = policy or RetryPolicy(min_spacing_ms=1300)
        self.timeout = timeout

    # ── public API ──────────────────────────────────────────────────────────

    def enrich(self, theme: str, articles: List[Article], tickers: List[str]) -> EnrichmentResult:
        """Run the prompt, retrying once with a stricter prefix on invalid output.

        Transport failures are not retried here: the fetcher already did.
        """
        prompt = build_prompt(theme, articles, tickers)

        try:
            first = self._run_once(theme, prompt, tickers, "a1")
            if first.ok:
                return first
            logger.warning(f"[hf:{theme}:a1] rejected: {first.reason}")

            second = self._run_once(theme, f"{STRICT_PREFIX}\n\n{prompt}", tickers, "a2")
            if second.ok:
                return second
            logger.warning(f"[hf:{theme}:a2] rejected: {second.reason}")
        except (FetchError, requests.RequestException) as exc:
            return EnrichmentResult.failure(f"[hf:{theme}] request failed: {exc}")

        return EnrichmentResult.failure(
            f"[hf:{theme}] invalid output after retry: {first.reason} / {second.reason}"
        )

    # ── internal ─────────────────────────────────────────────────────────────

    def _request_body(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": "theme_digest",
                    "description": (
                        "Theme digest bullets, insights, clusters, and optional "
                        "ticker explanations."
                    ),
                    "strict": True,
                    "schema": RESPONSE_SCHEMA,
                },
            },
        }

    def _run_once(self, theme: str, prompt: str, tickers: List[str], attempt_label: str) -> EnrichmentResult:
        response = fetch_with_retry(
            self.endpoint,
            label=f"hf:{theme}:{attempt_label}",
            policy=self.policy,
            method="POST",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json_body=self._request_body(prompt),
            timeout=self.timeout,
        )

        payload, reason = parse_model_json(extract_message_text(response))
        if reason:
            return EnrichmentResult.failure(reason)
        return validate_payload(payload, tickers)
