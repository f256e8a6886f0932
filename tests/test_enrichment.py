"""Unit tests for LLM enrichment parsing, validation and the retry flow."""

import json
import unittest
from unittest.mock import patch

from src.core.retry import RetriesExhaustedError
from src.models.datatypes import Article
from src.providers.enrichment import (
    STRICT_PREFIX, HuggingFaceEnrichmentProvider, build_prompt, extract_json_block,
    extract_message_text, parse_model_json, validate_payload,
)

TICKERS = ["NVDA", "AMD"]

ARTICLES = [
    Article(
        title="NVIDIA unveils\n new GPU",
        description="Inference  chips",
        url="https://news.example.com/nvda",
        source="Reuters",
        published_at="2025-01-02T10:00:00Z",
    ),
]


def _payload(**overrides):
    payload = {
        "digest_bullets": ["GPU demand stays strong"],
        "insights": ["Capex is rising"],
        "clusters": [{
            "title": "Chips",
            "summary": "Chip news.",
            "article_urls": ["https://u/1", "https://u/2", "https://u/3", "https://u/4", "https://u/5"],
        }],
        "ticker_explanations": {"NVDA": "Sells the GPUs."},
        "ticker_sentiment": {"NVDA": "Positive"},
    }
    payload.update(overrides)
    return payload


def _completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestParsing(unittest.TestCase):
    def test_direct_json(self):
        self.assertEqual(parse_model_json('{"a": 1}'), ({"a": 1}, None))

    def test_embedded_json_block(self):
        self.assertEqual(parse_model_json('Sure! Here it is: {"a": {"b": 2}} Thanks.'), ({"a": {"b": 2}}, None))

    def test_no_block(self):
        self.assertEqual(parse_model_json("I cannot help with that."), (None, "No JSON block found"))
        self.assertIsNone(extract_json_block("} backwards {"))

    def test_unparseable_block(self):
        payload, reason = parse_model_json("prefix {not: valid} suffix")
        self.assertIsNone(payload)
        self.assertTrue(reason.startswith("JSON parse failed. Preview: prefix"))

    def test_oversized_integer_is_a_parse_failure(self):
        text = '{"digest_bullets": [], "insights": [], "clusters": [], "n": ' + "1" * 5000 + "}"
        payload, reason = parse_model_json(text)
        self.assertIsNone(payload)
        self.assertTrue(reason.startswith("JSON parse failed"))

    def test_deep_nesting_is_a_parse_failure(self):
        payload, reason = parse_model_json("[" * 100000 + "]" * 100000)
        self.assertIsNone(payload)
        self.assertEqual(reason, "No JSON block found")
        payload, reason = parse_model_json("{\"a\": " + "[" * 100000 + "]" * 100000 + "}")
        self.assertIsNone(payload)
        self.assertTrue(reason.startswith("JSON parse failed"))

    def test_extract_message_text(self):
        self.assertEqual(extract_message_text(_completion("hi")), "hi")
        self.assertEqual(extract_message_text({"choices": [{"text": "legacy"}]}), "legacy")
        self.assertEqual(extract_message_text({"error": "x"}), "")
        self.assertEqual(extract_message_text(None), "")


class TestValidatePayload(unittest.TestCase):
    def test_valid_payload_truncates_urls(self):
        result = validate_payload(_payload(), TICKERS)
        self.assertTrue(result.ok)
        self.assertEqual(len(result.value.clusters[0].article_urls), 3)
        self.assertEqual(result.value.ticker_sentiment, {"NVDA": "Positive"})
        self.assertEqual(result.value.digest.bullets, ["GPU demand stays strong"])

    def test_optional_maps_default_empty(self):
        payload = _payload()
        del payload["ticker_explanations"]
        del payload["ticker_sentiment"]
        result = validate_payload(payload, TICKERS)
        self.assertTrue(result.ok)
        self.assertEqual(result.value.ticker_explanations, {})

    def test_rejects_unknown_sentiment_label(self):
        result = validate_payload(_payload(ticker_sentiment={"NVDA": "Bullish"}), TICKERS)
        self.assertFalse(result.ok)
        self.assertEqual(result.reason, "ticker_sentiment[NVDA] must be Positive/Neutral/Negative")

    def test_rejects_unknown_ticker(self):
        result = validate_payload(_payload(ticker_explanations={"AAPL": "x"}), TICKERS)
        self.assertFalse(result.ok)
        self.assertEqual(result.reason, "ticker_explanations contains unknown ticker: AAPL")

    def test_rejects_shape_violations(self):
        cases = [
            ([], "HF output is not an object"),
            (_payload(digest_bullets="x"), "digest_bullets must be an array"),
            (_payload(digest_bullets=["a"] * 6), "digest_bullets too long"),
            (_payload(insights=[1]), "insights must be strings"),
            (_payload(clusters=[{"title": "t", "summary": "s"}]), "cluster.article_urls must be an array"),
            (_payload(clusters=[{"title": "t", "summary": "s", "article_urls": []}] * 6), "clusters too many"),
            (_payload(ticker_explanations={"NVDA": 3}), "ticker_explanations[NVDA] must be a string"),
        ]
        for payload, reason in cases:
            result = validate_payload(payload, TICKERS)
            self.assertFalse(result.ok, reason)
            self.assertEqual(result.reason, reason)


class TestPrompt(unittest.TestCase):
    def test_prompt_lists_articles_and_tickers(self):
        prompt = build_prompt("ai", ARTICLES, TICKERS)
        self.assertIn("Theme: ai", prompt)
        self.assertIn("Tickers: NVDA, AMD", prompt)
        self.assertIn("1. NVIDIA unveils new GPU", prompt)
        self.assertIn("   description: Inference chips", prompt)
        self.assertIn('"AMD": "Neutral"', prompt)


class TestHuggingFaceEnrichmentProvider(unittest.TestCase):
    def setUp(self):
        self.provider = HuggingFaceEnrichmentProvider(api_key="hf_token", model="org/model")

    def test_model_gets_default_inference_provider(self):
        self.assertEqual(self.provider.model, "org/model:hf-inference")
        self.assertEqual(HuggingFaceEnrichmentProvider("k", model="org/model:together").model, "org/model:together")

    @patch("src.providers.enrichment.fetch_with_retry")
    def test_first_attempt_success(self, mock_fetch):
        mock_fetch.return_value = _completion(json.dumps(_payload()))
        result = self.provider.enrich("ai", ARTICLES, TICKERS)

        self.assertTrue(result.ok)
        self.assertEqual(mock_fetch.call_count, 1)
        kwargs = mock_fetch.call_args.kwargs
        self.assertEqual(kwargs["method"], "POST")
        self.assertEqual(kwargs["label"], "hf:ai:a1")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer hf_token")
        body = kwargs["json_body"]
        self.assertEqual(body["model"], "org/model:hf-inference")
        self.assertEqual(body["response_format"]["type"], "json_schema")

    @patch("src.providers.enrichment.fetch_with_retry")
    def test_retries_once_with_strict_prefix(self, mock_fetch):
        mock_fetch.side_effect = [
            _completion("Sorry, here is prose instead."),
            _completion("```json\n" + json.dumps(_payload()) + "\n```"),
        ]
        result = self.provider.enrich("ai", ARTICLES, TICKERS)

        self.assertTrue(result.ok)
        self.assertEqual(mock_fetch.call_count, 2)
        second = mock_fetch.call_args_list[1].kwargs
        self.assertEqual(second["label"], "hf:ai:a2")
        self.assertTrue(second["json_body"]["messages"][0]["content"].startswith(STRICT_PREFIX))

    @patch("src.providers.enrichment.fetch_with_retry")
    def test_both_attempts_invalid(self, mock_fetch):
        mock_fetch.side_effect = [
            _completion("no json"),
            _completion(json.dumps(_payload(ticker_sentiment={"NVDA": "Bullish"}))),
        ]
        result = self.provider.enrich("ai", ARTICLES, TICKERS)

        self.assertFalse(result.ok)
        self.assertEqual(
            result.reason,
            "[hf:ai] invalid output after retry: No JSON block found / "
            "ticker_sentiment[NVDA] must be Positive/Neutral/Negative",
        )

    @patch("src.providers.enrichment.fetch_with_retry")
    def test_unparseable_number_retries_with_strict_prefix(self, mock_fetch):
        oversized = '{"digest_bullets": [], "insights": [], "clusters": [], "n": ' + "9" * 5000 + "}"
        mock_fetch.side_effect = [_completion(oversized), _completion(json.dumps(_payload()))]
        result = self.provider.enrich("ai", ARTICLES, TICKERS)

        self.assertTrue(result.ok)
        self.assertEqual(mock_fetch.call_count, 2)
        self.assertEqual(mock_fetch.call_args_list[1].kwargs["label"], "hf:ai:a2")

    @patch("src.providers.enrichment.fetch_with_retry")
    def test_transport_failure_is_a_failure_result(self, mock_fetch):
        mock_fetch.side_effect = RetriesExhaustedError("hf:ai:a1", "https://router", 4, status=503)
        result = self.provider.enrich("ai", ARTICLES, TICKERS)

        self.assertFalse(result.ok)
        self.assertTrue(result.reason.startswith("[hf:ai] request failed:"))
        self.assertEqual(mock_fetch.call_count, 1)


if __name__ == "__main__":
    unittest.main()
