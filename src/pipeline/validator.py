"""Output validator — checks the published data tree against the dashboard contract.

Checks:
  1. data/manifest.json exists and is an object with a ``themes`` mapping
  2. Every manifest entry points at an existing data/<date>/<theme>.json
  3. Each referenced document has every top-level key
  4. Bullets ≤ 5, insights ≤ 3, clusters ≤ 5, price history ≤ 35 points
  5. sentiment_direction ∈ {Positive, Neutral, Negative}

Usage:
    python -m src.pipeline.validator data
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Tuple

from src.models.datatypes import SENTIMENT_LABELS

_REQUIRED_KEYS = [
    "theme", "date", "last_updated_utc", "news",
    "digest", "clusters", "stocks", "disclaimer",
]

_MAX_BULLETS = 5
_MAX_INSIGHTS = 3
_MAX_CLUSTERS = 5
_MAX_PRICE_POINTS = 35


def _check_document(theme: str, doc: Any) -> List[str]:
    """Return FAIL lines for one theme document (empty when it passes)."""
    if not isinstance(doc, dict):
        return [f"FAIL  {theme}: document is not an object"]

    missing = [k for k in _REQUIRED_KEYS if k not in doc]
    if missing:
        return [f"FAIL  {theme}: missing keys {missing}"]

    failures = []
    digest = doc.get("digest") or {}
    if not isinstance(digest, dict):
        failures.append(f"FAIL  {theme}: digest is not an object")
        digest = {}
    if len(digest.get("bullets") or []) > _MAX_BULLETS:
        failures.append(f"FAIL  {theme}: more than {_MAX_BULLETS} digest bullets")
    if len(digest.get("insights") or []) > _MAX_INSIGHTS:
        failures.append(f"FAIL  {theme}: more than {_MAX_INSIGHTS} insights")
    if len(doc.get("clusters") or []) > _MAX_CLUSTERS:
        failures.append(f"FAIL  {theme}: more than {_MAX_CLUSTERS} clusters")

    stocks = doc.get("stocks") or []
    if not isinstance(stocks, list):
        failures.append(f"FAIL  {theme}: stocks is not an array")
        stocks = []
    for i, stock in enumerate(stocks):
        if not isinstance(stock, dict):
            failures.append(f"FAIL  {theme}/{i}: stock entry is not an object")
            continue
        ticker = stock.get("ticker", "?")
        if len(stock.get("price_history") or []) > _MAX_PRICE_POINTS:
            failures.append(f"FAIL  {theme}/{ticker}: more than {_MAX_PRICE_POINTS} price points")
        if stock.get("sentiment_direction") not in SENTIMENT_LABELS:
            failures.append(
                f"FAIL  {theme}/{ticker}: sentiment_direction "
                f"{stock.get('sentiment_direction')!r} not in {list(SENTIMENT_LABELS)}"
            )
    return failures


def validate(data_dir: str | Path) -> Tuple[bool, List[str]]:
    """Run all validation checks against a data directory.

    Args:
        data_dir: Directory holding ``manifest.json`` and the dated folders.

    Returns:
        Tuple of ``(passed: bool, messages: list[str])``.
        ``messages`` contains PASS/FAIL lines for each check.
    """
    root = Path(data_dir)
    manifest_path = root / "manifest.json"
    messages: List[str] = []
    passed = True

    # ── load manifest ─────────────────────────────────────────────────────────
    try:
        with open(manifest_path, encoding="utf-8") as f:
            manifest = json.load(f)
    except FileNotFoundError:
        return False, [f"FAIL  manifest not found: {manifest_path}"]
    except (OSError, json.JSONDecodeError) as exc:
        return False, [f"FAIL  could not read manifest: {exc}"]

    themes: Dict[str, Any] = manifest.get("themes") if isinstance(manifest, dict) else None
    if not isinstance(themes, dict):
        return False, ["FAIL  manifest has no themes object"]
    messages.append(f"PASS  manifest lists {len(themes)} theme(s)")

    # ── per-theme documents ───────────────────────────────────────────────────
    for theme, entry in themes.items():
        latest = (entry or {}).get("latest_date") if isinstance(entry, dict) else None
        if not latest:
            messages.append(f"FAIL  {theme}: no latest_date")
            passed = False
            continue

        doc_path = root / latest / f"{theme}.json"
        try:
            with open(doc_path, encoding="utf-8") as f:
                doc = json.load(f)
        except FileNotFoundError:
            messages.append(f"FAIL  {theme}: manifest points at missing {doc_path}")
            passed = False
            continue
        except (OSError, json.JSONDecodeError) as exc:
            messages.append(f"FAIL  {theme}: could not read {doc_path}: {exc}")
            passed = False
            continue

        failures = _check_document(theme, doc)
        if failures:
            messages.extend(failures)
            passed = False
        else:
            messages.append(f"PASS  {theme}: {latest}/{theme}.json")

    return passed, messages


def main() -> int:
    data_dir = sys.argv[1] if len(sys.argv) > 1 else "data"
    passed, messages = validate(data_dir)
    for msg in messages:
        print(msg)
    if passed:
        print("\nVALIDATION PASSED ✓")
        return 0
    else:
        print("\nVALIDATION FAILED ✗")
        return 1


if __name__ == "__main__":
    sys.exit(main())
