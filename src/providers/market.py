"""End-of-day price history via the Stooq CSV endpoint."""

import re
from typing import List, Optional

import pandas as pd
import requests

from src.core.logger import logger
from src.core.retry import FetchError, RetryPolicy, fetch_with_retry
from src.models.datatypes import PricePoint
from src.providers.base import MarketDataProvider

_STOOQ_URL = "https://stooq.com/q/d/l/"
_LINE_SPLIT = re.compile(r"\r?\n")

# Keeps the published JSON small while covering a month and a half of sessions.
MAX_PRICE_POINTS = 35


class StooqProvider(MarketDataProvider):
    """Stooq daily CSV implementation for US-listed tickers.

    Args:
        policy: Retry policy for the CSV request.
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, policy: Optional[RetryPolicy] = None, timeout: float = 30) -> None:
        self.suffix = ".us"
        self.policy = policy or RetryPolicy()
        self.timeout = timeout

    def fetch_price_history(self, ticker: str) -> List[PricePoint]:
        """
        Fetch the last ``MAX_PRICE_POINTS`` daily closes for a ticker.

        Failures are absorbed: a ticker with no data never fails its theme.

        Args:
            ticker (str): The ticker symbol.

        Returns:
            List[PricePoint]: Closes in the CSV's (chronological) order, possibly empty.
        """
        label = f"stooq:{ticker}"
        symbol = f"{ticker.lower()}{self.suffix}"

        try:
            csv_text = fetch_with_retry(
                _STOOQ_URL,
                label=label,
                policy=self.policy,
                response_kind="text",
                params={"s": symbol, "i": "d"},
                timeout=self.timeout,
            )
        except (FetchError, requests.RequestException) as exc:
            logger.warning(f"[{label}] Failed after retries: {exc}")
            return []

        points = parse_price_csv(csv_text)
        if not points:
            logger.warning(f"[{label}] No CSV data.")
        else:
            logger.info(f"[{label}] {len(points)} closes, latest {points[-1].date}")
        return points


def parse_price_csv(csv_text: str, limit: int = MAX_PRICE_POINTS) -> List[PricePoint]:
    """
    Parse Stooq CSV text (Date,Open,High,Low,Close,...) into price points.

    The header row is skipped. A row is kept only if it has at least five
    columns, a non-empty date and a finite close; other rows are ignored.

    Args:
        csv_text (str): Raw CSV body.
        limit (int): Number of most recent points to keep.

    Returns:
        List[PricePoint]: The last ``limit`` valid rows in original order.
    """
    lines = _LINE_SPLIT.split((csv_text or "").strip())
    if len(lines) < 2:
        return []

    rows = [line.split(",") for line in lines[1:]]
    frame = pd.DataFrame(
        [(cols[0].strip(), cols[4].strip()) for cols in rows if len(cols) >= 5],
        columns=["date", "close"],
    )
    if frame.empty:
        return []

    closes = pd.to_numeric(frame["close"], errors="coerce")
    valid = frame["date"].ne("") & closes.notna() & closes.abs().lt(float("inf"))
    frame = frame.assign(close=closes).loc[valid].tail(limit)

    return [
        PricePoint(date=row.date, close=float(row.close))
        for row in frame.itertuples(index=False)
    ]
