from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from market_moodboard.errors import UpstreamError

logger = logging.getLogger("market_moodboard.market_data")


class MarketDataClient(Protocol):
    def fetch_top_entities(self, limit: int, currency: str) -> List[Dict[str, Any]]:
        ...


class CoinGeckoMarketData:
    """Top coins by market cap from CoinGecko's `/coins/markets`."""

    collaborator = "market_data"

    def __init__(
        self,
        base_url: str,
        *,
        client: Optional[httpx.Client] = None,
        timeout_sec: float = 15.0,
    ) -> None:
        self.base_url = str(base_url or "").rstrip("/")
        self._client = client or httpx.Client(timeout=timeout_sec, headers={"accept": "application/json"})

    def fetch_top_entities(self, limit: int, currency: str) -> List[Dict[str, Any]]:
        params = {
            "vs_currency": currency,
            "order": "market_cap_desc",
            "per_page": int(limit),
            "page": 1,
            "sparkline": "false",
        }
        try:
            resp = self._client.get(f"{self.base_url}/coins/markets", params=params)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(self.collaborator, f"CoinGecko returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise UpstreamError(self.collaborator, f"CoinGecko request failed: {type(e).__name__}: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamError(self.collaborator, "CoinGecko returned non-JSON") from e
        if not isinstance(data, list):
            raise UpstreamError(self.collaborator, "Invalid response from CoinGecko API: expected a list")
        if not data:
            raise UpstreamError(self.collaborator, "No coins returned from CoinGecko")

        logger.debug("fetched %d coins vs_currency=%s", len(data), currency)
        return [c for c in data if isinstance(c, dict)]


__all__ = ["CoinGeckoMarketData", "MarketDataClient"]
