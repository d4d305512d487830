from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

# Shown when CoinGecko is unreachable or rate limited
FALLBACK_CURRENT_USD = 3200.0
FALLBACK_HISTORICAL_USD = 2800.0


class PriceClient:
    """
    CoinGecko public endpoints:
      - GET {base}/simple/price?ids=ethereum&vs_currencies=usd
      - GET {base}/coins/ethereum/history?date=dd-mm-yyyy
    Fails soft: any error returns the fallback quote and logs a warning.
    """
    BASE = "https://api.coingecko.com/api/v3"

    def __init__(
        self,
        base_url: str = BASE,
        coin_id: str = "ethereum",
        vs_currency: str = "usd",
        ttl_seconds: int = 30,
        timeout: float = 20.0,
    ):
        self.base = base_url.rstrip("/")
        self.coin_id = coin_id
        self.vs = vs_currency
        self.ttl = ttl_seconds
        self.timeout = timeout
        self.cache: Dict[str, tuple[float, Any]] = {}
        # day -> price; a closed day's quote doesn't change
        self.history: Dict[str, float] = {}
        self.session = requests.Session()

    def _cache_get(self, key: str) -> Optional[Any]:
        item = self.cache.get(key)
        if not item:
            return None
        ts, val = item
        if (time.time() - ts) > self.ttl:
            self.cache.pop(key, None)
            return None
        return val

    def _cache_set(self, key: str, val: Any) -> None:
        now = time.time()
        for k in [k for k, (ts, _) in self.cache.items() if now - ts > self.ttl]:
            self.cache.pop(k, None)
        self.cache[key] = (now, val)

    def _get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Optional[Any]:
        try:
            r = self.session.get(url, params=params, timeout=self.timeout)
            if r.status_code == 429:
                logger.warning("CoinGecko rate limited: %s", url)
                return None
            r.raise_for_status()
            return r.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("CoinGecko request failed (%s): %s", url, e)
            return None

    def get_current_price(self) -> float:
        key = f"current:{self.coin_id}:{self.vs}"
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        data = self._get_json(f"{self.base}/simple/price", {"ids": self.coin_id, "vs_currencies": self.vs})
        price = _as_price(((data or {}).get(self.coin_id) or {}).get(self.vs)) if isinstance(data, dict) else None
        if price is None:
            return FALLBACK_CURRENT_USD

        self._cache_set(key, price)
        return price

    def get_historical_price(self, timestamp: int) -> float:
        """Daily quote for the UTC day containing `timestamp` (unix seconds)."""
        if not timestamp or timestamp <= 0:
            return self.get_current_price()

        day = datetime.fromtimestamp(int(timestamp), tz=timezone.utc).strftime("%d-%m-%Y")
        if day in self.history:
            return self.history[day]
        # a day that just failed (429, timeout) is not retried until the TTL runs out
        if self._cache_get(f"failed:{day}"):
            return FALLBACK_HISTORICAL_USD

        data = self._get_json(f"{self.base}/coins/{self.coin_id}/history", {"date": day, "localization": "false"})
        price = None
        if isinstance(data, dict):
            price = _as_price(((data.get("market_data") or {}).get("current_price") or {}).get(self.vs))
        if price is None:
            self._cache_set(f"failed:{day}", True)
            return FALLBACK_HISTORICAL_USD

        self.history[day] = price
        return price


def _as_price(v: Any) -> Optional[float]:
    try:
        p = float(v)
    except (TypeError, ValueError):
        return None
    return p if p > 0 else None
