from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from core.models import FEE, MINT, PURCHASE, SALE, AggregateResult
from core.units import format_units, to_fiat

CURRENT = "current"
HISTORICAL = "historical"
PRICE_MODES = (CURRENT, HISTORICAL)
SECONDS_PER_DAY = 86400

_KEYS = {
    FEE: "totalFees",
    MINT: "totalNFTMints",
    PURCHASE: "totalNFTPurchases",
    SALE: "totalNFTSales",
}

def _day(timestamp: Any) -> Optional[int]:
    """UTC day number, None when the timestamp is unknown."""
    if not isinstance(timestamp, int) or timestamp <= 0:
        return None
    return timestamp // SECONDS_PER_DAY


def fiat_totals(
    result: AggregateResult,
    mode: str,
    prices: Any,
    current_rate: Optional[float] = None,
) -> Dict[str, Decimal]:
    """
    current:    every total valued at today's rate
    historical: each attributed tx valued at the rate of its own UTC day,
                one price lookup per distinct day
    """
    if mode == HISTORICAL:
        rates: Dict[Optional[int], float] = {}
        totals = {k: Decimal("0.00") for k in _KEYS.values()}
        for a in result.attributions:
            day = _day(a.timestamp)
            if day not in rates:
                rates[day] = prices.get_historical_price(a.timestamp if day is not None else 0)
            totals[_KEYS[a.category]] += to_fiat(a.amount, rates[day])
        return totals

    rate = prices.get_current_price() if current_rate is None else current_rate
    return {k: to_fiat(v, rate) for k, v in result.totals().items()}


def build_report(result: AggregateResult, mode: str, prices: Any) -> Dict[str, Any]:
    if mode not in PRICE_MODES:
        raise ValueError(f"price mode must be one of {PRICE_MODES}, got {mode!r}")

    current_rate = prices.get_current_price() if mode == CURRENT else None

    totals = result.totals()
    report: Dict[str, Any] = {k: format_units(v) for k, v in totals.items()}
    report["baseUnits"] = {k: str(v) for k, v in totals.items()}
    report["fiat"] = {k: f"{v:.2f}" for k, v in fiat_totals(result, mode, prices, current_rate).items()}
    report["priceMode"] = mode
    if mode == CURRENT:
        report["ethPrice"] = current_rate
    report["confidence"] = result.confidence
    return report


def empty_report(error: str) -> Dict[str, Any]:
    """Zero totals for when nothing could be fetched; the UI decides whether to offer a retry."""
    report = build_report(AggregateResult(), CURRENT, _NoPrices())
    report.pop("ethPrice", None)
    report["error"] = error
    return report


class _NoPrices:
    def get_current_price(self) -> float:
        return 0.0

    def get_historical_price(self, timestamp: int) -> float:
        return 0.0
