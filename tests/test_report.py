import pytest

from core.models import FEE, MINT, SALE, AggregateResult
from core.report import CURRENT, HISTORICAL, build_report, empty_report

DAY = 86400
MAR_1 = 1709251200  # 2024-03-01 00:00 UTC


class FakePrices:
    def __init__(self, current=2000.0, by_day=None):
        self.current = current
        self.by_day = by_day or {}
        self.current_calls = 0
        self.historical_calls = []

    def get_current_price(self):
        self.current_calls += 1
        return self.current

    def get_historical_price(self, timestamp):
        self.historical_calls.append(timestamp)
        return self.by_day.get(timestamp // DAY if timestamp else None, self.current)


def _result():
    res = AggregateResult(confidence="reduced")
    res.add(FEE, "0x1", 10**14, MAR_1)
    res.add(MINT, "0x1", 10**16, MAR_1)
    res.add(SALE, "0x2", 5 * 10**17, MAR_1 + DAY)
    res.add(SALE, "0x3", 5 * 10**17, MAR_1 + 2 * DAY)
    return res


def test_current_mode():
    prices = FakePrices(2000.0)
    report = build_report(_result(), CURRENT, prices)
    assert report["totalFees"] == "0.000100"
    assert report["totalNFTMints"] == "0.010000"
    assert report["totalNFTPurchases"] == "0.000000"
    assert report["totalNFTSales"] == "1.000000"
    assert report["baseUnits"]["totalNFTSales"] == str(10**18)
    assert report["fiat"] == {
        "totalFees": "0.20",
        "totalNFTMints": "20.00",
        "totalNFTPurchases": "0.00",
        "totalNFTSales": "2000.00",
    }
    assert report["ethPrice"] == 2000.0
    assert report["priceMode"] == "current"
    assert report["confidence"] == "reduced"


def test_current_mode_reads_the_rate_once():
    prices = FakePrices(2000.0)
    build_report(_result(), CURRENT, prices)
    assert prices.current_calls == 1
    assert prices.historical_calls == []


def test_historical_mode_values_each_tx_at_its_own_rate():
    d = MAR_1 // DAY
    prices = FakePrices(9999.0, by_day={d: 1000.0, d + 1: 1500.0, d + 2: 2500.0})
    report = build_report(_result(), HISTORICAL, prices)
    assert report["fiat"]["totalNFTSales"] == "2000.00"
    assert report["fiat"]["totalNFTMints"] == "10.00"
    assert report["fiat"]["totalFees"] == "0.10"
    assert "ethPrice" not in report
    assert prices.current_calls == 0


def test_historical_mode_looks_up_each_day_once():
    res = AggregateResult()
    for i in range(50):
        res.add(FEE, f"0x{i:x}", 10**14, MAR_1 + i * 60)
    res.add(SALE, "0xfeed", 10**18, MAR_1 + DAY)
    res.add(SALE, "0xbeef", 10**18, 0)
    res.add(MINT, "0xcafe", 10**16, 0)

    prices = FakePrices(2000.0)
    build_report(res, HISTORICAL, prices)
    assert prices.historical_calls == [MAR_1, MAR_1 + DAY, 0]


def test_unknown_mode_is_rejected():
    with pytest.raises(ValueError):
        build_report(AggregateResult(), "yesterday", FakePrices())


def test_empty_report():
    report = empty_report("Failed to fetch wallet stats")
    assert report["error"] == "Failed to fetch wallet stats"
    assert report["totalFees"] == "0.000000"
    assert set(report["fiat"].values()) == {"0.00"}
    assert "ethPrice" not in report


def test_add_rejects_unknown_category():
    with pytest.raises(ValueError):
        AggregateResult().add("airdrop", "0x1", 1)
