import pytest

from core.config import DEFAULT_MINT_SELECTORS, FALLBACK_FEE_WEI, load_settings, normalize_selector

ENV = [
    "ALCHEMY_API_KEY", "ALCHEMY_NETWORK", "MARKETPLACE_ADDRESS", "MINT_SELECTORS",
    "FALLBACK_FEE_WEI", "TRANSFER_MAX_PAGES", "REQUEST_TIMEOUT", "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    s = load_settings()
    assert s.alchemy_api_key == ""
    assert s.alchemy_network == "base-mainnet"
    assert s.marketplace_address == ""
    assert s.mint_selectors == DEFAULT_MINT_SELECTORS
    assert s.fallback_fee_wei == FALLBACK_FEE_WEI == 10**14
    assert s.log_level == "INFO"


def test_overrides(monkeypatch):
    monkeypatch.setenv("ALCHEMY_API_KEY", " abc ")
    monkeypatch.setenv("MARKETPLACE_ADDRESS", "0x00000000000000ADc04C56Bf30aC9d3c0aAF14dC")
    monkeypatch.setenv("MINT_SELECTORS", "0xDEADBEEF, 12345678,,")
    monkeypatch.setenv("FALLBACK_FEE_WEI", "5")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    s = load_settings()
    assert s.alchemy_api_key == "abc"
    assert s.marketplace_address == "0x00000000000000adc04c56bf30ac9d3c0aaf14dc"
    assert s.mint_selectors == DEFAULT_MINT_SELECTORS | {"0xdeadbeef", "0x12345678"}
    assert s.fallback_fee_wei == 5
    assert s.log_level == "DEBUG"


@pytest.mark.parametrize("name,value", [
    ("FALLBACK_FEE_WEI", "lots"),
    ("FALLBACK_FEE_WEI", "-1"),
    ("TRANSFER_MAX_PAGES", "1.5"),
    ("REQUEST_TIMEOUT", "soon"),
])
def test_bad_values_raise(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(RuntimeError):
        load_settings()


def test_normalize_selector():
    assert normalize_selector("A0712D68") == "0xa0712d68"
    assert normalize_selector("0xa0712d68ffff") == "0xa0712d68"
    assert normalize_selector("  ") == ""
