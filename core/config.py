from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

# Leading 4 bytes of well-known mint entry points
DEFAULT_MINT_SELECTORS: FrozenSet[str] = frozenset({
    "0x40c10f19",  # mint(address,uint256)
    "0xa0712d68",  # mint(uint256)
    "0x6a627842",  # mint(address)
    "0x1249c58b",  # mint()
})

# ~0.0001 ETH, used when the indexer gives no gas metadata
FALLBACK_FEE_WEI = 10**14

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name, default) or default).strip()


def _env_int(name: str, default: int) -> int:
    raw = _env(name, str(default))
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer.") from e


def _env_float(name: str, default: float) -> float:
    raw = _env(name, str(default))
    try:
        return float(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be a number.") from e


def normalize_selector(sel: str) -> str:
    s = (sel or "").strip().lower()
    if not s:
        return ""
    if not s.startswith("0x"):
        s = "0x" + s
    return s[:10]


def normalize_address(addr: Optional[str]) -> str:
    return (addr or "").strip().lower()


@dataclass(frozen=True)
class Settings:
    alchemy_api_key: str = ""
    alchemy_network: str = "base-mainnet"
    marketplace_address: str = ""
    mint_selectors: FrozenSet[str] = field(default=DEFAULT_MINT_SELECTORS)
    fallback_fee_wei: int = FALLBACK_FEE_WEI
    transfer_max_count: int = 1000
    transfer_max_pages: int = 5
    transfer_cache_ttl: int = 60
    price_cache_ttl: int = 30
    coingecko_base: str = "https://api.coingecko.com/api/v3"
    request_timeout: float = 30.0
    log_level: str = "INFO"
    port: int = 8000


def load_settings() -> Settings:
    """Read the environment once. Everything downstream gets the Settings object passed in."""
    extra = {normalize_selector(s) for s in _env("MINT_SELECTORS").split(",")}
    selectors = frozenset(DEFAULT_MINT_SELECTORS | {s for s in extra if s})

    fallback_fee = _env_int("FALLBACK_FEE_WEI", FALLBACK_FEE_WEI)
    if fallback_fee < 0:
        raise RuntimeError("FALLBACK_FEE_WEI must not be negative.")

    return Settings(
        alchemy_api_key=_env("ALCHEMY_API_KEY"),
        alchemy_network=_env("ALCHEMY_NETWORK", "base-mainnet"),
        marketplace_address=normalize_address(_env("MARKETPLACE_ADDRESS")),
        mint_selectors=selectors,
        fallback_fee_wei=fallback_fee,
        transfer_max_count=_env_int("TRANSFER_MAX_COUNT", 1000),
        transfer_max_pages=_env_int("TRANSFER_MAX_PAGES", 5),
        transfer_cache_ttl=_env_int("TRANSFER_CACHE_TTL", 60),
        price_cache_ttl=_env_int("PRICE_CACHE_TTL", 30),
        coingecko_base=_env("COINGECKO_BASE", "https://api.coingecko.com/api/v3").rstrip("/"),
        request_timeout=_env_float("REQUEST_TIMEOUT", 30.0),
        log_level=_env("LOG_LEVEL", "INFO").upper(),
        port=_env_int("PORT", 8000),
    )
