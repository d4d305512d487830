# app.py
import asyncio
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Tuple

import uvicorn
from fastapi import FastAPI, HTTPException

from chains.evm_alchemy import AlchemyClient, WalletTransfers
from core.aggregator import SpendingAggregator
from core.config import Settings, load_settings
from core.models import AggregateResult
from core.report import PRICE_MODES, CURRENT, build_report, empty_report
from core.units import format_units
from enrich.prices import PriceClient
from links import explorer_address_link, explorer_tx_link

logger = logging.getLogger("spend_stats")

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

# The four lists the classifier needs, by WalletTransfers field
FETCHES = ("outgoing_assets", "incoming_assets", "outgoing_native", "incoming_native")

# ============================================================
# HELPERS
# ============================================================

def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

async def fetch_wallet_transfers(alchemy: AlchemyClient, wallet: str) -> Tuple[WalletTransfers, List[str]]:
    """
    Run the four list fetches concurrently and wait for all of them.
    Returns whatever arrived plus the names of the fetches that failed.
    """
    calls = [getattr(alchemy, f"fetch_{name}") for name in FETCHES]
    results = await asyncio.gather(
        *(asyncio.to_thread(fn, wallet) for fn in calls),
        return_exceptions=True,
    )

    bundle = WalletTransfers()
    failed: List[str] = []
    for name, res in zip(FETCHES, results):
        if isinstance(res, Exception):
            logger.warning("fetching %s for %s failed: %s", name, wallet, res)
            failed.append(name)
            continue
        setattr(bundle, name, res)
    return bundle, failed

def _transactions(result: AggregateResult, network: str) -> List[Dict[str, Any]]:
    return [
        {
            "category": a.category,
            "hash": a.tx_hash,
            "amount": format_units(a.amount),
            "timestamp": a.timestamp,
            "explorer": explorer_tx_link(network, a.tx_hash),
        }
        for a in result.attributions
    ]

# ============================================================
# FASTAPI APP
# ============================================================

def create_app(
    settings: Optional[Settings] = None,
    alchemy: Optional[AlchemyClient] = None,
    prices: Optional[PriceClient] = None,
) -> FastAPI:
    settings = settings or load_settings()
    _configure_logging(settings.log_level)

    if alchemy is None and settings.alchemy_api_key:
        alchemy = AlchemyClient(
            api_key=settings.alchemy_api_key,
            network=settings.alchemy_network,
            max_count=settings.transfer_max_count,
            max_pages=settings.transfer_max_pages,
            ttl_seconds=settings.transfer_cache_ttl,
            timeout=settings.request_timeout,
        )
    if prices is None:
        prices = PriceClient(
            base_url=settings.coingecko_base,
            ttl_seconds=settings.price_cache_ttl,
            timeout=settings.request_timeout,
        )
    aggregator = SpendingAggregator(
        marketplace_address=settings.marketplace_address,
        mint_selectors=settings.mint_selectors,
        fallback_fee=settings.fallback_fee_wei,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if alchemy is None:
            logger.error("ALCHEMY_API_KEY is not set; /wallet-stats will answer with zero totals")
        if aggregator.reduced_confidence:
            logger.warning(
                "MARKETPLACE_ADDRESS is not set; sales and mints use the coarse value heuristics"
            )
        logger.info(
            "service started (network=%s, mint selectors=%d)",
            settings.alchemy_network, len(aggregator.mint_selectors),
        )
        yield

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.aggregator = aggregator

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/eth-price")
    async def eth_price():
        price = await asyncio.to_thread(prices.get_current_price)
        return {"price": price}

    @app.get("/wallet-stats")
    async def wallet_stats(
        address: Optional[str] = None,
        price_mode: str = CURRENT,
        include_transactions: bool = False,
    ):
        address = (address or "").strip()
        if not address:
            raise HTTPException(status_code=400, detail="Wallet address is required")
        if not ADDRESS_RE.match(address):
            raise HTTPException(status_code=400, detail="Wallet address must be 0x followed by 40 hex characters")
        if price_mode not in PRICE_MODES:
            raise HTTPException(status_code=400, detail=f"price_mode must be one of: {', '.join(PRICE_MODES)}")

        wallet = address.lower()
        if alchemy is None:
            return {"address": wallet, **empty_report("API key not configured")}

        logger.info("fetching wallet stats for %s (price_mode=%s)", wallet, price_mode)
        transfers, failed = await fetch_wallet_transfers(alchemy, wallet)
        if len(failed) == len(FETCHES):
            return {"address": wallet, **empty_report("Failed to fetch wallet stats")}

        result = aggregator.aggregate(
            transfers.outgoing_assets,
            transfers.incoming_assets,
            transfers.outgoing_native,
            transfers.incoming_native,
        )
        report = await asyncio.to_thread(build_report, result, price_mode, prices)

        body: Dict[str, Any] = {"address": wallet, **report}
        body["partial"] = bool(failed)
        if failed:
            body["failedFetches"] = failed
        body["explorer"] = explorer_address_link(settings.alchemy_network, wallet)
        if include_transactions:
            body["transactions"] = _transactions(result, settings.alchemy_network)
        return body

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
