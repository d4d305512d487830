from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from core.models import ERC721, ERC1155, INCOMING, NATIVE, OUTGOING, TransferRecord
from core.units import parse_int, to_base_units

logger = logging.getLogger(__name__)

# Alchemy transfer category -> our category
CATEGORY_MAP = {
    "external": NATIVE,
    "internal": NATIVE,
    "erc721": ERC721,
    "specialnft": ERC721,   # CryptoPunks-style contracts
    "erc1155": ERC1155,
}

NFT_CATEGORIES = ["erc721", "erc1155", "specialnft"]

# Alchemy only indexes internal transfers on these networks
INTERNAL_TRANSFER_NETWORKS = {"eth-mainnet", "polygon-mainnet"}


class AlchemyError(RuntimeError):
    """alchemy_getAssetTransfers failed (HTTP error or JSON-RPC error payload)."""


def _lower(s: Optional[str]) -> str:
    return (s or "").lower()


@dataclass
class WalletTransfers:
    outgoing_assets: List[TransferRecord] = field(default_factory=list)
    incoming_assets: List[TransferRecord] = field(default_factory=list)
    outgoing_native: List[TransferRecord] = field(default_factory=list)
    incoming_native: List[TransferRecord] = field(default_factory=list)

    def __len__(self) -> int:
        return (
            len(self.outgoing_assets) + len(self.incoming_assets)
            + len(self.outgoing_native) + len(self.incoming_native)
        )


def parse_asset_transfers(transfers: Any, wallet: str) -> List[TransferRecord]:
    """
    Normalize `result.transfers` items from alchemy_getAssetTransfers into TransferRecords
    relative to `wallet`. Items we can't place (unknown category, wallet on neither side)
    are skipped; bad numbers become 0 / None.
    """
    out: List[TransferRecord] = []
    if not isinstance(transfers, list):
        return out

    w = _lower(wallet)
    for t in transfers:
        if not isinstance(t, dict):
            continue
        rec = _to_record(t, w)
        if rec is not None:
            out.append(rec)
    return out


def _to_record(t: Dict[str, Any], wallet: str) -> Optional[TransferRecord]:
    category = CATEGORY_MAP.get(_lower(t.get("category")))
    if not category:
        return None

    f = _lower(t.get("from") or t.get("fromAddress"))
    to = _lower(t.get("to") or t.get("toAddress"))
    if f == wallet:
        direction, counterparty = OUTGOING, to
    elif to == wallet:
        direction, counterparty = INCOMING, f
    else:
        return None

    raw = t.get("rawContract") or {}
    meta = t.get("metadata") or {}
    if not isinstance(raw, dict):
        raw = {}
    if not isinstance(meta, dict):
        meta = {}

    value = 0
    if category == NATIVE:
        # rawContract.value is exact hex wei; `value` is a float in ETH
        value = parse_int(raw.get("value")) or to_base_units(t.get("value"))
        value = max(value, 0)

    return TransferRecord(
        direction=direction,
        category=category,
        counterparty=counterparty,
        tx_hash=_lower(t.get("hash")),
        value=value,
        call_data_prefix=_call_data_prefix(t, raw, meta),
        gas_used=parse_int(meta.get("gasUsed", t.get("gasUsed"))),
        gas_price=parse_int(meta.get("gasPrice", t.get("gasPrice", t.get("effectiveGasPrice")))),
        timestamp=_parse_timestamp(meta.get("blockTimestamp")),
        contract=_lower(raw.get("address")) or NATIVE,
        unique_id=str(t.get("uniqueId") or ""),
        meta={"asset": t.get("asset"), "block": t.get("blockNum")},
    )


def _call_data_prefix(t: Dict[str, Any], raw: Dict[str, Any], meta: Dict[str, Any]) -> str:
    """
    alchemy_getAssetTransfers itself returns no call data, so this is "" for live
    Alchemy results and the selector-mint rule only fires for sources that attach
    the tx input (an `input` field merged in by the caller, or rawContract.rawInput).
    """
    data = t.get("input") or raw.get("rawInput") or meta.get("input") or ""
    if not isinstance(data, str):
        return ""
    data = data.strip().lower()
    if not data.startswith("0x") or len(data) < 10:
        return ""
    return data[:10]


def _parse_timestamp(value: Any) -> int:
    """ISO-8601 blockTimestamp ("2024-03-01T12:00:00.000Z") -> unix seconds, 0 if unknown."""
    if not isinstance(value, str) or not value:
        return 0
    try:
        return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp())
    except ValueError:
        return 0


class AlchemyClient:
    """
    alchemy_getAssetTransfers over JSON-RPC:
      POST https://{network}.g.alchemy.com/v2/{api_key}
    Pages are followed through `pageKey` up to `max_pages`.
    """

    def __init__(
        self,
        api_key: str,
        network: str = "base-mainnet",
        max_count: int = 1000,
        max_pages: int = 5,
        ttl_seconds: int = 60,
        max_cache_entries: int = 256,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ValueError("Alchemy api_key is required")
        self.network = network
        self.url = f"https://{network}.g.alchemy.com/v2/{api_key}"
        self.max_count = int(max_count)
        self.max_pages = max(int(max_pages), 1)
        self.ttl = ttl_seconds
        self.max_cache_entries = max(int(max_cache_entries), 1)
        self.timeout = timeout
        self.cache: Dict[str, tuple[float, Any]] = {}

        if session is None:
            session = requests.Session()
            # JSON-RPC reads are idempotent, so POST is safe to retry here
            retries = Retry(
                total=3,
                connect=3,
                read=3,
                backoff_factor=0.5,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["POST"],
                raise_on_status=False,
            )
            adapter = HTTPAdapter(max_retries=retries)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self.session = session

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
        if self.ttl <= 0:
            return
        now = time.time()
        # every lookup is keyed by wallet, so stale entries for other wallets pile up
        for k in [k for k, (ts, _) in self.cache.items() if now - ts > self.ttl]:
            self.cache.pop(k, None)
        self.cache.pop(key, None)
        while len(self.cache) >= self.max_cache_entries:
            self.cache.pop(next(iter(self.cache)))
        self.cache[key] = (now, val)

    def get_asset_transfers(self, **params: Any) -> List[Dict[str, Any]]:
        all_transfers: List[Dict[str, Any]] = []
        page_key = None

        for page in range(self.max_pages):
            p = {
                "fromBlock": "0x0",
                "toBlock": "latest",
                "withMetadata": True,
                "excludeZeroValue": False,
                "maxCount": hex(self.max_count),
                **params,
            }
            if page_key:
                p["pageKey"] = page_key

            payload = {"jsonrpc": "2.0", "id": page + 1, "method": "alchemy_getAssetTransfers", "params": [p]}
            try:
                r = self.session.post(self.url, json=payload, timeout=self.timeout)
                r.raise_for_status()
                data = r.json()
            except (requests.RequestException, ValueError) as e:
                raise AlchemyError(f"alchemy_getAssetTransfers request failed: {e}") from e

            if not isinstance(data, dict):
                raise AlchemyError(f"unexpected response: {data!r}")
            if data.get("error"):
                err = data["error"]
                msg = err.get("message", "Unknown error") if isinstance(err, dict) else str(err)
                raise AlchemyError(msg)

            result = data.get("result") or {}
            all_transfers.extend(result.get("transfers") or [])

            page_key = result.get("pageKey")
            if not page_key:
                break
        else:
            if page_key:
                logger.warning("transfer list truncated after %d pages (%s)", self.max_pages, params)

        return all_transfers

    def native_categories(self, direction: str) -> List[str]:
        if direction == INCOMING and self.network in INTERNAL_TRANSFER_NETWORKS:
            return ["external", "internal"]
        return ["external"]

    def fetch_transfers(self, wallet: str, direction: str, categories: Sequence[str]) -> List[TransferRecord]:
        w = _lower(wallet)
        key = f"transfers:{self.network}:{w}:{direction}:{','.join(categories)}"
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        side = "fromAddress" if direction == OUTGOING else "toAddress"
        raw = self.get_asset_transfers(**{side: w, "category": list(categories)})
        records = parse_asset_transfers(raw, w)
        logger.info("fetched %d %s %s transfers for %s", len(records), direction, "/".join(categories), w)

        self._cache_set(key, records)
        return records

    def fetch_outgoing_assets(self, wallet: str) -> List[TransferRecord]:
        return self.fetch_transfers(wallet, OUTGOING, NFT_CATEGORIES)

    def fetch_incoming_assets(self, wallet: str) -> List[TransferRecord]:
        return self.fetch_transfers(wallet, INCOMING, NFT_CATEGORIES)

    def fetch_outgoing_native(self, wallet: str) -> List[TransferRecord]:
        return self.fetch_transfers(wallet, OUTGOING, self.native_categories(OUTGOING))

    def fetch_incoming_native(self, wallet: str) -> List[TransferRecord]:
        return self.fetch_transfers(wallet, INCOMING, self.native_categories(INCOMING))

    def fetch_wallet_transfers(self, wallet: str) -> WalletTransfers:
        """Sequential variant of the four fetches; the web app runs them concurrently."""
        return WalletTransfers(
            outgoing_assets=self.fetch_outgoing_assets(wallet),
            incoming_assets=self.fetch_incoming_assets(wallet),
            outgoing_native=self.fetch_outgoing_native(wallet),
            incoming_native=self.fetch_incoming_native(wallet),
        )
