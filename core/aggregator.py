from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set

from core.config import DEFAULT_MINT_SELECTORS, FALLBACK_FEE_WEI, ZERO_ADDRESS, normalize_address, normalize_selector
from core.models import FEE, INCOMING, MINT, OUTGOING, PURCHASE, SALE, AggregateResult, TransferRecord

logger = logging.getLogger(__name__)


def _records(items: Optional[Iterable]) -> List[TransferRecord]:
    if not items:
        return []
    return [r for r in items if isinstance(r, TransferRecord)]


def _pool(*lists: Optional[Iterable]) -> List[TransferRecord]:
    """
    Concatenate the input lists. A record that already came in through an earlier
    list (same object, or same indexer unique_id) is dropped; repeats inside one
    list are separate transfers and all kept.
    """
    pooled: List[TransferRecord] = []
    seen: Set = set()
    for items in lists:
        here: Set = set()
        for r in _records(items):
            key = r.unique_id or id(r)
            if key in seen:
                continue
            here.add(key)
            pooled.append(r)
        seen |= here
    return pooled


def _value(rec: TransferRecord) -> int:
    v = rec.value
    return v if isinstance(v, int) and v > 0 else 0


def _exact_fee(rec: TransferRecord) -> Optional[int]:
    gu, gp = rec.gas_used, rec.gas_price
    if isinstance(gu, int) and isinstance(gp, int) and gu >= 0 and gp >= 0:
        return gu * gp
    return None


def _index_by_hash(records: List[TransferRecord]) -> Dict[str, List[TransferRecord]]:
    idx: Dict[str, List[TransferRecord]] = defaultdict(list)
    for r in records:
        if r.tx_hash:
            idx[r.tx_hash].append(r)
    return dict(idx)


class SpendingAggregator:
    """
    Splits a wallet's transfers into gas fees, NFT mints, marketplace purchases and
    marketplace sales. Totals are integer wei.

    Rules run in a fixed order and an asset transfer claimed by one rule is not
    looked at again by the later ones:
      1. fees      every outgoing tx, exact gasUsed*gasPrice or the fallback estimate
      2. sales     NFT sent to the marketplace + native received in the same tx
      3. mints     NFT from the zero address, or a mint selector, + native paid in the same tx
      4. purchases NFT moved via the marketplace + native paid in the same tx
    Anything left is a plain transfer and counts nowhere.

    Without a marketplace address the result is marked "reduced": every positive
    incoming native transfer counts as a sale and any remaining paid NFT transfer
    counts as a mint. Both over-count (refunds, p2p payments), which is why the
    result carries the flag.
    """

    def __init__(
        self,
        marketplace_address: Optional[str] = None,
        mint_selectors: Iterable[str] = DEFAULT_MINT_SELECTORS,
        fallback_fee: int = FALLBACK_FEE_WEI,
    ):
        self.marketplace = normalize_address(marketplace_address)
        self.mint_selectors = frozenset(s for s in (normalize_selector(x) for x in mint_selectors) if s)
        self.fallback_fee = max(int(fallback_fee), 0)

    @property
    def reduced_confidence(self) -> bool:
        return not self.marketplace

    def aggregate(
        self,
        outgoing_transfers: Optional[Iterable[TransferRecord]],
        incoming_transfers: Optional[Iterable[TransferRecord]],
        outgoing_native: Optional[Iterable[TransferRecord]],
        incoming_native: Optional[Iterable[TransferRecord]],
    ) -> AggregateResult:
        pooled = _pool(outgoing_transfers, incoming_transfers, outgoing_native, incoming_native)

        out_assets: List[TransferRecord] = []
        in_assets: List[TransferRecord] = []
        out_native: List[TransferRecord] = []
        in_native: List[TransferRecord] = []
        for r in pooled:
            if r.is_asset:
                bucket = out_assets if r.direction == OUTGOING else in_assets if r.direction == INCOMING else None
            elif r.is_native:
                bucket = out_native if r.direction == OUTGOING else in_native if r.direction == INCOMING else None
            else:
                bucket = None
            if bucket is not None:
                bucket.append(r)

        result = AggregateResult(confidence="reduced" if self.reduced_confidence else "full")

        out_native_by_hash = _index_by_hash(out_native)
        in_native_by_hash = _index_by_hash(in_native)
        in_assets_by_hash = _index_by_hash(in_assets)

        claimed: Set[int] = set()

        self._add_fees(result, out_assets + out_native)
        sold = self._add_sales(result, out_assets, in_native, in_native_by_hash, claimed)
        minted = self._add_mints(result, out_assets, in_assets, out_native, out_native_by_hash, in_assets_by_hash, claimed)
        purchased = self._add_purchases(result, out_assets + in_assets, out_native_by_hash, minted, claimed)

        logger.debug(
            "aggregated %d records: %d sold, %d minted, %d purchased, %d ignored asset transfers (confidence=%s)",
            len(pooled), len(sold), len(minted), len(purchased),
            len(out_assets) + len(in_assets) - len(claimed),
            result.confidence,
        )
        return result

    # ------------------------------------------------------------------
    # rules
    # ------------------------------------------------------------------

    def _add_fees(self, result: AggregateResult, outgoing: List[TransferRecord]) -> None:
        # key -> (exact, fee, timestamp); an exact fee replaces an earlier estimate
        fees: Dict[str, tuple] = {}
        for i, rec in enumerate(outgoing):
            key = rec.tx_hash or f"#{i}"
            exact = _exact_fee(rec)
            prev = fees.get(key)
            if exact is not None:
                if prev is None or not prev[0]:
                    fees[key] = (True, exact, rec.timestamp)
            elif prev is None:
                fees[key] = (False, self.fallback_fee, rec.timestamp)

        for key, (_exact, fee, ts) in fees.items():
            result.add(FEE, "" if key.startswith("#") else key, fee, ts)

    def _add_sales(
        self,
        result: AggregateResult,
        out_assets: List[TransferRecord],
        in_native: List[TransferRecord],
        in_native_by_hash: Dict[str, List[TransferRecord]],
        claimed: Set[int],
    ) -> Set[str]:
        sold: Set[str] = set()

        if self.reduced_confidence:
            proceeds: Dict[str, List[TransferRecord]] = defaultdict(list)
            for i, rec in enumerate(in_native):
                if _value(rec) > 0:
                    proceeds[rec.tx_hash or f"#{i}"].append(rec)
            for key, recs in proceeds.items():
                h = "" if key.startswith("#") else key
                result.add(SALE, h, sum(_value(r) for r in recs), recs[0].timestamp)
                sold.add(key)
            return sold

        mp = self.marketplace
        for rec in out_assets:
            payments = in_native_by_hash.get(rec.tx_hash) if rec.tx_hash else None
            if not payments:
                continue
            if rec.counterparty != mp and not any(p.counterparty == mp for p in payments):
                continue
            claimed.add(id(rec))
            if rec.tx_hash in sold:
                continue
            sold.add(rec.tx_hash)
            result.add(SALE, rec.tx_hash, sum(_value(p) for p in payments), rec.timestamp or payments[0].timestamp)
        return sold

    def _add_mints(
        self,
        result: AggregateResult,
        out_assets: List[TransferRecord],
        in_assets: List[TransferRecord],
        out_native: List[TransferRecord],
        out_native_by_hash: Dict[str, List[TransferRecord]],
        in_assets_by_hash: Dict[str, List[TransferRecord]],
        claimed: Set[int],
    ) -> Set[str]:
        minted: Set[str] = set()

        def paid(h: str) -> int:
            return sum(_value(p) for p in out_native_by_hash.get(h, ()))

        # NFT that came out of the zero address, paid for in the same tx
        for rec in in_assets + out_assets:
            if id(rec) in claimed or rec.counterparty != ZERO_ADDRESS or not rec.tx_hash:
                continue
            if rec.tx_hash not in out_native_by_hash:
                continue
            claimed.add(id(rec))
            if rec.tx_hash in minted:
                continue
            minted.add(rec.tx_hash)
            result.add(MINT, rec.tx_hash, paid(rec.tx_hash), rec.timestamp)

        # payment that called a known mint function and brought an NFT in
        for nat in out_native:
            h = nat.tx_hash
            if not h or h in minted or nat.call_data_prefix not in self.mint_selectors:
                continue
            if h not in in_assets_by_hash:
                continue
            claimed.update(id(a) for a in in_assets_by_hash[h])
            minted.add(h)
            result.add(MINT, h, paid(h), nat.timestamp)

        if not self.reduced_confidence:
            return minted

        # Coarse fallback: a paid NFT transfer with no better explanation is a mint.
        # Ordinary paid p2p transfers land here too.
        for i, rec in enumerate(in_assets + out_assets):
            if id(rec) in claimed:
                continue
            amount = paid(rec.tx_hash) if rec.tx_hash else 0
            if amount <= 0:
                amount = _value(rec)
            if amount <= 0:
                continue
            claimed.add(id(rec))
            key = rec.tx_hash or f"#{i}"
            if key in minted:
                continue
            minted.add(key)
            result.add(MINT, rec.tx_hash, amount, rec.timestamp)
        return minted

    def _add_purchases(
        self,
        result: AggregateResult,
        assets: List[TransferRecord],
        out_native_by_hash: Dict[str, List[TransferRecord]],
        minted: Set[str],
        claimed: Set[int],
    ) -> Set[str]:
        purchased: Set[str] = set()
        if self.reduced_confidence:
            return purchased

        mp = self.marketplace
        for rec in assets:
            h = rec.tx_hash
            if id(rec) in claimed or not h or h in minted:
                continue
            payments = out_native_by_hash.get(h, ())
            amount = sum(_value(p) for p in payments)
            if amount <= 0:
                continue
            if rec.counterparty != mp and not any(p.counterparty == mp for p in payments):
                continue
            claimed.add(id(rec))
            if h in purchased:
                continue
            purchased.add(h)
            result.add(PURCHASE, h, amount, rec.timestamp)
        return purchased


def aggregate(
    outgoing_transfers: Optional[Iterable[TransferRecord]],
    incoming_transfers: Optional[Iterable[TransferRecord]],
    outgoing_native: Optional[Iterable[TransferRecord]],
    incoming_native: Optional[Iterable[TransferRecord]],
    known_marketplace_address: Optional[str] = None,
    mint_selectors: Iterable[str] = DEFAULT_MINT_SELECTORS,
    fallback_fee: int = FALLBACK_FEE_WEI,
) -> AggregateResult:
    agg = SpendingAggregator(known_marketplace_address, mint_selectors, fallback_fee)
    return agg.aggregate(outgoing_transfers, incoming_transfers, outgoing_native, incoming_native)
