from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

OUTGOING = "outgoing"
INCOMING = "incoming"

NATIVE = "native"
ERC721 = "erc721"
ERC1155 = "erc1155"
ASSET_CATEGORIES = frozenset({ERC721, ERC1155})

# Attribution categories
FEE = "fee"
MINT = "mint"
PURCHASE = "purchase"
SALE = "sale"


@dataclass(frozen=True)
class TransferRecord:
    """One indexed movement of native currency or an NFT, seen from the queried wallet."""
    direction: str              # "outgoing" | "incoming"
    category: str               # "native" | "erc721" | "erc1155"
    counterparty: str           # lower-cased; recipient if outgoing, sender if incoming
    tx_hash: str = ""           # lower-cased, "" if the indexer gave none
    value: int = 0              # native currency moved, in wei
    call_data_prefix: str = ""  # "0x" + 4-byte selector, lower-cased
    gas_used: Optional[int] = None
    gas_price: Optional[int] = None
    timestamp: int = 0          # unix seconds (best effort)
    contract: str = NATIVE      # token contract, or "native"
    unique_id: str = ""         # indexer's per-transfer id, "" if unknown
    meta: Dict = field(default_factory=dict, compare=False, hash=False)

    @property
    def is_native(self) -> bool:
        return self.category == NATIVE

    @property
    def is_asset(self) -> bool:
        return self.category in ASSET_CATEGORIES


@dataclass(frozen=True)
class Attribution:
    category: str               # "fee" | "mint" | "purchase" | "sale"
    tx_hash: str
    amount: int                 # wei
    timestamp: int = 0


@dataclass
class AggregateResult:
    total_fees: int = 0
    total_nft_mints: int = 0
    total_nft_purchases: int = 0
    total_nft_sales: int = 0
    confidence: str = "full"    # "full" | "reduced"
    attributions: List[Attribution] = field(default_factory=list)

    def add(self, category: str, tx_hash: str, amount: int, timestamp: int = 0) -> None:
        if amount <= 0:
            return
        if category == FEE:
            self.total_fees += amount
        elif category == MINT:
            self.total_nft_mints += amount
        elif category == PURCHASE:
            self.total_nft_purchases += amount
        elif category == SALE:
            self.total_nft_sales += amount
        else:
            raise ValueError(f"unknown attribution category: {category}")
        self.attributions.append(Attribution(category, tx_hash, amount, timestamp))

    def totals(self) -> Dict[str, int]:
        return {
            "totalFees": self.total_fees,
            "totalNFTMints": self.total_nft_mints,
            "totalNFTPurchases": self.total_nft_purchases,
            "totalNFTSales": self.total_nft_sales,
        }
