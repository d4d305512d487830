from __future__ import annotations

EXPLORERS = {
    "base-mainnet": "https://basescan.org",
    "base-sepolia": "https://sepolia.basescan.org",
    "eth-mainnet": "https://etherscan.io",
    "eth-sepolia": "https://sepolia.etherscan.io",
    "opt-mainnet": "https://optimistic.etherscan.io",
    "arb-mainnet": "https://arbiscan.io",
}


def explorer_tx_link(network: str, tx_hash: str) -> str:
    base = EXPLORERS.get(network)
    if not base or not tx_hash:
        return ""
    return f"{base}/tx/{tx_hash}"


def explorer_address_link(network: str, address: str) -> str:
    base = EXPLORERS.get(network)
    if not base or not address:
        return ""
    return f"{base}/address/{address}"
