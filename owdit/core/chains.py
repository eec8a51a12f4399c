"""Supported EVM chain configurations."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ChainConfig:
    """Configuration for a supported EVM chain."""

    chain_id: int
    name: str
    explorer_url: str
    rpc_url: str
    native_currency: str = "ETH"
    sourcify: bool = True
    is_testnet: bool = False


# ── Chain Registry ───────────────────────────────────────────────────────────

CHAINS: dict[int, ChainConfig] = {
    1: ChainConfig(
        chain_id=1,
        name="Ethereum",
        explorer_url="https://etherscan.io",
        rpc_url="https://eth.llamarpc.com",
    ),
    137: ChainConfig(
        chain_id=137,
        name="Polygon",
        explorer_url="https://polygonscan.com",
        rpc_url="https://polygon.llamarpc.com",
        native_currency="MATIC",
    ),
    56: ChainConfig(
        chain_id=56,
        name="BNB Smart Chain",
        explorer_url="https://bscscan.com",
        rpc_url="https://binance.llamarpc.com",
        native_currency="BNB",
    ),
    42161: ChainConfig(
        chain_id=42161,
        name="Arbitrum One",
        explorer_url="https://arbiscan.io",
        rpc_url="https://arbitrum.llamarpc.com",
    ),
    10: ChainConfig(
        chain_id=10,
        name="Optimism",
        explorer_url="https://optimistic.etherscan.io",
        rpc_url="https://optimism.llamarpc.com",
    ),
    8453: ChainConfig(
        chain_id=8453,
        name="Base",
        explorer_url="https://basescan.org",
        rpc_url="https://base.llamarpc.com",
    ),
    11155111: ChainConfig(
        chain_id=11155111,
        name="Sepolia",
        explorer_url="https://sepolia.etherscan.io",
        rpc_url="https://rpc.sepolia.org",
        is_testnet=True,
    ),
}


def get_chain_config(chain_id: int) -> ChainConfig | None:
    """Look up a chain by id; returns None when unsupported."""
    return CHAINS.get(chain_id)
