from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class NetworkInfo:
    """Chain + USDC contract details needed to build and check EIP-3009 authorizations."""

    name: str
    chain_id: int
    usdc_address: str
    # EIP-712 domain of the USDC contract (name differs between mainnet and testnet deployments).
    token_name: str
    token_version: str = "2"


NETWORKS: Dict[str, NetworkInfo] = {
    "base": NetworkInfo(
        name="base",
        chain_id=8453,
        usdc_address="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        token_name="USD Coin",
    ),
    "base-sepolia": NetworkInfo(
        name="base-sepolia",
        chain_id=84532,
        usdc_address="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        token_name="USDC",
    ),
}

USDC_DECIMALS = 6


def network_info(name: str) -> Optional[NetworkInfo]:
    return NETWORKS.get(str(name or "").strip().lower())


__all__ = ["NETWORKS", "NetworkInfo", "USDC_DECIMALS", "network_info"]
