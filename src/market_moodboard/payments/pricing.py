"""
Payment requirements for paid entrypoints.

Requirements are recomputed for every request from the immutable config, so a fixed price
configuration and resource always produce the same challenge.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from market_moodboard.config import AgentConfig
from market_moodboard.payments.models import PaymentRequirement
from market_moodboard.payments.networks import network_info


def build_requirements(
    config: AgentConfig,
    resource: str,
    *,
    description: str = "",
    price: Optional[int] = None,
    output_schema: Optional[Dict[str, Any]] = None,
) -> List[PaymentRequirement]:
    """One `exact` USDC requirement per configured network, primary network first."""
    amount = int(price if price is not None else config.default_price)
    out: List[PaymentRequirement] = []
    for name in config.networks:
        net = network_info(name)
        if net is None:
            continue
        out.append(
            PaymentRequirement(
                scheme="exact",
                network=net.name,
                max_amount_required=str(amount),
                resource=resource,
                description=description,
                mime_type="application/json",
                pay_to=config.pay_to,
                max_timeout_seconds=int(config.payment_timeout_sec),
                asset=net.usdc_address,
                output_schema=output_schema,
                extra={"name": net.token_name, "version": net.token_version},
            )
        )
    return out


def resource_url(config: AgentConfig, path: str) -> str:
    return f"{config.api_base_url.rstrip('/')}/{path.lstrip('/')}"


__all__ = ["build_requirements", "resource_url"]
