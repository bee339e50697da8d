from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List

from market_moodboard.config import AgentConfig
from market_moodboard.normalization.normalizer import ResponseNormalizer
from market_moodboard.payments.gate import PaymentGate, RequirementsFactory
from market_moodboard.payments.models import PaymentRequirement
from market_moodboard.payments.networks import USDC_DECIMALS
from market_moodboard.payments.pricing import build_requirements, resource_url
from market_moodboard.payments.settlement import SettlementClient
from market_moodboard.pipeline.moodboard import MOODBOARD_ENTRYPOINT, Clock
from market_moodboard.providers.inference import InferenceClient
from market_moodboard.providers.market_data import MarketDataClient
from market_moodboard.telemetry import InvocationObserver

# x402 discovery hint carried on each requirement.
INVOKE_INPUT_SCHEMA: Dict[str, Any] = {"input": {"type": "http", "method": "POST", "discoverable": True}}


def format_usdc(base_units: int) -> str:
    amount = Decimal(int(base_units)) / (Decimal(10) ** USDC_DECIMALS)
    return f"{amount.normalize():f} USDC"


@dataclass
class AgentServices:
    """Everything a request handler needs; stored on `app.state.services`."""

    config: AgentConfig
    gate: PaymentGate
    settlement: SettlementClient
    market_data: MarketDataClient
    inference: InferenceClient
    normalizer: ResponseNormalizer
    observer: InvocationObserver
    clock: Clock

    def resource_for(self, path: str) -> str:
        return resource_url(self.config, path)


def moodboard_requirements(config: AgentConfig) -> RequirementsFactory:
    def requirements_for(resource: str) -> List[PaymentRequirement]:
        return build_requirements(
            config,
            resource,
            description=MOODBOARD_ENTRYPOINT.description,
            output_schema=INVOKE_INPUT_SCHEMA,
        )

    return requirements_for


__all__ = ["AgentServices", "format_usdc", "moodboard_requirements"]
