"""
Environment-driven configuration.

`load_config()` builds an immutable `AgentConfig` that is passed explicitly into the app factory
and collaborators. Nothing here is cached at import time: tests and scripts construct their own.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Mapping, Optional, Tuple

from market_moodboard.errors import ConfigError
from market_moodboard.payments.networks import NETWORKS, USDC_DECIMALS

DEFAULT_PAY_TO = "0xb308ed39d67D0d4BAe5BC2FAEF60c66BBb6AE429"
DEFAULT_JATEVO_ENDPOINT = "https://inference.jatevo.id/v1/chat/completions"
DEFAULT_JATEVO_MODEL = "deepseek-ai/DeepSeek-R1-0528"
DEFAULT_FACILITATOR_URL = "https://facilitator.daydreams.systems"
DEFAULT_COINGECKO_BASE_URL = "https://api.coingecko.com/api/v3"

SETTLEMENT_MODES = {"facilitator", "local"}


@dataclass(frozen=True)
class AgentConfig:
    # Server
    port: int
    api_base_url: str

    # Inference (Jatevo, OpenAI-compatible)
    jatevo_api_key: str
    jatevo_api_endpoint: str
    jatevo_model: str
    inference_timeout_sec: float

    # Payments
    facilitator_url: str
    pay_to: str
    networks: Tuple[str, ...]
    default_price_usdc: str
    default_price: int
    payment_timeout_sec: int
    settlement_mode: str

    # Market data
    coingecko_base_url: str
    market_data_timeout_sec: float

    @property
    def primary_network(self) -> str:
        return self.networks[0]

    @property
    def inference_api_base(self) -> str:
        """LiteLLM wants the API base, not the full chat-completions URL."""
        endpoint = self.jatevo_api_endpoint.rstrip("/")
        suffix = "/chat/completions"
        if endpoint.endswith(suffix):
            return endpoint[: -len(suffix)]
        return endpoint


@dataclass(frozen=True)
class ClientConfig:
    """Caller-side settings used by the scripts and the consistency harness."""

    private_key: str
    api_base_url: str
    network: str
    limit: int
    vs_currency: str
    request_timeout_sec: float

    @property
    def entrypoint_url(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/entrypoints/analyzeMoodboard/invoke"


def usdc_to_base_units(usdc: str | float | int) -> int:
    """Convert a USDC amount to base units (6 decimals), rounding down."""
    try:
        amount = Decimal(str(usdc).strip())
    except InvalidOperation as e:
        raise ConfigError(f"Invalid USDC amount: {usdc!r}") from e
    units = (amount * (10**USDC_DECIMALS)).to_integral_value(rounding=ROUND_FLOOR)
    return int(units)


def _get(env: Mapping[str, str], name: str, default: str = "") -> str:
    return (env.get(name) or "").strip() or default


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _get(env, name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _get(env, name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def _parse_networks(raw: str) -> Tuple[str, ...]:
    names = []
    for part in raw.split(","):
        name = part.strip().lower()
        if not name or name in names:
            continue
        if name not in NETWORKS:
            raise ConfigError(f"Unsupported NETWORK {name!r} (expected one of: {', '.join(sorted(NETWORKS))})")
        names.append(name)
    if not names:
        raise ConfigError("NETWORK must name at least one network")
    return tuple(names)


def load_config(env: Optional[Mapping[str, str]] = None) -> AgentConfig:
    """
    Load and validate service configuration.

    Required: `JATEVO_API_KEY`. Everything else has a default.
    """
    env = os.environ if env is None else env

    jatevo_api_key = _get(env, "JATEVO_API_KEY")
    if not jatevo_api_key:
        raise ConfigError("JATEVO_API_KEY is required. Please set it in your .env file.")

    default_price_usdc = _get(env, "DEFAULT_PRICE_USDC", "0.01")
    raw_price = _get(env, "DEFAULT_PRICE")
    if raw_price:
        try:
            default_price = int(raw_price)
        except ValueError as e:
            raise ConfigError(f"DEFAULT_PRICE must be an integer amount of base units, got {raw_price!r}") from e
    else:
        default_price = usdc_to_base_units(default_price_usdc)
    if default_price <= 0:
        raise ConfigError("Price must be a positive amount of USDC base units")

    settlement_mode = _get(env, "SETTLEMENT_MODE", "facilitator").lower()
    if settlement_mode not in SETTLEMENT_MODES:
        raise ConfigError(f"SETTLEMENT_MODE must be one of {sorted(SETTLEMENT_MODES)}, got {settlement_mode!r}")

    port = _env_int(env, "PORT", 8787)
    return AgentConfig(
        port=port,
        api_base_url=_get(env, "API_BASE_URL", f"http://localhost:{port}").rstrip("/"),
        jatevo_api_key=jatevo_api_key,
        jatevo_api_endpoint=_get(env, "JATEVO_API_ENDPOINT", DEFAULT_JATEVO_ENDPOINT),
        jatevo_model=_get(env, "JATEVO_MODEL", DEFAULT_JATEVO_MODEL),
        inference_timeout_sec=_env_float(env, "INFERENCE_TIMEOUT_SEC", 60.0),
        facilitator_url=_get(env, "FACILITATOR_URL", DEFAULT_FACILITATOR_URL).rstrip("/"),
        pay_to=_get(env, "PAY_TO", DEFAULT_PAY_TO),
        networks=_parse_networks(_get(env, "NETWORK", "base")),
        default_price_usdc=default_price_usdc,
        default_price=default_price,
        payment_timeout_sec=_env_int(env, "PAYMENT_TIMEOUT_SEC", 300),
        settlement_mode=settlement_mode,
        coingecko_base_url=_get(env, "COINGECKO_BASE_URL", DEFAULT_COINGECKO_BASE_URL).rstrip("/"),
        market_data_timeout_sec=_env_float(env, "MARKET_DATA_TIMEOUT_SEC", 15.0),
    )


def load_client_config(env: Optional[Mapping[str, str]] = None) -> ClientConfig:
    env = os.environ if env is None else env

    private_key = _get(env, "PRIVATE_KEY")
    if not private_key:
        raise ConfigError("PRIVATE_KEY environment variable is required")

    network = _parse_networks(_get(env, "NETWORK", "base"))[0]
    return ClientConfig(
        private_key=private_key,
        api_base_url=_get(env, "API_BASE_URL", "http://localhost:8787").rstrip("/"),
        network=network,
        limit=_env_int(env, "LIMIT", 10),
        vs_currency=_get(env, "VS_CURRENCY", "usd"),
        request_timeout_sec=_env_float(env, "REQUEST_TIMEOUT_SEC", 90.0),
    )


__all__ = [
    "AgentConfig",
    "ClientConfig",
    "load_client_config",
    "load_config",
    "usdc_to_base_units",
]
