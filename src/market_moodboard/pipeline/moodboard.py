"""
The paid `analyzeMoodboard` operation: market data -> prompt -> inference -> normalize.

Collaborators are injected; any collaborator failure surfaces as a single `UpstreamError` and no
partial result is produced.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import anyio

from market_moodboard.errors import UpstreamError
from market_moodboard.normalization.normalizer import ResponseNormalizer
from market_moodboard.normalization.schemas import ContextTimestamps
from market_moodboard.pipeline.prompts import build_moodboard_prompt
from market_moodboard.providers.inference import InferenceClient
from market_moodboard.providers.market_data import MarketDataClient

logger = logging.getLogger("market_moodboard.pipeline")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Entrypoint:
    key: str
    description: str

    @property
    def path(self) -> str:
        return f"/entrypoints/{self.key}/invoke"


MOODBOARD_ENTRYPOINT = Entrypoint(
    key="analyzeMoodboard",
    description="Fetch top coins from CoinGecko and analyze market mood using Jatevo AI",
)


async def _complete_with_timeout(inference: InferenceClient, prompt: str, model_id: str, timeout_sec: float) -> str:
    try:
        with anyio.fail_after(timeout_sec):
            return await anyio.to_thread.run_sync(inference.complete, prompt, model_id, abandon_on_cancel=True)
    except TimeoutError as e:
        raise UpstreamError("inference", f"timed out after {timeout_sec:g}s") from e


async def analyze_moodboard(
    *,
    limit: int,
    vs_currency: str,
    market_data: MarketDataClient,
    inference: InferenceClient,
    model_id: str,
    timeout_sec: float,
    normalizer: Optional[ResponseNormalizer] = None,
    clock: Clock = utc_now,
) -> Dict[str, Any]:
    """
    Run one analysis and return the response body:

        {output: NormalizedOutput + date, analyzed_at, model_used, analysis_duration_ms,
         model, validated}
    """
    normalizer = normalizer or ResponseNormalizer()

    coins = await anyio.to_thread.run_sync(market_data.fetch_top_entities, limit, vs_currency)
    if not coins:
        raise UpstreamError("market_data", "No coin data received from CoinGecko")
    logger.info("retrieved %d coins vs_currency=%s", len(coins), vs_currency)

    timestamps = ContextTimestamps.from_clock(clock())
    prompt = build_moodboard_prompt(coins, timestamps)

    started = time.perf_counter()
    raw = await _complete_with_timeout(inference, prompt, model_id, timeout_sec)
    duration_ms = int((time.perf_counter() - started) * 1000)
    logger.info("analysis completed model=%s dur_ms=%d chars=%d", model_id, duration_ms, len(raw or ""))

    normalized = normalizer.normalize(raw, timestamps)
    output: Dict[str, Any] = {
        **normalized.to_wire(),
        "date": timestamps.date,
        "analyzed_at": timestamps.analyzed_at,
        "model_used": model_id,
        "analysis_duration_ms": duration_ms,
    }
    return {"output": output, "model": model_id, "validated": normalized.validated}


__all__ = ["Entrypoint", "MOODBOARD_ENTRYPOINT", "analyze_moodboard", "utc_now"]
