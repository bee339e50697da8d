"""
Inference collaborator: one chat completion against an OpenAI-compatible endpoint (Jatevo),
through `dspy.LM` / LiteLLM.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol

from market_moodboard.errors import UpstreamError

logger = logging.getLogger("market_moodboard.inference")

SYSTEM_MESSAGE = (
    "You are a JSON-only API. You MUST respond with ONLY valid JSON. "
    "No explanations, no markdown, no code blocks, no reasoning, no thinking process. "
    "Just pure JSON starting with { and ending with }."
)

DEFAULT_TEMPERATURE = 0.2
DEFAULT_MAX_TOKENS = 2000


class InferenceClient(Protocol):
    def complete(self, prompt: str, model_id: str) -> str:
        ...


def _prefixed_model(model: str) -> str:
    # LiteLLM routes OpenAI-compatible endpoints through the `openai/` provider prefix.
    m = str(model or "").strip()
    if m.startswith("openai/"):
        return m
    return f"openai/{m}"


def _first_text(outputs: Any) -> str:
    """dspy.LM returns a list of strings, or dicts with a `text` key for reasoning models."""
    if not isinstance(outputs, list) or not outputs:
        return ""
    first = outputs[0]
    if isinstance(first, dict):
        return str(first.get("text") or "")
    return str(first or "")


class DspyInference:
    collaborator = "inference"

    def __init__(
        self,
        *,
        api_base: str,
        api_key: str,
        timeout_sec: float = 60.0,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        self.api_base = api_base
        self.api_key = api_key
        self.timeout_sec = float(timeout_sec)
        self.temperature = float(temperature)
        self.max_tokens = int(max_tokens)

    def _make_lm(self, model_id: str) -> Any:
        try:
            import dspy
        except Exception as e:
            raise UpstreamError(self.collaborator, f"DSPy import failed: {type(e).__name__}: {e}") from e

        return dspy.LM(
            model=_prefixed_model(model_id),
            api_base=self.api_base,
            api_key=self.api_key,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            top_p=1,
            timeout=self.timeout_sec,
            num_retries=0,
            cache=False,
        )

    def complete(self, prompt: str, model_id: str) -> str:
        lm = self._make_lm(model_id)
        messages: List[dict] = [
            {"role": "system", "content": SYSTEM_MESSAGE},
            {"role": "user", "content": prompt},
        ]
        try:
            outputs = lm(messages=messages)
        except Exception as e:
            raise UpstreamError(self.collaborator, f"{type(e).__name__}: {e}") from e

        if not isinstance(outputs, list) or not outputs:
            raise UpstreamError(self.collaborator, "No response from Jatevo API")
        text = _first_text(outputs)
        logger.debug("inference model=%s chars=%d", model_id, len(text))
        return text


def make_inference(config: Any, *, timeout_sec: Optional[float] = None) -> DspyInference:
    """Build the inference collaborator from an `AgentConfig`."""
    return DspyInference(
        api_base=config.inference_api_base,
        api_key=config.jatevo_api_key,
        timeout_sec=timeout_sec if timeout_sec is not None else config.inference_timeout_sec,
    )


__all__ = ["DspyInference", "InferenceClient", "SYSTEM_MESSAGE", "make_inference"]
