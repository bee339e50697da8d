from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_CURRENCY_RE = re.compile(r"^[a-z]{2,10}$")


class InvocationRequest(BaseModel):
    """Input for `analyzeMoodboard`. Validated before any paid work."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    limit: int = Field(default=10, ge=1, le=50, description="Number of top coins to analyze")
    vs_currency: str = Field(default="usd", description="Currency for price data")

    @field_validator("vs_currency", mode="before")
    @classmethod
    def _normalize_currency(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower()
            if not _CURRENCY_RE.match(v):
                raise ValueError("vs_currency must be 2-10 ASCII letters")
        return v


__all__ = ["InvocationRequest"]
