from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.json_schema import SkipJsonSchema

SCHEMA_VERSION = "moodboard.v1"


class CoinMood(BaseModel):
    model_config = ConfigDict(extra="allow")

    symbol: str = Field(..., min_length=1)
    mood: str = Field(..., min_length=1)
    narrative: str = Field(..., min_length=1)
    score: float = Field(..., ge=0, le=1)
    # May be omitted, but not null.
    price_change_24h: Union[float, SkipJsonSchema[None]] = None
    market_cap_rank: Union[float, SkipJsonSchema[None]] = None


class MoodboardOutput(BaseModel):
    """The fixed output schema the model is asked to produce."""

    model_config = ConfigDict(extra="allow")

    date: str
    coins: List[CoinMood] = Field(..., min_length=1)
    market_sentiment: Union[str, SkipJsonSchema[None]] = None
    analyzed_at: str


@lru_cache(maxsize=1)
def _moodboard_schema() -> Dict[str, Any]:
    return MoodboardOutput.model_json_schema()


def moodboard_json_schema() -> Dict[str, Any]:
    """JSON Schema (Draft 2020-12 compatible) for `MoodboardOutput`. Returns a fresh copy."""
    return copy.deepcopy(_moodboard_schema())


class NormalizedOutput(BaseModel):
    """
    Result of normalizing one raw model reply.

    - `validated=True`: `data` satisfies the schema and `raw_fallback` is None.
    - `validated=False`: `raw_fallback` holds the raw reply verbatim; `data` is the best-effort
      parsed object, or None when nothing parsed.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    schema_version: str = Field(default=SCHEMA_VERSION, alias="schemaVersion")
    data: Optional[Dict[str, Any]] = None
    validated: bool = False
    raw_fallback: Optional[str] = Field(default=None, alias="rawFallback")
    errors: List[str] = Field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        out = self.model_dump(by_alias=True)
        if self.raw_fallback is None:
            out.pop("rawFallback", None)
        return out


def _iso_utc(ts: datetime) -> str:
    ts = ts.astimezone(timezone.utc)
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class ContextTimestamps:
    date: str
    analyzed_at: str

    @classmethod
    def from_clock(cls, now: Optional[datetime] = None) -> "ContextTimestamps":
        ts = now or datetime.now(timezone.utc)
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        ts = ts.astimezone(timezone.utc)
        return cls(date=ts.strftime("%Y-%m-%d"), analyzed_at=_iso_utc(ts))


__all__ = [
    "SCHEMA_VERSION",
    "CoinMood",
    "ContextTimestamps",
    "MoodboardOutput",
    "NormalizedOutput",
    "moodboard_json_schema",
]
