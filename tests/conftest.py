from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

_REPO_ROOT = Path(__file__).resolve().parents[1]
_SRC = _REPO_ROOT / "src"
if _SRC.exists():
    sys.path.insert(0, str(_SRC))

from market_moodboard.config import AgentConfig, load_config  # noqa: E402
from market_moodboard.payments.settlement import LocalSettlement  # noqa: E402
from market_moodboard.telemetry import InvocationObserver  # noqa: E402

TEST_PRIVATE_KEY = "0x" + "11" * 32
PAYEE = "0x2222222222222222222222222222222222222222"
BASE_URL = "http://testserver"
FIXED_NOW = datetime(2025, 1, 15, 12, 30, 45, 123000, tzinfo=timezone.utc)

COINS: List[Dict[str, Any]] = [
    {"id": "bitcoin", "symbol": "btc", "current_price": 64000.5, "price_change_percentage_24h": -2.09, "market_cap_rank": 1},
    {"id": "ethereum", "symbol": "eth", "current_price": 3100.25, "price_change_percentage_24h": 1.5, "market_cap_rank": 2},
]

VALID_REPLY = json.dumps(
    {
        "date": "2020-01-01",
        "coins": [
            {"symbol": "BTC", "mood": "📉", "narrative": "bearish decline", "score": 0.65, "price_change_24h": -2.09, "market_cap_rank": 1},
            {"symbol": "ETH", "mood": "📈", "narrative": "steady climb", "score": 0.7, "price_change_24h": 1.5, "market_cap_rank": 2},
        ],
        "market_sentiment": "Mixed",
        "analyzed_at": "2020-01-01T00:00:00.000Z",
    },
    ensure_ascii=False,
)


def make_config(**overrides: str) -> AgentConfig:
    env = {
        "JATEVO_API_KEY": "test-key",
        "API_BASE_URL": BASE_URL,
        "PAY_TO": PAYEE,
        "NETWORK": "base",
        "SETTLEMENT_MODE": "local",
    }
    env.update(overrides)
    return load_config(env)


class FakeMarketData:
    def __init__(self, coins: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None) -> None:
        self.coins = COINS if coins is None else coins
        self.error = error
        self.calls: List[tuple] = []

    def fetch_top_entities(self, limit: int, currency: str) -> List[Dict[str, Any]]:
        self.calls.append((limit, currency))
        if self.error is not None:
            raise self.error
        return list(self.coins)[:limit]


class FakeInference:
    def __init__(self, reply: str = VALID_REPLY, error: Optional[Exception] = None) -> None:
        self.reply = reply
        self.error = error
        self.prompts: List[str] = []

    def complete(self, prompt: str, model_id: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


class CountingSettlement(LocalSettlement):
    def __init__(self) -> None:
        super().__init__()
        self.verify_calls = 0
        self.settle_calls = 0

    def verify_proof(self, requirement, proof):
        self.verify_calls += 1
        return super().verify_proof(requirement, proof)

    def settle(self, requirement, proof):
        self.settle_calls += 1
        return super().settle(requirement, proof)


class RecordingObserver(InvocationObserver):
    def __init__(self) -> None:
        self.events: List[tuple] = []

    def challenge_issued(self, resource, accepts):
        self.events.append(("challenge_issued", resource))

    def proof_verified(self, resource, network, payer):
        self.events.append(("proof_verified", payer))

    def proof_rejected(self, resource, reason, detail=""):
        self.events.append(("proof_rejected", reason))

    def payment_settled(self, resource, receipt):
        self.events.append(("payment_settled", receipt.success))

    def upstream_failed(self, collaborator, message):
        self.events.append(("upstream_failed", collaborator))

    def normalization_degraded(self, errors, raw_chars):
        self.events.append(("normalization_degraded", raw_chars))

    def trial_completed(self, trial):
        self.events.append(("trial_completed", trial.attempt))

    def names(self) -> List[str]:
        return [e[0] for e in self.events]


@pytest.fixture
def agent_config() -> AgentConfig:
    return make_config()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()
