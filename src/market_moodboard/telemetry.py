"""
Lifecycle observers.

Core code reports to an injected `InvocationObserver` instead of logging directly. The default
`LoggingObserver` writes one-line JSON records (same shape conventions as the HTTP log middleware).
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Optional

logger = logging.getLogger("market_moodboard.telemetry")


class InvocationObserver:
    """No-op base; subclasses override the hooks they care about."""

    def challenge_issued(self, resource: str, accepts: List[Any]) -> None:
        pass

    def proof_verified(self, resource: str, network: str, payer: Optional[str]) -> None:
        pass

    def proof_rejected(self, resource: str, reason: str, detail: str = "") -> None:
        pass

    def payment_settled(self, resource: str, receipt: Any) -> None:
        pass

    def upstream_failed(self, collaborator: str, message: str) -> None:
        pass

    def normalization_degraded(self, errors: List[str], raw_chars: int) -> None:
        pass

    def trial_completed(self, trial: Any) -> None:
        pass


class LoggingObserver(InvocationObserver):
    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self.log = log or logger

    def _emit(self, event: str, level: int = logging.INFO, **fields: Any) -> None:
        record: Dict[str, Any] = {"event": event, "ts": int(time.time() * 1000), **fields}
        try:
            self.log.log(level, json.dumps(record, ensure_ascii=False, separators=(",", ":"), default=str))
        except (TypeError, ValueError):
            self.log.log(level, "%s %r", event, fields)

    def challenge_issued(self, resource: str, accepts: List[Any]) -> None:
        networks = [getattr(r, "network", None) for r in accepts]
        self._emit("challenge_issued", resource=resource, networks=networks)

    def proof_verified(self, resource: str, network: str, payer: Optional[str]) -> None:
        self._emit("proof_verified", resource=resource, network=network, payer=payer)

    def proof_rejected(self, resource: str, reason: str, detail: str = "") -> None:
        self._emit("proof_rejected", logging.WARNING, resource=resource, reason=reason, detail=detail)

    def payment_settled(self, resource: str, receipt: Any) -> None:
        self._emit(
            "payment_settled",
            resource=resource,
            success=getattr(receipt, "success", None),
            transaction=getattr(receipt, "transaction", None),
            network=getattr(receipt, "network", None),
        )

    def upstream_failed(self, collaborator: str, message: str) -> None:
        self._emit("upstream_failed", logging.ERROR, collaborator=collaborator, message=message)

    def normalization_degraded(self, errors: List[str], raw_chars: int) -> None:
        self._emit("normalization_degraded", logging.WARNING, errors=errors[:10], raw_chars=raw_chars)

    def trial_completed(self, trial: Any) -> None:
        self._emit(
            "trial_completed",
            attempt=getattr(trial, "attempt", None),
            success=getattr(trial, "success", None),
            http_status=getattr(trial, "http_status", None),
            validated=getattr(trial, "validated", None),
            latency_ms=getattr(trial, "latency_ms", None),
            error=getattr(trial, "error", None),
        )


__all__ = ["InvocationObserver", "LoggingObserver"]
