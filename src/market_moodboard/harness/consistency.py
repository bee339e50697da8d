"""
Consistency harness: N sequential paid invocations, end to end.

Each trial posts the same body bytes, expects a 402 challenge, signs the requirement for the
configured network and retries with `X-PAYMENT`. Trials never run concurrently.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx

from market_moodboard.payments.binding import request_fingerprint
from market_moodboard.payments.models import PAYMENT_HEADER, PaymentRequirement
from market_moodboard.payments.selection import select_requirement
from market_moodboard.payments.signing import SigningClient, WalletContext
from market_moodboard.telemetry import InvocationObserver


@dataclass(frozen=True)
class TrialResult:
    attempt: int
    success: bool
    http_status: Optional[int]
    validated: bool
    latency_ms: int
    error: Optional[str] = None


@dataclass(frozen=True)
class ConsistencyReport:
    trials: List[TrialResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.trials)

    @property
    def successes(self) -> int:
        return sum(1 for t in self.trials if t.success)

    @property
    def validated(self) -> int:
        return sum(1 for t in self.trials if t.validated)

    @property
    def success_rate(self) -> float:
        return self.successes / self.total if self.total else 0.0

    @property
    def validated_rate(self) -> float:
        return self.validated / self.total if self.total else 0.0

    @property
    def mean_latency_ms(self) -> float:
        return sum(t.latency_ms for t in self.trials) / self.total if self.total else 0.0

    @property
    def passed(self) -> bool:
        return self.total > 0 and self.success_rate == 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "successes": self.successes,
            "validated": self.validated,
            "success_rate": self.success_rate,
            "validated_rate": self.validated_rate,
            "mean_latency_ms": self.mean_latency_ms,
            "passed": self.passed,
            "trials": [asdict(t) for t in self.trials],
        }


class ConsistencyHarness:
    def __init__(
        self,
        client: httpx.Client,
        entrypoint_url: str,
        signer: SigningClient,
        network: str,
        *,
        observer: Optional[InvocationObserver] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.client = client
        self.entrypoint_url = entrypoint_url
        self.signer = signer
        self.network = network
        self.observer = observer or InvocationObserver()
        self._sleep = sleep
        self._clock = clock

    def _post(self, body: bytes, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        h = {"content-type": "application/json"}
        h.update(headers or {})
        return self.client.post(self.entrypoint_url, content=body, headers=h)

    def _trial(self, attempt: int, body: bytes) -> TrialResult:
        started = self._clock()

        def done(success: bool, status: Optional[int], validated: bool = False, error: Optional[str] = None) -> TrialResult:
            latency_ms = int((self._clock() - started) * 1000)
            return TrialResult(attempt, success, status, validated, latency_ms, error)

        try:
            challenge = self._post(body)
        except httpx.HTTPError as e:
            return done(False, None, error=f"transport error: {type(e).__name__}: {e}")
        if challenge.status_code != 402:
            return done(False, challenge.status_code, error=f"expected 402 challenge, got {challenge.status_code}")

        try:
            accepts_raw = challenge.json().get("accepts") or []
            accepts = [PaymentRequirement.model_validate(a) for a in accepts_raw]
        except (ValueError, AttributeError) as e:
            return done(False, 402, error=f"unparseable challenge: {e}")

        requirement = select_requirement(accepts, self.network)
        if requirement is None:
            return done(False, 402, error=f"no requirement for network {self.network}")

        try:
            header = self.signer.sign(requirement, WalletContext(request_fingerprint=request_fingerprint(body)))
        except Exception as e:
            # Remote signers can fail with anything, including network errors.
            return done(False, 402, error=f"signing failed: {type(e).__name__}: {e}")

        try:
            paid = self._post(body, {PAYMENT_HEADER: header})
        except httpx.HTTPError as e:
            return done(False, None, error=f"transport error: {type(e).__name__}: {e}")

        if not 200 <= paid.status_code < 300:
            detail = paid.headers.get("x-payment-error") or paid.text[:200]
            return done(False, paid.status_code, error=f"paid retry returned {paid.status_code}: {detail}")

        try:
            payload = paid.json()
        except ValueError:
            return done(True, paid.status_code, error="response is not JSON")
        output = payload.get("output") if isinstance(payload, dict) else None
        validated = isinstance(output, dict) and output.get("validated") is True
        return done(True, paid.status_code, validated)

    def run(self, trial_count: int, request: Dict[str, Any], inter_trial_delay: float = 1.0) -> ConsistencyReport:
        # Serialized once; every trial resubmits the same bytes.
        body = json.dumps(request, separators=(",", ":"), sort_keys=True).encode("utf-8")
        trials: List[TrialResult] = []
        for attempt in range(1, int(trial_count) + 1):
            started = self._clock()
            try:
                result = self._trial(attempt, body)
            except Exception as e:
                latency_ms = int((self._clock() - started) * 1000)
                result = TrialResult(attempt, False, None, False, latency_ms, f"trial error: {type(e).__name__}: {e}")
            trials.append(result)
            self.observer.trial_completed(result)
            if attempt < trial_count and inter_trial_delay > 0:
                self._sleep(inter_trial_delay)
        return ConsistencyReport(trials=trials)


def format_report(report: ConsistencyReport) -> str:
    lines: List[str] = []
    for t in report.trials:
        status = "OK " if t.success else "ERR"
        v = "validated" if t.validated else "degraded"
        line = f"  #{t.attempt} {status} status={t.http_status} {v} {t.latency_ms}ms"
        if t.error:
            line += f" ({t.error})"
        lines.append(line)
    lines.append("")
    lines.append(f"Total trials:     {report.total}")
    lines.append(f"Successes:        {report.successes} ({report.success_rate * 100:.1f}%)")
    lines.append(f"Validated:        {report.validated} ({report.validated_rate * 100:.1f}%)")
    lines.append(f"Mean latency:     {report.mean_latency_ms:.0f}ms")
    lines.append(f"Result:           {'PASS' if report.passed else 'FAIL'}")
    return "\n".join(lines)


__all__ = ["ConsistencyHarness", "ConsistencyReport", "TrialResult", "format_report"]
