"""
Payment gate: the per-request challenge/response state machine.

    Unchallenged --(no proof)--> Challenged (402 + accepts)
    Unchallenged --(proof)-----> Authorized | Rejected

The gate keeps no state between requests and never settles; the route settles after the paid
work succeeds.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from market_moodboard.errors import SettlementUnavailable
from market_moodboard.payments.binding import binding_matches
from market_moodboard.payments.models import (
    X402_VERSION,
    Authorized,
    Challenge,
    GateDecision,
    PaymentProof,
    PaymentRequirement,
    Rejected,
    RejectionReason,
)
from market_moodboard.payments.selection import select_requirement
from market_moodboard.payments.settlement import SettlementClient
from market_moodboard.telemetry import InvocationObserver


@dataclass(frozen=True)
class PaidInvocation:
    request: Any
    resource: str
    fingerprint: str


RequirementsFactory = Callable[[str], List[PaymentRequirement]]


class PaymentGate:
    def __init__(
        self,
        requirements_for: RequirementsFactory,
        settlement: SettlementClient,
        observer: Optional[InvocationObserver] = None,
    ) -> None:
        self._requirements_for = requirements_for
        self._settlement = settlement
        self._observer = observer or InvocationObserver()

    def accepts(self, resource: str) -> List[PaymentRequirement]:
        return list(self._requirements_for(resource))

    def _reject(self, invocation: PaidInvocation, accepts: List[PaymentRequirement], reason: RejectionReason, detail: str) -> Rejected:
        self._observer.proof_rejected(invocation.resource, reason.value, detail)
        return Rejected(reason=reason, accepts=accepts, detail=detail)

    def evaluate(self, invocation: PaidInvocation, proof_header: Optional[str] = None) -> GateDecision:
        accepts = self.accepts(invocation.resource)

        if not str(proof_header or "").strip():
            self._observer.challenge_issued(invocation.resource, accepts)
            return Challenge(accepts=accepts)

        try:
            proof = PaymentProof.decode(str(proof_header))
        except ValueError as e:
            return self._reject(invocation, accepts, RejectionReason.MALFORMED, str(e))
        if proof.x402_version != X402_VERSION:
            return self._reject(invocation, accepts, RejectionReason.MALFORMED, f"unsupported x402Version {proof.x402_version}")

        requirement = select_requirement(accepts, proof.network, proof.scheme)
        if requirement is None:
            return self._reject(
                invocation,
                accepts,
                RejectionReason.REQUIREMENT_MISMATCH,
                f"no requirement for network={proof.network} scheme={proof.scheme}",
            )

        if not binding_matches(proof, requirement, invocation.fingerprint):
            return self._reject(invocation, accepts, RejectionReason.REQUIREMENT_MISMATCH, "proof is not bound to this request")

        try:
            result = self._settlement.verify_proof(requirement, proof)
        except SettlementUnavailable as e:
            return self._reject(invocation, accepts, RejectionReason.SETTLEMENT_UNREACHABLE, str(e))

        if not result.valid:
            reason = result.reason or RejectionReason.REQUIREMENT_MISMATCH
            return self._reject(invocation, accepts, reason, result.detail)

        payer = result.payer or proof.payer
        self._observer.proof_verified(invocation.resource, requirement.network, payer)
        return Authorized(requirement=requirement, proof=proof, payer=payer)


__all__ = ["PaidInvocation", "PaymentGate", "RequirementsFactory"]
