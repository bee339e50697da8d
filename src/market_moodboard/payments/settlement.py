"""
Settlement collaborators.

- `FacilitatorSettlement`: x402 facilitator over HTTP (`/verify`, `/settle`).
- `LocalSettlement`: in-process verification with `eth_account` signer recovery and a consumed-nonce
  ledger. Used for self-payment runs and tests; it does not move funds.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Protocol, Set, Tuple

import httpx

from market_moodboard.errors import SettlementUnavailable
from market_moodboard.payments.eip3009 import recover_signer
from market_moodboard.payments.models import (
    X402_VERSION,
    PaymentProof,
    PaymentRequirement,
    RejectionReason,
    SettlementReceipt,
    VerificationResult,
)

logger = logging.getLogger("market_moodboard.settlement")


class SettlementClient(Protocol):
    def verify_proof(self, requirement: PaymentRequirement, proof: PaymentProof) -> VerificationResult:
        ...

    def settle(self, requirement: PaymentRequirement, proof: PaymentProof) -> SettlementReceipt:
        ...


# Facilitator `invalidReason` / `errorReason` codes -> our rejection reasons.
FACILITATOR_REASONS: Dict[str, RejectionReason] = {
    "insufficient_funds": RejectionReason.INSUFFICIENT_AMOUNT,
    "invalid_exact_evm_payload_authorization_value": RejectionReason.INSUFFICIENT_AMOUNT,
    "invalid_exact_evm_payload_authorization_valid_after": RejectionReason.EXPIRED,
    "invalid_exact_evm_payload_authorization_valid_before": RejectionReason.EXPIRED,
    "invalid_transaction_state": RejectionReason.EXPIRED,
    "invalid_exact_evm_payload_recipient_mismatch": RejectionReason.REQUIREMENT_MISMATCH,
    "invalid_exact_evm_payload_signature": RejectionReason.REQUIREMENT_MISMATCH,
    "invalid_network": RejectionReason.REQUIREMENT_MISMATCH,
    "invalid_scheme": RejectionReason.REQUIREMENT_MISMATCH,
    "invalid_payment_requirements": RejectionReason.REQUIREMENT_MISMATCH,
    "invalid_payload": RejectionReason.MALFORMED,
    "invalid_x402_version": RejectionReason.MALFORMED,
}


def map_facilitator_reason(code: Optional[str]) -> RejectionReason:
    key = str(code or "").strip().lower()
    return FACILITATOR_REASONS.get(key, RejectionReason.REQUIREMENT_MISMATCH)


class FacilitatorSettlement:
    def __init__(
        self,
        base_url: str,
        *,
        client: Optional[httpx.Client] = None,
        timeout_sec: float = 15.0,
    ) -> None:
        self.base_url = str(base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("facilitator base_url is required")
        self._client = client or httpx.Client(timeout=timeout_sec)

    def _post(self, path: str, requirement: PaymentRequirement, proof: PaymentProof) -> Dict[str, Any]:
        body = {
            "x402Version": X402_VERSION,
            "paymentPayload": proof.facilitator_payload(),
            "paymentRequirements": requirement.to_wire(),
        }
        url = f"{self.base_url}{path}"
        try:
            resp = self._client.post(url, json=body)
        except httpx.HTTPError as e:
            raise SettlementUnavailable(f"facilitator {path} unreachable: {e}") from e
        if resp.status_code >= 500:
            raise SettlementUnavailable(f"facilitator {path} returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise SettlementUnavailable(f"facilitator {path} returned non-JSON (HTTP {resp.status_code})") from e
        if not isinstance(data, dict):
            raise SettlementUnavailable(f"facilitator {path} returned {type(data).__name__}, expected object")
        return data

    def verify_proof(self, requirement: PaymentRequirement, proof: PaymentProof) -> VerificationResult:
        data = self._post("/verify", requirement, proof)
        payer = data.get("payer") or None
        if data.get("isValid") is True:
            return VerificationResult(valid=True, payer=payer or proof.payer)
        code = data.get("invalidReason")
        return VerificationResult(valid=False, reason=map_facilitator_reason(code), payer=payer, detail=str(code or ""))

    def settle(self, requirement: PaymentRequirement, proof: PaymentProof) -> SettlementReceipt:
        data = self._post("/settle", requirement, proof)
        return SettlementReceipt(
            success=data.get("success") is True,
            network=str(data.get("network") or requirement.network),
            transaction=str(data.get("transaction") or ""),
            payer=data.get("payer") or proof.payer,
            error_reason=data.get("errorReason") or None,
        )


class LocalSettlement:
    """
    Verifies EIP-3009 authorizations without a facilitator.

    Checks, in order: network/scheme, recipient and asset, amount, validity window, signature,
    then single use of `(resource, nonce)`.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._consumed: Set[Tuple[str, str]] = set()
        self._lock = threading.Lock()

    def _check(self, requirement: PaymentRequirement, proof: PaymentProof) -> VerificationResult:
        auth = proof.payload.authorization
        if proof.network.lower() != requirement.network.lower() or proof.scheme.lower() != requirement.scheme.lower():
            return VerificationResult(False, RejectionReason.REQUIREMENT_MISMATCH, detail="network or scheme differs")
        if auth.to.lower() != requirement.pay_to.lower():
            return VerificationResult(False, RejectionReason.REQUIREMENT_MISMATCH, detail="recipient differs from payTo")

        try:
            value = int(auth.value)
            valid_after = int(auth.valid_after)
            valid_before = int(auth.valid_before)
        except ValueError:
            return VerificationResult(False, RejectionReason.MALFORMED, detail="authorization numbers are not integers")
        if value < requirement.amount:
            return VerificationResult(False, RejectionReason.INSUFFICIENT_AMOUNT, detail=f"{value} < {requirement.amount}")

        now = int(self._clock())
        if now < valid_after or now >= valid_before:
            return VerificationResult(False, RejectionReason.EXPIRED, detail="outside the authorization window")

        try:
            signer = recover_signer(requirement, auth, proof.payload.signature)
        except Exception as e:  # eth_account raises several error types for bad signatures
            return VerificationResult(False, RejectionReason.MALFORMED, detail=f"unrecoverable signature: {e}")
        if signer.lower() != auth.from_.lower():
            return VerificationResult(False, RejectionReason.REQUIREMENT_MISMATCH, detail="signature does not match payer")

        if (requirement.resource, auth.nonce.lower()) in self._consumed:
            return VerificationResult(False, RejectionReason.EXPIRED, detail="authorization already used")
        return VerificationResult(True, payer=auth.from_)

    def verify_proof(self, requirement: PaymentRequirement, proof: PaymentProof) -> VerificationResult:
        return self._check(requirement, proof)

    def settle(self, requirement: PaymentRequirement, proof: PaymentProof) -> SettlementReceipt:
        auth = proof.payload.authorization
        key = (requirement.resource, auth.nonce.lower())
        with self._lock:
            result = self._check(requirement, proof)
            if not result.valid:
                reason = result.reason.value if result.reason else "invalid"
                return SettlementReceipt(success=False, network=requirement.network, payer=auth.from_, error_reason=reason)
            self._consumed.add(key)
        tx = "0x" + hashlib.sha256(f"{key[0]}|{key[1]}".encode("utf-8")).hexdigest()
        logger.info("local settlement recorded payer=%s value=%s tx=%s", auth.from_, auth.value, tx)
        return SettlementReceipt(success=True, network=requirement.network, transaction=tx, payer=auth.from_)


__all__ = [
    "FACILITATOR_REASONS",
    "FacilitatorSettlement",
    "LocalSettlement",
    "SettlementClient",
    "map_facilitator_reason",
]
