"""
Caller-side signing of payment proofs.

Services never sign; the harness and scripts receive a `SigningClient` explicitly.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional, Protocol

from eth_account import Account

from market_moodboard.errors import SigningError
from market_moodboard.payments.binding import derive_nonce, new_salt
from market_moodboard.payments.eip3009 import sign_authorization
from market_moodboard.payments.models import (
    X402_VERSION,
    Authorization,
    ExactPayload,
    PaymentProof,
    PaymentRequirement,
    ProofBinding,
)

# Authorizations become valid slightly in the past to tolerate clock skew.
VALID_AFTER_SKEW_SEC = 600


@dataclass(frozen=True)
class WalletContext:
    request_fingerprint: str
    # Unix seconds; None means "now".
    now: Optional[int] = None


class SigningClient(Protocol):
    def sign(self, requirement: PaymentRequirement, wallet_context: WalletContext) -> str:
        """Return the value for the `X-PAYMENT` header."""
        ...


class EthAccountSigner:
    def __init__(self, private_key: str) -> None:
        key = str(private_key or "").strip()
        if not key:
            raise SigningError("private key is required")
        if not key.startswith("0x"):
            key = "0x" + key
        try:
            self._account = Account.from_key(key)
        except (ValueError, TypeError) as e:
            raise SigningError(f"invalid private key: {e}") from e
        self._key = key

    @property
    def address(self) -> str:
        return self._account.address

    def sign(self, requirement: PaymentRequirement, wallet_context: WalletContext) -> str:
        now = int(wallet_context.now if wallet_context.now is not None else time.time())
        salt = new_salt()
        try:
            nonce = derive_nonce(requirement.resource, wallet_context.request_fingerprint, salt)
        except ValueError as e:
            raise SigningError(f"request fingerprint is not hex: {e}") from e

        authorization = Authorization(
            from_=self.address,
            to=requirement.pay_to,
            value=requirement.max_amount_required,
            valid_after=str(now - VALID_AFTER_SKEW_SEC),
            valid_before=str(now + int(requirement.max_timeout_seconds)),
            nonce=nonce,
        )
        try:
            signature = sign_authorization(self._key, requirement, authorization)
        except ValueError as e:
            raise SigningError(f"cannot sign requirement for {requirement.network}: {e}") from e

        proof = PaymentProof(
            x402_version=X402_VERSION,
            scheme=requirement.scheme,
            network=requirement.network,
            payload=ExactPayload(signature=signature, authorization=authorization),
            binding=ProofBinding(fingerprint=wallet_context.request_fingerprint, salt=salt),
        )
        return proof.encode()


__all__ = ["EthAccountSigner", "SigningClient", "VALID_AFTER_SKEW_SEC", "WalletContext"]
