"""
Request binding for payment proofs.

A proof is bound to one resource and one exact request body through its EIP-3009 nonce:

    fingerprint = sha256(raw body bytes)
    nonce       = 0x || sha256(resource "|" fingerprint-bytes salt-bytes)

The signature covers the nonce, so reusing a proof for a different body or resource breaks either
the binding check or the signature.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

from market_moodboard.payments.models import PaymentProof, PaymentRequirement


def request_fingerprint(body: bytes) -> str:
    return hashlib.sha256(body or b"").hexdigest()


def new_salt() -> str:
    return secrets.token_hex(16)


def derive_nonce(resource: str, fingerprint: str, salt: str) -> str:
    """Raises ValueError when `fingerprint` or `salt` is not hex."""
    h = hashlib.sha256()
    h.update(resource.encode("utf-8"))
    h.update(b"|")
    h.update(bytes.fromhex(fingerprint))
    h.update(bytes.fromhex(salt))
    return "0x" + h.hexdigest()


def binding_matches(proof: PaymentProof, requirement: PaymentRequirement, fingerprint: str) -> bool:
    binding = proof.binding
    if binding is None:
        return False
    if not hmac.compare_digest(binding.fingerprint.lower(), fingerprint.lower()):
        return False
    try:
        expected = derive_nonce(requirement.resource, binding.fingerprint, binding.salt)
    except ValueError:
        return False
    return hmac.compare_digest(expected, proof.payload.authorization.nonce.lower())


__all__ = ["binding_matches", "derive_nonce", "new_salt", "request_fingerprint"]
