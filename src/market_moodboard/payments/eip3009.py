"""
EIP-712 typed data for USDC `transferWithAuthorization` (EIP-3009).
"""

from __future__ import annotations

from typing import Any, Dict

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import to_checksum_address

from market_moodboard.payments.models import Authorization, PaymentRequirement
from market_moodboard.payments.networks import network_info

TRANSFER_WITH_AUTHORIZATION_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "TransferWithAuthorization": [
        {"name": "from", "type": "address"},
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "validAfter", "type": "uint256"},
        {"name": "validBefore", "type": "uint256"},
        {"name": "nonce", "type": "bytes32"},
    ],
}


def _nonce_bytes(nonce: str) -> bytes:
    text = nonce[2:] if nonce.lower().startswith("0x") else nonce
    raw = bytes.fromhex(text)
    if len(raw) != 32:
        raise ValueError("authorization nonce must be 32 bytes")
    return raw


def typed_data(requirement: PaymentRequirement, authorization: Authorization) -> Dict[str, Any]:
    """
    Build the full EIP-712 message for an authorization against a requirement.

    The token domain comes from `requirement.extra` (x402 convention) and falls back to the
    known network table. Raises ValueError for unknown networks or malformed fields.
    """
    net = network_info(requirement.network)
    if net is None:
        raise ValueError(f"unsupported network: {requirement.network}")
    extra = requirement.extra or {}
    return {
        "types": TRANSFER_WITH_AUTHORIZATION_TYPES,
        "primaryType": "TransferWithAuthorization",
        "domain": {
            "name": str(extra.get("name") or net.token_name),
            "version": str(extra.get("version") or net.token_version),
            "chainId": net.chain_id,
            "verifyingContract": to_checksum_address(requirement.asset),
        },
        "message": {
            "from": to_checksum_address(authorization.from_),
            "to": to_checksum_address(authorization.to),
            "value": int(authorization.value),
            "validAfter": int(authorization.valid_after),
            "validBefore": int(authorization.valid_before),
            "nonce": _nonce_bytes(authorization.nonce),
        },
    }


def sign_authorization(private_key: str, requirement: PaymentRequirement, authorization: Authorization) -> str:
    signed = Account.sign_typed_data(private_key, full_message=typed_data(requirement, authorization))
    return "0x" + bytes(signed.signature).hex()


def recover_signer(requirement: PaymentRequirement, authorization: Authorization, signature: str) -> str:
    """Address that produced `signature`. Raises ValueError (or an eth_account error) when unrecoverable."""
    message = encode_typed_data(full_message=typed_data(requirement, authorization))
    return Account.recover_message(message, signature=signature)


__all__ = ["TRANSFER_WITH_AUTHORIZATION_TYPES", "recover_signer", "sign_authorization", "typed_data"]
