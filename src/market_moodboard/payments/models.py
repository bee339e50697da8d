"""
x402 (v1) wire models and gate decisions.

Wire models keep the protocol's camelCase names as aliases; Python code uses snake_case.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

X402_VERSION = 1

PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"
PAYMENT_ERROR_HEADER = "X-PAYMENT-ERROR"


class RejectionReason(str, Enum):
    MALFORMED = "malformed"
    REQUIREMENT_MISMATCH = "requirement-mismatch"
    INSUFFICIENT_AMOUNT = "insufficient-amount"
    EXPIRED = "expired"
    SETTLEMENT_UNREACHABLE = "settlement-unreachable"


def _b64_json(obj: Dict[str, Any]) -> str:
    raw = json.dumps(obj, separators=(",", ":"), ensure_ascii=True, sort_keys=True)
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


class PaymentRequirement(BaseModel):
    """One accepted way to pay for a resource."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    scheme: str = "exact"
    network: str
    max_amount_required: str = Field(..., alias="maxAmountRequired")
    resource: str
    description: str = ""
    mime_type: str = Field(default="application/json", alias="mimeType")
    pay_to: str = Field(..., alias="payTo")
    max_timeout_seconds: int = Field(default=300, alias="maxTimeoutSeconds")
    asset: str
    output_schema: Optional[Dict[str, Any]] = Field(default=None, alias="outputSchema")
    extra: Optional[Dict[str, Any]] = None

    @field_validator("max_amount_required", mode="before")
    @classmethod
    def _positive_integer_amount(cls, v: Any) -> str:
        s = str(v).strip()
        if not s.isdigit() or int(s) <= 0:
            raise ValueError("maxAmountRequired must be a positive integer in the asset's smallest unit")
        return str(int(s))

    @property
    def amount(self) -> int:
        return int(self.max_amount_required)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class PaymentChallenge(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    x402_version: int = Field(default=X402_VERSION, alias="x402Version")
    error: str = "X-PAYMENT header is required"
    accepts: List[PaymentRequirement] = Field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        return {
            "x402Version": self.x402_version,
            "error": self.error,
            "accepts": [r.to_wire() for r in self.accepts],
        }


class Authorization(BaseModel):
    """EIP-3009 `TransferWithAuthorization` fields (numbers travel as decimal strings)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    from_: str = Field(..., alias="from")
    to: str
    value: str
    valid_after: str = Field(..., alias="validAfter")
    valid_before: str = Field(..., alias="validBefore")
    nonce: str


class ExactPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    signature: str
    authorization: Authorization


class ProofBinding(BaseModel):
    """Commits the proof to one request body: `nonce = H(resource | fingerprint | salt)`."""

    model_config = ConfigDict(frozen=True)

    fingerprint: str
    salt: str


class PaymentProof(BaseModel):
    """Decoded `X-PAYMENT` header."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    x402_version: int = Field(..., alias="x402Version")
    scheme: str
    network: str
    payload: ExactPayload
    binding: Optional[ProofBinding] = None

    @classmethod
    def decode(cls, header: str) -> "PaymentProof":
        """Raises ValueError for anything that is not a well-formed proof."""
        text = str(header or "").strip()
        if not text:
            raise ValueError("empty payment header")
        try:
            raw = base64.b64decode(text, validate=True)
            obj = json.loads(raw.decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, ValueError) as e:
            raise ValueError(f"payment header is not base64 JSON: {e}") from e
        if not isinstance(obj, dict):
            raise ValueError("payment header must decode to a JSON object")
        try:
            return cls.model_validate(obj)
        except ValidationError as e:
            raise ValueError(f"payment header has the wrong shape: {e.error_count()} error(s)") from e

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def facilitator_payload(self) -> Dict[str, Any]:
        """The standard x402 payment payload (facilitators do not know about `binding`)."""
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"binding"})

    def encode(self) -> str:
        return _b64_json(self.to_wire())

    @property
    def payer(self) -> str:
        return self.payload.authorization.from_


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    reason: Optional[RejectionReason] = None
    payer: Optional[str] = None
    detail: str = ""


@dataclass(frozen=True)
class SettlementReceipt:
    success: bool
    network: str
    transaction: str = ""
    payer: Optional[str] = None
    error_reason: Optional[str] = None

    def to_header(self) -> str:
        body: Dict[str, Any] = {"success": self.success, "transaction": self.transaction, "network": self.network}
        if self.payer:
            body["payer"] = self.payer
        if self.error_reason:
            body["errorReason"] = self.error_reason
        return _b64_json(body)


# Gate decisions. A request moves Unchallenged -> Challenged -> {Authorized | Rejected}.


@dataclass(frozen=True)
class Challenge:
    accepts: List[PaymentRequirement] = field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        return PaymentChallenge(accepts=list(self.accepts)).to_wire()


@dataclass(frozen=True)
class Authorized:
    requirement: PaymentRequirement
    proof: PaymentProof
    payer: Optional[str] = None


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason
    accepts: List[PaymentRequirement] = field(default_factory=list)
    detail: str = ""

    def to_wire(self) -> Dict[str, Any]:
        return PaymentChallenge(error=self.reason.value, accepts=list(self.accepts)).to_wire()


GateDecision = Union[Challenge, Authorized, Rejected]


__all__ = [
    "PAYMENT_ERROR_HEADER",
    "PAYMENT_HEADER",
    "PAYMENT_RESPONSE_HEADER",
    "X402_VERSION",
    "Authorization",
    "Authorized",
    "Challenge",
    "ExactPayload",
    "GateDecision",
    "PaymentChallenge",
    "PaymentProof",
    "PaymentRequirement",
    "ProofBinding",
    "Rejected",
    "RejectionReason",
    "SettlementReceipt",
    "VerificationResult",
]
