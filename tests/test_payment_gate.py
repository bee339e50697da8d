import base64
import json

from conftest import BASE_URL, PAYEE, TEST_PRIVATE_KEY, CountingSettlement, make_config

from market_moodboard.errors import SettlementUnavailable
from market_moodboard.payments.binding import request_fingerprint
from market_moodboard.payments.gate import PaidInvocation, PaymentGate
from market_moodboard.payments.models import Authorized, Challenge, PaymentProof, Rejected, RejectionReason
from market_moodboard.payments.pricing import build_requirements
from market_moodboard.payments.signing import EthAccountSigner, WalletContext

RESOURCE = f"{BASE_URL}/entrypoints/analyzeMoodboard/invoke"
BODY = b'{"limit":5,"vs_currency":"usd"}'


def _gate(config=None, settlement=None, observer=None):
    config = config or make_config()
    settlement = settlement or CountingSettlement()
    return PaymentGate(lambda resource: build_requirements(config, resource), settlement, observer), settlement


def _invocation(body=BODY):
    return PaidInvocation(request=None, resource=RESOURCE, fingerprint=request_fingerprint(body))


def _sign(gate, body=BODY, **ctx):
    requirement = gate.accepts(RESOURCE)[0]
    return EthAccountSigner(TEST_PRIVATE_KEY).sign(requirement, WalletContext(request_fingerprint=request_fingerprint(body), **ctx))


def _tamper(header, mutate):
    obj = json.loads(base64.b64decode(header))
    mutate(obj)
    return base64.b64encode(json.dumps(obj).encode("utf-8")).decode("ascii")


def test_no_header_issues_deterministic_challenge(observer):
    gate, _ = _gate(observer=observer)
    first = gate.evaluate(_invocation())
    second = gate.evaluate(_invocation())
    assert isinstance(first, Challenge)
    assert first.to_wire() == second.to_wire()
    assert observer.names() == ["challenge_issued", "challenge_issued"]


def test_challenge_has_positive_amount_and_payee():
    gate, _ = _gate()
    wire = gate.evaluate(_invocation()).to_wire()
    assert wire["x402Version"] == 1
    req = wire["accepts"][0]
    assert int(req["maxAmountRequired"]) > 0
    assert req["maxAmountRequired"] == "10000"
    assert req["payTo"] == PAYEE
    assert req["resource"] == RESOURCE
    assert req["network"] == "base"
    assert req["extra"] == {"name": "USD Coin", "version": "2"}


def test_one_requirement_per_network():
    gate, _ = _gate(config=make_config(NETWORK="base,base-sepolia"))
    accepts = gate.accepts(RESOURCE)
    assert [r.network for r in accepts] == ["base", "base-sepolia"]


def test_valid_proof_is_authorized(observer):
    gate, settlement = _gate(observer=observer)
    signer = EthAccountSigner(TEST_PRIVATE_KEY)
    decision = gate.evaluate(_invocation(), _sign(gate))
    assert isinstance(decision, Authorized)
    assert decision.payer.lower() == signer.address.lower()
    assert decision.requirement.network == "base"
    assert settlement.verify_calls == 1
    assert settlement.settle_calls == 0
    assert observer.names() == ["proof_verified"]


def test_garbage_header_is_malformed(observer):
    gate, settlement = _gate(observer=observer)
    decision = gate.evaluate(_invocation(), "not-base64!!")
    assert isinstance(decision, Rejected)
    assert decision.reason is RejectionReason.MALFORMED
    assert decision.to_wire()["error"] == "malformed"
    assert decision.accepts
    assert settlement.verify_calls == 0
    assert observer.names() == ["proof_rejected"]


def test_unsupported_version_is_malformed():
    gate, _ = _gate()
    header = _tamper(_sign(gate), lambda o: o.update({"x402Version": 2}))
    decision = gate.evaluate(_invocation(), header)
    assert isinstance(decision, Rejected)
    assert decision.reason is RejectionReason.MALFORMED


def test_unknown_network_is_requirement_mismatch():
    gate, _ = _gate()
    header = _tamper(_sign(gate), lambda o: o.update({"network": "polygon"}))
    decision = gate.evaluate(_invocation(), header)
    assert isinstance(decision, Rejected)
    assert decision.reason is RejectionReason.REQUIREMENT_MISMATCH


def test_body_tampering_after_signing_is_rejected():
    gate, settlement = _gate()
    header = _sign(gate)
    decision = gate.evaluate(_invocation(b'{"limit":50,"vs_currency":"usd"}'), header)
    assert isinstance(decision, Rejected)
    assert decision.reason is RejectionReason.REQUIREMENT_MISMATCH
    assert settlement.verify_calls == 0


def test_forged_binding_fingerprint_is_rejected():
    gate, _ = _gate()
    other = request_fingerprint(b'{"limit":50}')
    header = _tamper(_sign(gate), lambda o: o["binding"].update({"fingerprint": other}))
    decision = gate.evaluate(PaidInvocation(request=None, resource=RESOURCE, fingerprint=other), header)
    assert isinstance(decision, Rejected)
    assert decision.reason is RejectionReason.REQUIREMENT_MISMATCH


def test_missing_binding_is_rejected():
    gate, _ = _gate()
    header = _tamper(_sign(gate), lambda o: o.pop("binding"))
    decision = gate.evaluate(_invocation(), header)
    assert isinstance(decision, Rejected)
    assert decision.reason is RejectionReason.REQUIREMENT_MISMATCH


def test_tampered_value_breaks_signature():
    gate, _ = _gate()
    header = _tamper(_sign(gate), lambda o: o["payload"]["authorization"].update({"value": "20000"}))
    decision = gate.evaluate(_invocation(), header)
    assert isinstance(decision, Rejected)
    assert decision.reason is RejectionReason.REQUIREMENT_MISMATCH


def test_underpaid_proof_is_insufficient_amount():
    gate, _ = _gate()
    header = _tamper(_sign(gate), lambda o: o["payload"]["authorization"].update({"value": "1"}))
    decision = gate.evaluate(_invocation(), header)
    assert isinstance(decision, Rejected)
    assert decision.reason is RejectionReason.INSUFFICIENT_AMOUNT


def test_expired_proof_is_rejected():
    gate, _ = _gate()
    header = _sign(gate, now=1_000_000)
    decision = gate.evaluate(_invocation(), header)
    assert isinstance(decision, Rejected)
    assert decision.reason is RejectionReason.EXPIRED


def test_unreachable_settlement_fails_closed(observer):
    class DownSettlement:
        def verify_proof(self, requirement, proof):
            raise SettlementUnavailable("connection refused")

        def settle(self, requirement, proof):
            raise SettlementUnavailable("connection refused")

    config = make_config()
    gate = PaymentGate(lambda r: build_requirements(config, r), DownSettlement(), observer)
    decision = gate.evaluate(_invocation(), _sign(gate))
    assert isinstance(decision, Rejected)
    assert decision.reason is RejectionReason.SETTLEMENT_UNREACHABLE
    assert observer.events == [("proof_rejected", "settlement-unreachable")]


def test_gate_keeps_no_spent_state():
    gate, _ = _gate()
    header = _sign(gate)
    assert isinstance(gate.evaluate(_invocation(), header), Authorized)
    assert isinstance(gate.evaluate(_invocation(), header), Authorized)


def test_proof_header_round_trips_through_decode():
    gate, _ = _gate()
    proof = PaymentProof.decode(_sign(gate))
    assert proof.scheme == "exact"
    assert proof.binding is not None
    assert "binding" not in proof.facilitator_payload()
