import pytest
from eth_account import Account

from conftest import BASE_URL, TEST_PRIVATE_KEY, make_config

from market_moodboard.errors import SigningError
from market_moodboard.payments.binding import derive_nonce, request_fingerprint
from market_moodboard.payments.eip3009 import recover_signer, typed_data
from market_moodboard.payments.models import PaymentProof
from market_moodboard.payments.pricing import build_requirements
from market_moodboard.payments.signing import VALID_AFTER_SKEW_SEC, EthAccountSigner, WalletContext

RESOURCE = f"{BASE_URL}/entrypoints/analyzeMoodboard/invoke"


def _requirement(network="base"):
    config = make_config(NETWORK=network)
    return build_requirements(config, RESOURCE)[0]


def test_signer_address_matches_key():
    assert EthAccountSigner(TEST_PRIVATE_KEY).address == Account.from_key(TEST_PRIVATE_KEY).address


def test_signer_accepts_key_without_prefix():
    assert EthAccountSigner("11" * 32).address == EthAccountSigner(TEST_PRIVATE_KEY).address


def test_signer_rejects_empty_or_bad_key():
    with pytest.raises(SigningError):
        EthAccountSigner("")
    with pytest.raises(SigningError):
        EthAccountSigner("0x1234")


def test_signed_proof_recovers_to_payer_and_binds_nonce():
    requirement = _requirement()
    fingerprint = request_fingerprint(b"{}")
    signer = EthAccountSigner(TEST_PRIVATE_KEY)
    proof = PaymentProof.decode(signer.sign(requirement, WalletContext(request_fingerprint=fingerprint, now=1_700_000_000)))

    auth = proof.payload.authorization
    assert auth.from_ == signer.address
    assert auth.to.lower() == requirement.pay_to.lower()
    assert auth.value == requirement.max_amount_required
    assert int(auth.valid_after) == 1_700_000_000 - VALID_AFTER_SKEW_SEC
    assert int(auth.valid_before) == 1_700_000_000 + requirement.max_timeout_seconds
    assert auth.nonce == derive_nonce(RESOURCE, fingerprint, proof.binding.salt)
    assert recover_signer(requirement, auth, proof.payload.signature) == signer.address


def test_typed_data_uses_network_domain():
    requirement = _requirement("base-sepolia")
    signer = EthAccountSigner(TEST_PRIVATE_KEY)
    proof = PaymentProof.decode(signer.sign(requirement, WalletContext(request_fingerprint=request_fingerprint(b""))))
    data = typed_data(requirement, proof.payload.authorization)
    assert data["primaryType"] == "TransferWithAuthorization"
    assert data["domain"]["chainId"] == 84532
    assert data["domain"]["name"] == "USDC"
    assert len(data["message"]["nonce"]) == 32


def test_each_signature_uses_fresh_salt():
    requirement = _requirement()
    signer = EthAccountSigner(TEST_PRIVATE_KEY)
    ctx = WalletContext(request_fingerprint=request_fingerprint(b"{}"), now=1_700_000_000)
    a = PaymentProof.decode(signer.sign(requirement, ctx))
    b = PaymentProof.decode(signer.sign(requirement, ctx))
    assert a.binding.salt != b.binding.salt
    assert a.payload.authorization.nonce != b.payload.authorization.nonce


def test_non_hex_fingerprint_is_a_signing_error():
    with pytest.raises(SigningError):
        EthAccountSigner(TEST_PRIVATE_KEY).sign(_requirement(), WalletContext(request_fingerprint="zz"))
