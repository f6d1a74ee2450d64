import pytest
from eth_account.messages import encode_defunct
from eth_account import Account

from airdrop_portal.core.service.claim.models import build_claim_message
from airdrop_portal.core.service.wallet.signature_verification import SignatureVerificationService


@pytest.fixture
def test_wallet():
    """Create a test wallet for signature verification"""
    account = Account.create()
    return {
        'address': account.address,
        'key': account.key
    }


@pytest.fixture
def signature_service():
    return SignatureVerificationService()


def sign(message, key):
    return Account.sign_message(encode_defunct(text=message), private_key=key).signature


def test_claim_message_is_lower_cased():
    assert build_claim_message("0xABCDEF0000000000000000000000000000000001") == \
        "Claim airdrop for 0xabcdef0000000000000000000000000000000001"


def test_verify_valid_signature(test_wallet, signature_service):
    message = build_claim_message(test_wallet['address'])

    is_valid, error = signature_service.verify_signature(
        claimed_address=test_wallet['address'],
        signature=sign(message, test_wallet['key']),
        message=message
    )

    assert is_valid is True
    assert error is None


def test_verify_accepts_hex_without_prefix(test_wallet, signature_service):
    message = build_claim_message(test_wallet['address'])
    signature = sign(message, test_wallet['key']).hex().removeprefix("0x")

    is_valid, _ = signature_service.verify_signature(test_wallet['address'].lower(), signature, message)

    assert is_valid is True


def test_verify_signature_over_other_message(test_wallet, signature_service):
    message = build_claim_message(test_wallet['address'])

    is_valid, error = signature_service.verify_signature(
        claimed_address=test_wallet['address'],
        signature=sign("Different message", test_wallet['key']),
        message=message
    )

    assert is_valid is False
    assert error == "Recovered address does not match claimed address"


def test_verify_signature_by_other_wallet(test_wallet, signature_service):
    message = build_claim_message(test_wallet['address'])

    is_valid, _ = signature_service.verify_signature(
        test_wallet['address'], sign(message, Account.create().key), message
    )

    assert is_valid is False


@pytest.mark.parametrize("signature", ["0x1234", "not-hex", "0x" + "00" * 65, ""])
def test_verify_malformed_signature(test_wallet, signature_service, signature):
    is_valid, error = signature_service.verify_signature(test_wallet['address'], signature, "message")

    assert is_valid is False
    assert error == "Invalid signature format"


def test_verify_malformed_address(signature_service):
    is_valid, error = signature_service.verify_signature("0x123", "0x" + "11" * 65, "message")

    assert is_valid is False
    assert error == "Invalid Ethereum address format"


def test_recover_address(test_wallet, signature_service):
    message = build_claim_message(test_wallet['address'])

    assert signature_service.recover_address(message, sign(message, test_wallet['key'])) == test_wallet['address']
