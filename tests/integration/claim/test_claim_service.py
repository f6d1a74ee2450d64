"""
ClaimService against a real SQLite store, a mocked RPC connection and mocked
geolocation providers.
"""

import pytest
from eth_account import Account

from airdrop_portal.api.utils.metrics import ClaimMetrics
from airdrop_portal.core.exceptions.handler import ServiceError, ServiceErrorCode
from airdrop_portal.core.service.captcha.captcha_verifier import CaptchaProviderError
from airdrop_portal.core.service.claim.claim_service import ClaimService
from airdrop_portal.infra.config.settings import get_settings
from airdrop_portal.infra.repository.eligible_user_repository import EligibleUserRepository

CAPTCHA = "c" * 40
CLIENT_IP = "8.8.8.8"
TX_HASH = "0x" + "ab" * 32


class FailingCaptcha:
    def __init__(self, error):
        self.error = error

    async def verify(self, token, remote_ip=None):
        raise self.error


@pytest.fixture
def build_service(user_repository, transaction_repository, geolocation_service, captcha_verifier, wallet_service):
    def _build(users=None, captcha=None, claims_paused=False, **config):
        return ClaimService(
            users=users or user_repository,
            transactions=transaction_repository,
            geolocation=geolocation_service,
            captcha=captcha or captcha_verifier,
            wallet=wallet_service,
            metrics=ClaimMetrics(),
            config=get_settings().model_copy(update=config),
            claims_paused=claims_paused
        )
    return _build


@pytest.fixture
def on_chain(build_service):
    return build_service(TRANSFER_MODE="on-chain-transfer", TOKEN_CONTRACT_ADDRESS=None)


async def claim_with(service, account, sign_claim):
    return await service.claim(account.address, sign_claim(account), CAPTCHA, CLIENT_IP)


async def test_eligibility_records_location_once(build_service, seed_users, user_repository, claimer):
    await seed_users({"wallet_address": claimer.address})
    service = build_service()

    first = await service.check_eligibility(claimer.address, CLIENT_IP)
    second = await service.check_eligibility(claimer.address, "1.1.1.1")

    assert first.eligible is True
    assert first.user.country == "Germany"
    assert second.user.ip_address == CLIENT_IP
    assert service.metrics.get_metrics_summary()["overall"]["total_eligibility_checks"] == 2


async def test_eligibility_unknown_wallet_is_not_created(build_service, user_repository, claimer):
    result = await build_service().check_eligibility(claimer.address, CLIENT_IP)

    assert result.eligible is False
    assert await user_repository.count_users() == 0


async def test_claim_registers_wallet(build_service, seed_users, claimer, sign_claim):
    await seed_users({"wallet_address": claimer.address})
    service = build_service()

    result = await claim_with(service, claimer, sign_claim)

    assert result.user.claimed is True
    assert result.user.claim_date is not None
    assert result.ip_address == CLIENT_IP
    assert result.country == "Germany"
    assert result.tx_hash is None
    assert service.metrics.get_metrics_summary()["claim_outcomes"] == {"success": 1}


async def test_claim_keeps_location_from_eligibility_check(build_service, seed_users, claimer, sign_claim):
    await seed_users({"wallet_address": claimer.address, "ip_address": "9.9.9.9", "country": "France"})

    result = await claim_with(build_service(), claimer, sign_claim)

    assert (result.ip_address, result.country) == ("9.9.9.9", "France")
    assert result.user.country == "France"


async def test_claim_lost_race_reports_already_claimed(build_service, seed_users, db_manager, session, claimer, sign_claim):
    await seed_users({"wallet_address": claimer.address})

    class RacingRepository(EligibleUserRepository):
        async def mark_as_claimed(self, address, **kwargs):
            # Another request commits its claim first
            async with db_manager.get_session_factory()() as other_session:
                await EligibleUserRepository(other_session).mark_as_claimed(address)
            return await super().mark_as_claimed(address, **kwargs)

    service = build_service(users=RacingRepository(session))

    with pytest.raises(ServiceError) as exc_info:
        await claim_with(service, claimer, sign_claim)

    assert exc_info.value.code == ServiceErrorCode.ALREADY_CLAIMED
    assert exc_info.value.details["claimDate"] is not None


async def test_paused_claims(build_service, seed_users, user_repository, claimer, sign_claim):
    await seed_users({"wallet_address": claimer.address})

    with pytest.raises(ServiceError) as exc_info:
        await claim_with(build_service(claims_paused=True), claimer, sign_claim)

    assert exc_info.value.status_code == 503
    assert exc_info.value.code == ServiceErrorCode.CLAIMS_PAUSED
    assert (await user_repository.find_by_address(claimer.address)).claimed is False


async def test_captcha_provider_outage(build_service, seed_users, claimer, sign_claim):
    await seed_users({"wallet_address": claimer.address})
    service = build_service(captcha=FailingCaptcha(CaptchaProviderError("timeout")))

    with pytest.raises(ServiceError) as exc_info:
        await claim_with(service, claimer, sign_claim)

    assert exc_info.value.status_code == 503
    assert exc_info.value.code == ServiceErrorCode.CAPTCHA_UNAVAILABLE


async def test_unexpected_failure(build_service, seed_users, user_repository, claimer, sign_claim):
    await seed_users({"wallet_address": claimer.address})
    service = build_service(captcha=FailingCaptcha(RuntimeError("boom")), DEBUG=False)

    with pytest.raises(ServiceError) as exc_info:
        await claim_with(service, claimer, sign_claim)

    assert exc_info.value.status_code == 500
    assert exc_info.value.code == ServiceErrorCode.CLAIM_PROCESSING_FAILED
    assert exc_info.value.details == {}
    assert (await user_repository.find_by_address(claimer.address)).attempts == 1
    assert service.metrics.get_metrics_summary()["claim_outcomes"] == {"error": 1}


async def test_signature_for_other_wallet(build_service, seed_users, user_repository, claimer, sign_claim):
    await seed_users({"wallet_address": claimer.address})

    with pytest.raises(ServiceError) as exc_info:
        await build_service().claim(claimer.address, sign_claim(Account.create(), claimer.address), CAPTCHA, CLIENT_IP)

    assert exc_info.value.code == ServiceErrorCode.INVALID_SIGNATURE
    assert (await user_repository.find_by_address(claimer.address)).attempts == 1


async def test_on_chain_claim_sends_allocation(on_chain, seed_users, user_repository, transaction_repository, mock_w3, claimer, sign_claim):
    mock_w3.eth.get_balance.return_value = 10 ** 22
    await seed_users({"wallet_address": claimer.address})

    result = await claim_with(on_chain, claimer, sign_claim)

    assert result.tx_hash == TX_HASH
    assert result.user.tx_hash == TX_HASH
    transfers = await transaction_repository.find_by_address(claimer.address)
    assert [(tx.amount, tx.status) for tx in transfers] == [(str(10 ** 21), "confirmed")]

    status = await on_chain.get_claim_status(claimer.address)
    assert status.user.claimed is True
    assert [tx.tx_hash for tx in status.transactions] == [TX_HASH]


async def test_on_chain_unfunded_wallet_releases_claim(on_chain, seed_users, user_repository, mock_w3, claimer, sign_claim):
    # The default mocked balance equals the allocation, leaving nothing for gas
    await seed_users({"wallet_address": claimer.address})

    with pytest.raises(ServiceError) as exc_info:
        await claim_with(on_chain, claimer, sign_claim)

    assert exc_info.value.status_code == 503
    assert exc_info.value.code == ServiceErrorCode.INSUFFICIENT_FUNDS
    mock_w3.eth.send_raw_transaction.assert_not_called()
    assert (await user_repository.find_by_address(claimer.address)).claimed is False


async def test_on_chain_reverted_transfer_keeps_claim(on_chain, seed_users, user_repository, mock_w3, claimer, sign_claim):
    mock_w3.eth.get_balance.return_value = 10 ** 22
    mock_w3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "gasUsed": 21000, "blockNumber": 42}
    await seed_users({"wallet_address": claimer.address})

    with pytest.raises(ServiceError) as exc_info:
        await claim_with(on_chain, claimer, sign_claim)

    assert exc_info.value.status_code == 500
    assert exc_info.value.code == ServiceErrorCode.TRANSACTION_FAILED
    assert exc_info.value.details == {"txHash": TX_HASH}
    user = await user_repository.find_by_address(claimer.address)
    assert user.claimed is True
    assert user.tx_hash == TX_HASH


async def test_claim_status_unknown_wallet(build_service, claimer):
    status = await build_service().get_claim_status(claimer.address.lower())

    assert status.user is None
    assert status.transactions == []
