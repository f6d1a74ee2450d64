"""
Shared fixtures: a temp-file SQLite database, a backend wallet over a mocked
web3 connection, geolocation over a mocked transport, and the ASGI app wired
to all of them.
"""

from typing import AsyncGenerator
from unittest.mock import MagicMock

import httpx
import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from httpx import ASGITransport, AsyncClient

from airdrop_portal.api.utils.metrics import ClaimMetrics
from airdrop_portal.app import create_app
from airdrop_portal.core.dependencies import get_claim_metrics
from airdrop_portal.core.service.captcha.captcha_verifier import CaptchaVerifier
from airdrop_portal.core.service.claim.models import build_claim_message
from airdrop_portal.core.service.geolocation.ip_geolocation import GeolocationService
from airdrop_portal.core.service.wallet.wallet_service import WalletService
from airdrop_portal.infra.config.settings import get_settings
from airdrop_portal.infra.database import DatabaseManager, get_async_session
from airdrop_portal.infra.repository.eligible_user_repository import EligibleUserRepository
from airdrop_portal.infra.repository.transaction_repository import TransactionRepository

ADMIN_KEY = "test-admin-key"
CAPTCHA_TOKEN = "captcha-token-" + "x" * 32
PUBLIC_IP = "8.8.8.8"
ONE_THOUSAND_TOKENS = str(10 ** 21)


def geolocation_handler(request: httpx.Request) -> httpx.Response:
    if request.url.host == "ip-api.com":
        return httpx.Response(200, json={"status": "success", "country": "Germany"})
    return httpx.Response(200, text="Germany")


@pytest.fixture
async def db_manager(tmp_path) -> AsyncGenerator[DatabaseManager, None]:
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'airdrop.db'}")
    await manager.create_tables()
    yield manager
    await manager.close()


@pytest.fixture
async def session(db_manager):
    async with db_manager.get_session_factory()() as db_session:
        yield db_session


@pytest.fixture
def user_repository(session) -> EligibleUserRepository:
    return EligibleUserRepository(session)


@pytest.fixture
def transaction_repository(session) -> TransactionRepository:
    return TransactionRepository(session)


@pytest.fixture
def seed_users(user_repository):
    """Insert eligibility records; only wallet_address is required."""
    async def _seed(*records):
        rows = []
        for rank, record in enumerate(records, start=1):
            row = {
                "allocated_amount": ONE_THOUSAND_TOKENS,
                "xp_points": 100,
                "rank": rank,
                "claimed": False,
            }
            row.update(record)
            row["wallet_address"] = row["wallet_address"].lower()
            rows.append(row)
        return await user_repository.bulk_insert(rows)
    return _seed


@pytest.fixture
def claimer():
    """A user wallet that holds its own key"""
    return Account.create()


@pytest.fixture
def sign_claim():
    def _sign(account, address=None) -> str:
        message = build_claim_message(address or account.address)
        signed = Account.sign_message(encode_defunct(text=message), private_key=account.key)
        return "0x" + signed.signature.hex().removeprefix("0x")
    return _sign


@pytest.fixture
def mock_w3():
    w3 = MagicMock()
    w3.is_connected.return_value = True
    w3.eth.chain_id = 8118
    w3.eth.gas_price = 10 ** 9
    w3.eth.get_balance.return_value = 10 ** 21
    w3.eth.estimate_gas.return_value = 21000
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.send_raw_transaction.return_value = bytes.fromhex("ab" * 32)
    w3.eth.wait_for_transaction_receipt.return_value = {
        "status": 1,
        "gasUsed": 21000,
        "blockNumber": 42,
        "effectiveGasPrice": 10 ** 9,
    }
    return w3


@pytest.fixture
def wallet_service(mock_w3) -> WalletService:
    return WalletService(w3=mock_w3, account=Account.create(), chain_id=8118)


@pytest.fixture
def claim_metrics() -> ClaimMetrics:
    return ClaimMetrics()


@pytest.fixture
async def geolocation_service(claim_metrics):
    client = httpx.AsyncClient(transport=httpx.MockTransport(geolocation_handler))
    service = GeolocationService(http_client=client, metrics=claim_metrics)
    yield service
    await service.close()


@pytest.fixture
def captcha_verifier() -> CaptchaVerifier:
    return CaptchaVerifier(config=get_settings().model_copy(update={"RECAPTCHA_SECRET_KEY": None}))


@pytest.fixture
async def app(db_manager, wallet_service, geolocation_service, captcha_verifier, claim_metrics):
    application = create_app()

    async def override_session():
        async with db_manager.get_session_factory()() as db_session:
            yield db_session

    application.dependency_overrides[get_async_session] = override_session
    application.dependency_overrides[get_claim_metrics] = lambda: claim_metrics
    application.state.wallet_service = wallet_service
    application.state.geolocation_service = geolocation_service
    application.state.captcha_verifier = captcha_verifier
    return application


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def admin_headers(monkeypatch):
    monkeypatch.setattr(get_settings(), "API_SECRET_KEY", ADMIN_KEY)
    return {"x-admin-key": ADMIN_KEY}
