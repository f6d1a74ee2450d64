"""WalletService over a mocked web3 connection and a real transaction log."""

from unittest.mock import MagicMock, patch

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from airdrop_portal.core.service.wallet.units import format_ether, to_base_units
from airdrop_portal.core.service.wallet.wallet_service import (
    InsufficientFundsError,
    TransferFailedError,
    WalletService,
    WalletServiceError,
)
from airdrop_portal.infra.config.settings import get_settings

TX_HASH = "0x" + "ab" * 32


@pytest.mark.parametrize("value, expected", [
    (10 ** 21, "1000.0"),
    (str(10 ** 21), "1000.0"),
    (0, "0.0"),
    (5 * 10 ** 17, "0.5"),
    (1, "0.000000000000000001"),
    (123456789012345678901234567890, "123456789012.34567890123456789"),
])
def test_format_ether(value, expected):
    assert format_ether(value) == expected


def test_to_base_units():
    assert to_base_units(1000) == 10 ** 21
    assert to_base_units(50, decimals=6) == 50_000_000


async def test_create_requires_rpc_url():
    config = get_settings().model_copy(update={"RPC_URL": None, "PRIVATE_KEY": "0x" + "11" * 32})

    with pytest.raises(WalletServiceError, match="RPC_URL"):
        await WalletService.create(config)


async def test_create_requires_private_key():
    config = get_settings().model_copy(update={"RPC_URL": "http://localhost:8545", "PRIVATE_KEY": None})

    with pytest.raises(WalletServiceError, match="PRIVATE_KEY"):
        await WalletService.create(config)


async def test_create_rejects_malformed_key():
    config = get_settings().model_copy(update={"RPC_URL": "http://localhost:8545", "PRIVATE_KEY": "0x1234"})

    with pytest.raises(WalletServiceError, match="not a valid private key"):
        await WalletService.create(config)


async def test_create_connects(mock_w3):
    key = "0x" + "11" * 32
    config = get_settings().model_copy(update={"RPC_URL": "http://localhost:8545", "PRIVATE_KEY": key, "CHAIN_ID": 1})

    with patch("airdrop_portal.core.service.wallet.wallet_service.Web3", MagicMock(return_value=mock_w3)) as web3_cls:
        service = await WalletService.create(config)

    web3_cls.HTTPProvider.assert_called_once_with(
        "http://localhost:8545",
        request_kwargs={"timeout": config.RPC_TIMEOUT_SECONDS}
    )
    # Chain mismatch (8118 reported vs 1 configured) only warns
    assert service.address == Account.from_key(key).address
    assert service.chain_id == 1


async def test_create_fails_when_rpc_unreachable(mock_w3):
    mock_w3.eth.get_balance.side_effect = ConnectionError("refused")
    config = get_settings().model_copy(update={"RPC_URL": "http://localhost:8545", "PRIVATE_KEY": "0x" + "22" * 32})

    with patch("airdrop_portal.core.service.wallet.wallet_service.Web3", MagicMock(return_value=mock_w3)):
        with pytest.raises(WalletServiceError, match="Failed to connect"):
            await WalletService.create(config)


def test_verify_signature(wallet_service):
    account = Account.create()
    message = f"Claim airdrop for {account.address.lower()}"
    signature = Account.sign_message(encode_defunct(text=message), private_key=account.key).signature

    assert wallet_service.verify_signature(message, signature.hex(), account.address.lower()) is True
    assert wallet_service.verify_signature(message, signature.hex(), Account.create().address) is False
    assert wallet_service.verify_signature(message, "garbage", account.address) is False


async def test_balance(wallet_service, mock_w3):
    assert await wallet_service.get_balance() == 10 ** 21
    assert await wallet_service.get_formatted_balance() == "1000.0"
    mock_w3.eth.get_balance.assert_called_with(wallet_service.address)


async def test_estimate_gas(wallet_service):
    estimate = await wallet_service.estimate_gas(Account.create().address, 10 ** 18)

    assert estimate.gas_limit == 21000
    assert estimate.gas_price == 10 ** 9
    assert estimate.gas_cost == 21000 * 10 ** 9
    assert estimate.gas_cost_formatted == "0.000021"


async def test_estimate_gas_insufficient_funds(wallet_service, mock_w3):
    mock_w3.eth.estimate_gas.side_effect = ValueError({"code": -32000, "message": "insufficient funds for transfer"})

    with pytest.raises(InsufficientFundsError):
        await wallet_service.estimate_gas(Account.create().address, 10 ** 18)


async def test_send_native_token(wallet_service, mock_w3, transaction_repository):
    recipient = Account.create().address.lower()

    result = await wallet_service.send_native_token(recipient, 10 ** 18, transaction_repository)

    assert result.tx_hash == TX_HASH
    assert result.block_number == 42
    assert result.gas_used == "21000"

    sent_raw = mock_w3.eth.send_raw_transaction.call_args[0][0]
    assert isinstance(sent_raw, (bytes, bytearray))
    mock_w3.eth.get_transaction_count.assert_called_with(wallet_service.address, "pending")

    stored = await transaction_repository.find_by_tx_hash(TX_HASH)
    assert stored.status == "confirmed"
    assert stored.wallet_address == recipient
    assert stored.amount == str(10 ** 18)
    assert stored.block_number == 42
    assert stored.gas_paid == str(21000 * 10 ** 9)


async def test_send_native_token_insufficient_balance(wallet_service, mock_w3, transaction_repository):
    mock_w3.eth.get_balance.return_value = 10 ** 18

    with pytest.raises(InsufficientFundsError, match="Insufficient balance"):
        await wallet_service.send_native_token(Account.create().address, 10 ** 18, transaction_repository)

    mock_w3.eth.send_raw_transaction.assert_not_called()
    assert await transaction_repository.recent() == []


async def test_send_native_token_rejects_bad_recipient(wallet_service, transaction_repository):
    with pytest.raises(TransferFailedError, match="Invalid recipient"):
        await wallet_service.send_native_token("0x1234", 1, transaction_repository)


async def test_submission_rejected(wallet_service, mock_w3, transaction_repository):
    mock_w3.eth.send_raw_transaction.side_effect = ValueError("nonce too low")

    with pytest.raises(TransferFailedError) as exc_info:
        await wallet_service.send_native_token(Account.create().address, 10 ** 18, transaction_repository)

    assert exc_info.value.tx_hash is None


async def test_reverted_transfer_is_logged(wallet_service, mock_w3, transaction_repository):
    mock_w3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "gasUsed": 21000, "blockNumber": 43}

    with pytest.raises(TransferFailedError) as exc_info:
        await wallet_service.send_native_token(Account.create().address, 10 ** 18, transaction_repository)

    assert exc_info.value.tx_hash == TX_HASH
    stored = await transaction_repository.find_by_tx_hash(TX_HASH)
    assert stored.status == "failed"
    assert stored.error == "Transaction reverted"


async def test_unconfirmed_transfer_is_logged(wallet_service, mock_w3, transaction_repository):
    mock_w3.eth.wait_for_transaction_receipt.side_effect = TimeoutError("not mined")

    with pytest.raises(TransferFailedError, match="not confirmed"):
        await wallet_service.send_native_token(Account.create().address, 10 ** 18, transaction_repository)

    assert (await transaction_repository.find_by_tx_hash(TX_HASH)).status == "failed"


async def test_send_erc20_token(wallet_service, mock_w3, transaction_repository):
    token_address = Web3.to_checksum_address("0x" + "42" * 20)
    recipient = Account.create().address
    token = mock_w3.eth.contract.return_value
    token.functions.balanceOf.return_value.call.return_value = 10 ** 24
    token.functions.transfer.return_value.build_transaction.return_value = {
        "to": token_address,
        "data": "0xa9059cbb" + "00" * 64,
        "value": 0,
        "gas": 60000,
        "gasPrice": 10 ** 9,
        "nonce": 7,
        "chainId": 8118,
    }

    result = await wallet_service.send_erc20_token(recipient, 10 ** 21, token_address, transaction_repository)

    assert result.tx_hash == TX_HASH
    token.functions.transfer.assert_called_once_with(Web3.to_checksum_address(recipient), 10 ** 21)
    assert (await transaction_repository.find_by_tx_hash(TX_HASH)).status == "confirmed"


async def test_send_erc20_token_insufficient_token_balance(wallet_service, mock_w3, transaction_repository):
    token = mock_w3.eth.contract.return_value
    token.functions.balanceOf.return_value.call.return_value = 0

    with pytest.raises(InsufficientFundsError, match="token balance"):
        await wallet_service.send_erc20_token(
            Account.create().address, 10 ** 21, "0x" + "42" * 20, transaction_repository
        )
