"""Server-side wallet: signature checks, balance reads and token transfers."""

from typing import Any, Dict, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import is_address
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool
from web3 import Web3

from airdrop_portal.core.logger.logger import get_logger
from airdrop_portal.core.service.wallet.signature_verification import SignatureVerificationService
from airdrop_portal.core.service.wallet.units import format_ether
from airdrop_portal.infra.config.settings import Settings
from airdrop_portal.infra.repository.transaction_repository import TransactionRepository

logger = get_logger(__name__)

# Minimal ERC20 surface used for distribution
ERC20_ABI = [
    {
        "constant": False,
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"}
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function"
    }
]

DEFAULT_GAS_PRICE_WEI = Web3.to_wei(1, "gwei")


class WalletServiceError(Exception):
    """Wallet could not be initialized or an RPC call failed"""


class InsufficientFundsError(WalletServiceError):
    """The backend wallet cannot cover a transfer and its gas"""


class TransferFailedError(WalletServiceError):
    """A transfer was rejected, reverted or never confirmed"""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message)


class GasEstimate(BaseModel):
    gas_limit: int
    gas_price: int
    gas_cost: int
    gas_cost_formatted: str


class TransferResult(BaseModel):
    tx_hash: str
    block_number: int
    gas_used: str


def _is_insufficient_funds(error: Exception) -> bool:
    text = str(error).lower()
    return "insufficient funds" in text or "insufficient balance" in text


class WalletService:
    """
    Owns the backend signing key and the RPC connection.

    Build it with ``WalletService.create(settings)`` once at startup; web3 is
    synchronous so every RPC call is pushed to the thread pool.
    """

    def __init__(
        self,
        w3: Web3,
        account: LocalAccount,
        chain_id: int,
        confirmation_timeout: int = 120,
        currency_symbol: str = "SHM"
    ):
        self.w3 = w3
        self.account = account
        self.chain_id = chain_id
        self.confirmation_timeout = confirmation_timeout
        self.currency_symbol = currency_symbol
        self.signatures = SignatureVerificationService()

    @classmethod
    async def create(cls, config: Settings) -> "WalletService":
        """
        Connect to the configured RPC endpoint with the configured key.

        Raises:
            WalletServiceError: RPC_URL or PRIVATE_KEY missing, key malformed
                or the endpoint unreachable
        """
        if not config.RPC_URL:
            raise WalletServiceError("RPC_URL is not configured")
        if not config.PRIVATE_KEY:
            raise WalletServiceError("PRIVATE_KEY is not configured")

        try:
            account = Account.from_key(config.PRIVATE_KEY)
        except Exception as e:
            raise WalletServiceError("PRIVATE_KEY is not a valid private key") from e

        w3 = Web3(Web3.HTTPProvider(
            config.RPC_URL,
            request_kwargs={"timeout": config.RPC_TIMEOUT_SECONDS}
        ))

        service = cls(
            w3=w3,
            account=account,
            chain_id=config.CHAIN_ID,
            confirmation_timeout=config.TRANSFER_CONFIRMATION_TIMEOUT_SECONDS,
            currency_symbol=config.CURRENCY_SYMBOL
        )
        await service.check_connection()
        return service

    async def check_connection(self) -> None:
        """Log network and balance; a chain mismatch or empty wallet only warns"""
        try:
            network_chain_id = await run_in_threadpool(lambda: self.w3.eth.chain_id)
            balance = await self.get_balance()
        except Exception as e:
            raise WalletServiceError(f"Failed to connect to RPC endpoint: {e}") from e

        logger.info(
            "Connected to network",
            extra={"chain_id": network_chain_id, "wallet": self.address}
        )
        if int(network_chain_id) != int(self.chain_id):
            logger.warning(
                f"Chain ID mismatch! Expected: {self.chain_id}, Got: {network_chain_id}"
            )

        logger.info(f"Wallet balance: {format_ether(balance)} {self.currency_symbol}")
        if balance == 0:
            logger.warning("Wallet balance is 0! Fund the wallet before processing transfers.")

    async def is_connected(self) -> bool:
        try:
            return bool(await run_in_threadpool(self.w3.is_connected))
        except Exception as e:
            logger.warning(f"RPC connectivity check failed: {e}")
            return False

    @property
    def address(self) -> str:
        return self.account.address

    def verify_signature(self, message: str, signature: str, expected_address: str) -> bool:
        """True iff ``signature`` over ``message`` recovers to ``expected_address``; never raises"""
        try:
            is_valid, _ = self.signatures.verify_signature(expected_address, signature, message)
            return is_valid
        except Exception as e:
            logger.error(f"Signature verification failed: {e}")
            return False

    async def get_balance(self) -> int:
        return int(await run_in_threadpool(self.w3.eth.get_balance, self.address))

    async def get_formatted_balance(self) -> str:
        return format_ether(await self.get_balance())

    async def _gas_price(self) -> int:
        gas_price = await run_in_threadpool(lambda: self.w3.eth.gas_price)
        return int(gas_price or DEFAULT_GAS_PRICE_WEI)

    async def estimate_gas(self, to_address: str, amount: int) -> GasEstimate:
        """
        Gas limit, price and total cost of a native transfer.

        Raises:
            InsufficientFundsError: the node refused to estimate for lack of balance
        """
        try:
            gas_limit = await run_in_threadpool(
                self.w3.eth.estimate_gas,
                {"from": self.address, "to": to_address, "value": amount}
            )
            gas_price = await self._gas_price()
        except Exception as e:
            logger.error(f"Gas estimation failed: {e}")
            if _is_insufficient_funds(e):
                raise InsufficientFundsError(
                    f"Backend wallet has insufficient {self.currency_symbol} balance to process claims"
                ) from e
            raise

        gas_cost = int(gas_limit) * gas_price
        return GasEstimate(
            gas_limit=int(gas_limit),
            gas_price=gas_price,
            gas_cost=gas_cost,
            gas_cost_formatted=format_ether(gas_cost)
        )

    @staticmethod
    def _checksum(address: str) -> str:
        if not is_address(address):
            raise TransferFailedError(f"Invalid recipient address: {address}")
        return Web3.to_checksum_address(address)

    async def _pending_nonce(self) -> int:
        return int(await run_in_threadpool(
            self.w3.eth.get_transaction_count, self.address, "pending"
        ))

    async def send_native_token(
        self,
        to_address: str,
        amount: int,
        transactions: TransactionRepository
    ) -> TransferResult:
        """
        Transfer ``amount`` wei of the native currency and wait for one confirmation.

        Raises:
            InsufficientFundsError: balance below amount + gas
            TransferFailedError: submission, confirmation or execution failed
        """
        recipient = self._checksum(to_address)
        logger.info(f"Preparing to send {format_ether(amount)} {self.currency_symbol} to {recipient}")

        balance = await self.get_balance()
        gas = await self.estimate_gas(recipient, amount)
        required = amount + gas.gas_cost
        if balance < required:
            raise InsufficientFundsError(
                f"Insufficient balance. Required: {format_ether(required)} {self.currency_symbol}, "
                f"Available: {format_ether(balance)} {self.currency_symbol}"
            )

        nonce = await self._pending_nonce()
        tx = {
            "to": recipient,
            "value": amount,
            "gas": gas.gas_limit,
            "gasPrice": gas.gas_price,
            "nonce": nonce,
            "chainId": self.chain_id
        }
        logger.info(f"Sending transaction with nonce: {nonce}")
        return await self._submit(tx, to_address, amount, transactions)

    async def send_erc20_token(
        self,
        to_address: str,
        amount: int,
        token_address: str,
        transactions: TransactionRepository
    ) -> TransferResult:
        """Same flow as ``send_native_token`` through the token's ``transfer``"""
        recipient = self._checksum(to_address)
        token = self.w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)

        token_balance = int(await run_in_threadpool(token.functions.balanceOf(self.address).call))
        if token_balance < amount:
            raise InsufficientFundsError(
                f"Insufficient token balance. Required: {amount}, Available: {token_balance}"
            )

        nonce = await self._pending_nonce()
        gas_price = await self._gas_price()
        try:
            tx = await run_in_threadpool(
                token.functions.transfer(recipient, amount).build_transaction,
                {
                    "from": self.address,
                    "nonce": nonce,
                    "gasPrice": gas_price,
                    "chainId": self.chain_id
                }
            )
        except Exception as e:
            if _is_insufficient_funds(e):
                raise InsufficientFundsError(
                    f"Backend wallet has insufficient {self.currency_symbol} for gas"
                ) from e
            raise TransferFailedError(f"Failed to build token transfer: {e}") from e

        logger.info(f"Sending ERC20 transfer with nonce: {nonce}", extra={"token": token_address})
        return await self._submit(tx, to_address, amount, transactions)

    async def _submit(
        self,
        tx: Dict[str, Any],
        recipient: str,
        amount: int,
        transactions: TransactionRepository
    ) -> TransferResult:
        signed = self.account.sign_transaction(tx)
        try:
            raw_hash = await run_in_threadpool(self.w3.eth.send_raw_transaction, signed.raw_transaction)
        except Exception as e:
            logger.error(f"Error sending transaction: {e}")
            if _is_insufficient_funds(e):
                raise InsufficientFundsError(str(e)) from e
            raise TransferFailedError(f"Transaction submission failed: {e}") from e

        tx_hash = Web3.to_hex(raw_hash)
        logger.info(f"Transaction sent: {tx_hash}")
        await transactions.create(recipient, tx_hash, str(amount))

        try:
            receipt = await run_in_threadpool(
                self.w3.eth.wait_for_transaction_receipt,
                raw_hash,
                timeout=self.confirmation_timeout
            )
        except Exception as e:
            await transactions.mark_as_failed(tx_hash, str(e))
            raise TransferFailedError(f"Transaction was not confirmed: {e}", tx_hash=tx_hash) from e

        if receipt["status"] != 1:
            await transactions.mark_as_failed(tx_hash, "Transaction reverted")
            raise TransferFailedError("Transaction reverted", tx_hash=tx_hash)

        gas_used = int(receipt["gasUsed"])
        gas_price = int(receipt.get("effectiveGasPrice") or tx.get("gasPrice") or 0)
        await transactions.mark_as_confirmed(
            tx_hash,
            block_number=int(receipt["blockNumber"]),
            gas_used=str(gas_used),
            gas_paid=str(gas_used * gas_price)
        )
        logger.info(f"Transaction confirmed in block {receipt['blockNumber']}")

        return TransferResult(
            tx_hash=tx_hash,
            block_number=int(receipt["blockNumber"]),
            gas_used=str(gas_used)
        )
