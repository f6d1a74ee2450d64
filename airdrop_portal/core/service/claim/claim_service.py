"""
Claim workflow: eligibility lookups, claim registration and claim status.

Per wallet the states are not_found -> eligible_unclaimed -> claimed. The
claimed transition is a conditional database update, so concurrent claims for
one wallet cannot both succeed.
"""

from typing import List, Optional

from airdrop_portal.api.utils.metrics import ClaimMetrics, ClaimOutcome, get_metrics
from airdrop_portal.core.exceptions.handler import ServiceError, ServiceErrorCode
from airdrop_portal.core.logger.logger import get_logger
from airdrop_portal.core.service.captcha.captcha_verifier import CaptchaProviderError, CaptchaVerifier
from airdrop_portal.core.service.claim.models import (
    ClaimResult,
    ClaimStatus,
    EligibilityResult,
    EligibleUser,
    build_claim_message,
)
from airdrop_portal.core.service.geolocation.ip_geolocation import GeolocationService
from airdrop_portal.core.service.wallet.wallet_service import (
    InsufficientFundsError,
    TransferFailedError,
    WalletService,
)
from airdrop_portal.infra.config.settings import Settings, get_settings
from airdrop_portal.infra.repository.eligible_user_repository import EligibleUserRepository
from airdrop_portal.infra.repository.transaction_repository import TransactionRepository

logger = get_logger(__name__)

ON_CHAIN_TRANSFER = "on-chain-transfer"


def _already_claimed(user: Optional[EligibleUser]) -> ServiceError:
    return ServiceError(
        code=ServiceErrorCode.ALREADY_CLAIMED,
        message="Airdrop already claimed",
        status_code=400,
        details={
            "txHash": user.tx_hash if user else None,
            "claimDate": user.claim_date.isoformat() if user and user.claim_date else None
        }
    )


class ClaimService:
    """Orchestrates the claim workflow over the stores and outbound services"""

    def __init__(
        self,
        users: EligibleUserRepository,
        transactions: TransactionRepository,
        geolocation: GeolocationService,
        captcha: CaptchaVerifier,
        wallet: Optional[WalletService] = None,
        metrics: Optional[ClaimMetrics] = None,
        config: Optional[Settings] = None,
        claims_paused: bool = False
    ):
        self.users = users
        self.transactions = transactions
        self.geolocation = geolocation
        self.captcha = captcha
        self.wallet = wallet
        self.metrics = metrics or get_metrics()
        self.config = config or get_settings()
        self.claims_paused = claims_paused

    async def check_eligibility(self, wallet_address: str, client_ip: str) -> EligibilityResult:
        """
        Look up a wallet. Unknown wallets are reported, never created.

        Known wallets get their IP and country filled in when either is missing.
        """
        address = wallet_address.lower()
        user = await self.users.find_by_address(address)

        if not user:
            self.metrics.record_eligibility_check(False)
            return EligibilityResult(eligible=False)

        if not user.ip_address or not user.country:
            country = await self.geolocation.resolve_country(client_ip)
            await self.users.update_location(address, client_ip, country)
            user = user.model_copy(update={"ip_address": client_ip, "country": country})
            logger.info(f"Wallet connected: {address}, IP: {client_ip}, Country: {country}")

        self.metrics.record_eligibility_check(True)
        return EligibilityResult(eligible=True, user=user)

    async def claim(
        self,
        wallet_address: str,
        signature: str,
        captcha_token: str,
        client_ip: str
    ) -> ClaimResult:
        """
        Register a claim for ``wallet_address``.

        Raises:
            ServiceError: every rejection, carrying the status code for the client
        """
        address = wallet_address.lower()

        if self.claims_paused:
            self.metrics.record_claim(ClaimOutcome.PAUSED)
            raise ServiceError(
                code=ServiceErrorCode.CLAIMS_PAUSED,
                message="Claims are temporarily paused. Please try again later.",
                status_code=503
            )

        try:
            result = await self._process_claim(address, signature, captcha_token, client_ip)
        except ServiceError:
            raise
        except Exception as e:
            logger.error(
                "Error processing claim",
                extra={"wallet_address": address, "error": str(e)},
                exc_info=True
            )
            await self.users.increment_attempt(address)
            self.metrics.record_claim(ClaimOutcome.ERROR)
            raise ServiceError(
                code=ServiceErrorCode.CLAIM_PROCESSING_FAILED,
                message="Error processing claim. Please try again later.",
                status_code=500,
                details={"error": str(e)} if self.config.DEBUG else None
            ) from e

        self.metrics.record_claim(ClaimOutcome.SUCCESS)
        return result

    async def _verify_captcha(self, address: str, captcha_token: str, client_ip: str) -> None:
        try:
            accepted = await self.captcha.verify(captcha_token, client_ip)
        except CaptchaProviderError as e:
            self.metrics.record_claim(ClaimOutcome.CAPTCHA_FAILED)
            raise ServiceError(
                code=ServiceErrorCode.CAPTCHA_UNAVAILABLE,
                message="Failed to verify CAPTCHA. Please try again.",
                status_code=503
            ) from e

        if not accepted:
            logger.warning(f"CAPTCHA verification failed for wallet: {address}")
            self.metrics.record_claim(ClaimOutcome.CAPTCHA_FAILED)
            raise ServiceError(
                code=ServiceErrorCode.CAPTCHA_FAILED,
                message="CAPTCHA verification failed. Invalid token.",
                status_code=400
            )

    async def _process_claim(
        self,
        address: str,
        signature: str,
        captcha_token: str,
        client_ip: str
    ) -> ClaimResult:
        await self._verify_captcha(address, captcha_token, client_ip)

        user = await self.users.find_by_address(address)
        if not user:
            self.metrics.record_claim(ClaimOutcome.NOT_ELIGIBLE)
            raise ServiceError(
                code=ServiceErrorCode.NOT_ELIGIBLE,
                message="Wallet address is not eligible for this airdrop",
                status_code=400
            )

        if user.claimed:
            self.metrics.record_claim(ClaimOutcome.ALREADY_CLAIMED)
            raise _already_claimed(user)

        if self.wallet is None:
            raise ServiceError(
                code=ServiceErrorCode.SERVICE_UNAVAILABLE,
                message="Wallet service unavailable",
                status_code=503
            )

        message = build_claim_message(address)
        if not self.wallet.verify_signature(message, signature, address):
            logger.warning(f"Invalid signature for wallet: {address}")
            await self.users.increment_attempt(address)
            self.metrics.record_claim(ClaimOutcome.INVALID_SIGNATURE)
            raise ServiceError(
                code=ServiceErrorCode.INVALID_SIGNATURE,
                message="Invalid signature. Please try again.",
                status_code=400
            )

        if user.ip_address and user.country:
            ip_address, country = user.ip_address, user.country
        else:
            ip_address = client_ip
            country = await self.geolocation.resolve_country(client_ip)

        transitioned = await self.users.mark_as_claimed(
            address,
            ip_address=ip_address,
            country=country,
            tx_hash=None,
            signature=signature
        )
        if not transitioned:
            # A concurrent request claimed first
            self.metrics.record_claim(ClaimOutcome.ALREADY_CLAIMED)
            raise _already_claimed(await self.users.find_by_address(address))

        tx_hash = None
        if self.config.TRANSFER_MODE == ON_CHAIN_TRANSFER:
            tx_hash = await self._distribute(address, int(user.allocated_amount))

        claimed_user = await self.users.find_by_address(address)
        logger.info(
            f"User registered: {address}, IP: {ip_address}, Country: {country}",
            extra={"claim_date": claimed_user.claim_date, "tx_hash": tx_hash}
        )
        return ClaimResult(user=claimed_user, ip_address=ip_address, country=country, tx_hash=tx_hash)

    async def _distribute(self, address: str, amount: int) -> str:
        """
        Send the allocation for a reserved claim.

        A failure before broadcast releases the reservation. Once a hash exists
        the claim stays reserved with that hash for operator review.
        """
        try:
            if self.config.TOKEN_CONTRACT_ADDRESS:
                result = await self.wallet.send_erc20_token(
                    address, amount, self.config.TOKEN_CONTRACT_ADDRESS, self.transactions
                )
            else:
                result = await self.wallet.send_native_token(address, amount, self.transactions)
        except InsufficientFundsError as e:
            await self.users.release_claim(address)
            self.metrics.record_claim(ClaimOutcome.TRANSFER_FAILED)
            logger.error(f"Transfer aborted, backend wallet unfunded: {e}")
            raise ServiceError(
                code=ServiceErrorCode.INSUFFICIENT_FUNDS,
                message="Airdrop service is temporarily unfunded. Please try again later.",
                status_code=503
            ) from e
        except Exception as e:
            tx_hash = e.tx_hash if isinstance(e, TransferFailedError) else None
            if tx_hash:
                await self.users.set_transfer_hash(address, tx_hash)
            else:
                await self.users.release_claim(address)
            self.metrics.record_claim(ClaimOutcome.TRANSFER_FAILED)
            logger.error(
                "Token transfer failed",
                extra={"wallet_address": address, "tx_hash": tx_hash, "error": str(e)}
            )
            raise ServiceError(
                code=ServiceErrorCode.TRANSACTION_FAILED,
                message="Token transfer failed. Please try again later.",
                status_code=500,
                details={"txHash": tx_hash} if tx_hash else None
            ) from e

        await self.users.set_transfer_hash(address, result.tx_hash)
        return result.tx_hash

    async def recent_claims(self, limit: int = 10) -> List[EligibleUser]:
        return await self.users.recent_claims(limit)

    async def get_claim_status(self, address: str) -> ClaimStatus:
        user = await self.users.find_by_address(address)
        if not user:
            return ClaimStatus()
        transactions = await self.transactions.find_by_address(address)
        return ClaimStatus(user=user, transactions=transactions)
