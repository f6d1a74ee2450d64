import binascii
from eth_account.messages import encode_defunct
from eth_account import Account
from eth_typing import ChecksumAddress
from hexbytes import HexBytes
from typing import Optional, Tuple
from web3 import Web3

from airdrop_portal.core.logger.logger import get_logger

logger = get_logger(__name__)


class SignatureVerificationService:
    """Service for verifying EIP-191 personal-message signatures"""

    @staticmethod
    def _to_checksum_address(address: str) -> ChecksumAddress:
        """Convert address to checksum format"""
        try:
            return Web3.to_checksum_address(address.lower())
        except ValueError as e:
            raise ValueError("Invalid Ethereum address format") from e

    @staticmethod
    def _to_signature_bytes(signature) -> HexBytes:
        if isinstance(signature, str) and not signature.startswith("0x"):
            signature = "0x" + signature
        return HexBytes(signature)

    def recover_address(self, message: str, signature) -> str:
        """Recover the signer address; raises ValueError on malformed input"""
        try:
            signature_bytes = self._to_signature_bytes(signature)
            return Account.recover_message(encode_defunct(text=message), signature=signature_bytes)
        except (ValueError, TypeError, binascii.Error) as e:
            raise ValueError("Invalid signature format") from e

    def verify_signature(self, claimed_address: str, signature, message: str) -> Tuple[bool, Optional[str]]:
        """
        Verify a personal-message signature

        Args:
            claimed_address: The address that claims to have signed the message
            signature: Hex signature (with or without 0x) or raw bytes
            message: The original message that was signed

        Returns:
            Tuple[bool, Optional[str]]: (is_valid, error_message)
        """
        try:
            checksum_address = self._to_checksum_address(claimed_address)
        except (ValueError, AttributeError) as e:
            logger.warning(
                "Invalid Ethereum address format",
                extra={"wallet_address": claimed_address, "error": str(e)}
            )
            return False, "Invalid Ethereum address format"

        try:
            recovered_address = self.recover_address(message, signature)
        except ValueError as e:
            logger.warning(
                "Invalid signature format",
                extra={"wallet_address": claimed_address, "error": str(e.__cause__ or e)}
            )
            return False, "Invalid signature format"
        except Exception as e:
            # eth-keys raises its own BadSignature family for out-of-range values
            logger.warning(
                "Signature recovery failed",
                extra={"wallet_address": claimed_address, "error": str(e)}
            )
            return False, "Invalid signature format"

        if recovered_address.lower() != checksum_address.lower():
            logger.warning(
                "Recovered address does not match claimed address",
                extra={
                    "wallet_address": claimed_address,
                    "recovered_address": recovered_address
                }
            )
            return False, "Recovered address does not match claimed address"

        logger.info(
            "Signature verified successfully",
            extra={"wallet_address": claimed_address}
        )
        return True, None
