"""
Input validation helpers shared by DTOs and the offline jobs.
"""

import re
from typing import Optional, Tuple

from eth_utils import is_address

EVM_ADDRESS_PATTERN = re.compile(r'^0x[a-fA-F0-9]{40}$')
SIGNATURE_MIN_LENGTH = 100


class AddressValidator:
    """Validators for EVM wallet addresses."""

    @staticmethod
    def validate_evm_address(address: Optional[str]) -> bool:
        """0x-prefixed, 40 hex characters; mixed case must carry a valid checksum."""
        if not address:
            return False
        address = address.strip()
        return bool(EVM_ADDRESS_PATTERN.match(address)) and is_address(address)

    @staticmethod
    def normalize(address: Optional[str]) -> Tuple[bool, str]:
        """
        Validate and lower-case an address.
        Returns: (is_valid, normalized_or_error_message)
        """
        if not address or not address.strip():
            return False, "Wallet address is required"

        if not AddressValidator.validate_evm_address(address):
            return False, "Invalid Ethereum address format"

        return True, address.strip().lower()
