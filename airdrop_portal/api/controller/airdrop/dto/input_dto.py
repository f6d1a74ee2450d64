"""
Input DTOs for the public airdrop endpoints.
"""

from pydantic import BaseModel, Field, validator

from airdrop_portal.api.utils.validators import AddressValidator, SIGNATURE_MIN_LENGTH


def _normalize_address(value: str) -> str:
    is_valid, result = AddressValidator.normalize(value)
    if not is_valid:
        raise ValueError(result)
    return result


class CheckEligibilityRequestDto(BaseModel):
    """DTO for an eligibility lookup."""

    walletAddress: str = Field(..., description="Wallet address (any case)")

    @validator('walletAddress')
    def validate_wallet_address(cls, v):
        return _normalize_address(v)


class ClaimRequestDto(BaseModel):
    """DTO for a claim submission."""

    walletAddress: str = Field(..., description="Claiming wallet address")
    signature: str = Field(
        ...,
        min_length=SIGNATURE_MIN_LENGTH,
        description="Personal-message signature over 'Claim airdrop for <address>'"
    )
    captchaToken: str = Field(..., min_length=1, description="CAPTCHA response token")

    @validator('walletAddress')
    def validate_wallet_address(cls, v):
        return _normalize_address(v)

    @validator('signature')
    def validate_signature(cls, v):
        return v.strip()
