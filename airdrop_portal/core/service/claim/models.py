"""Domain entities and results for the claim workflow."""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


CLAIM_MESSAGE_TEMPLATE = "Claim airdrop for {address}"


def build_claim_message(wallet_address: str) -> str:
    """The exact text a wallet signs to claim; the address is lower-cased."""
    return CLAIM_MESSAGE_TEMPLATE.format(address=wallet_address.lower())


class EligibleUser(BaseModel):
    """Eligibility record for a single wallet"""
    id: Optional[int] = None
    wallet_address: str
    allocated_amount: str
    xp_points: int = 0
    rank: int
    claimed: bool = False
    claim_date: Optional[datetime] = None
    tx_hash: Optional[str] = None
    signature: Optional[str] = None
    attempts: int = 0
    last_attempt: Optional[datetime] = None
    ip_address: Optional[str] = None
    country: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Transaction(BaseModel):
    """Transaction log entry for an on-chain transfer attempt"""
    id: Optional[int] = None
    wallet_address: str
    tx_hash: str
    amount: str
    status: str
    gas_used: str = "0"
    gas_paid: str = "0"
    block_number: Optional[int] = None
    error: Optional[str] = None
    retry_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AirdropStats(BaseModel):
    """Aggregate counters over the eligibility list"""
    totalEligible: int = 0
    totalClaimed: int = 0
    totalUnclaimed: int = 0
    # Float sums, reporting only
    totalAllocated: float = 0
    totalDistributed: float = 0

    @property
    def claim_percentage(self) -> str:
        if not self.totalEligible:
            return "0.00"
        return f"{self.totalClaimed / self.totalEligible * 100:.2f}"


class ClaimsByDay(BaseModel):
    date: str  # YYYY-MM-DD (UTC)
    count: int
    totalAmount: float


class EligibilityResult(BaseModel):
    eligible: bool
    user: Optional[EligibleUser] = None


class ClaimResult(BaseModel):
    user: EligibleUser
    ip_address: str
    country: str
    tx_hash: Optional[str] = None


class ClaimStatus(BaseModel):
    user: Optional[EligibleUser] = None
    transactions: List[Transaction] = Field(default_factory=list)
