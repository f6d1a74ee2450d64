"""Read models for the public statistics and the admin dashboard."""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from airdrop_portal.core.service.claim.models import ClaimsByDay


class BackendWallet(BaseModel):
    address: Optional[str] = None
    balance: str = "unavailable"


class StatsOverview(BaseModel):
    totalEligible: int
    totalClaimed: int
    totalUnclaimed: int
    totalAllocated: float
    totalDistributed: float
    backendWallet: BackendWallet
    claimPercentage: str


class TransactionSummary(BaseModel):
    txHash: str
    walletAddress: str
    amount: str
    status: str
    createdAt: Optional[datetime] = None
    blockNumber: Optional[int] = None


class FailedTransactionSummary(BaseModel):
    txHash: str
    walletAddress: str
    error: Optional[str] = None
    createdAt: Optional[datetime] = None


class ClaimerSummary(BaseModel):
    walletAddress: str
    amount: str
    rank: int
    xpPoints: int
    claimDate: Optional[datetime] = None


class Dashboard(BaseModel):
    stats: StatsOverview
    recentTransactions: List[TransactionSummary] = Field(default_factory=list)
    failedTransactions: List[FailedTransactionSummary] = Field(default_factory=list)
    topClaimers: List[ClaimerSummary] = Field(default_factory=list)
    claimsByDay: List[ClaimsByDay] = Field(default_factory=list)
    claimsPaused: bool = False
