"""
Output DTOs for the public airdrop endpoints.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from airdrop_portal.core.service.admin.models import StatsOverview


class EligibilityResponseDto(BaseModel):
    success: bool = True
    eligible: bool
    amount: str = "0"
    amountFormatted: Optional[str] = None
    xpPoints: Optional[int] = None
    rank: Optional[int] = None
    claimed: bool = False
    claimDate: Optional[datetime] = None
    txHash: Optional[str] = None
    message: Optional[str] = None


class ClaimResponseDto(BaseModel):
    success: bool = True
    message: str = "Registration successful! Your wallet has been registered."
    amount: str
    amountFormatted: str
    registered: bool = True
    registeredDate: Optional[datetime] = None
    ipAddress: str
    country: str
    txHash: Optional[str] = None


class TransactionDto(BaseModel):
    txHash: str
    status: str
    amount: str
    blockNumber: Optional[int] = None
    createdAt: Optional[datetime] = None


class ClaimStatusResponseDto(BaseModel):
    success: bool = True
    found: bool
    message: Optional[str] = None
    claimed: Optional[bool] = None
    claimDate: Optional[datetime] = None
    txHash: Optional[str] = None
    amount: Optional[str] = None
    amountFormatted: Optional[str] = None
    xpPoints: Optional[int] = None
    rank: Optional[int] = None
    attempts: Optional[int] = None
    lastAttempt: Optional[datetime] = None
    transactions: List[TransactionDto] = Field(default_factory=list)


class StatsResponseDto(BaseModel):
    success: bool = True
    stats: StatsOverview


class RecentClaimDto(BaseModel):
    walletAddress: str
    amount: str
    claimDate: Optional[datetime] = None
    txHash: Optional[str] = None
    xpPoints: int
    rank: int


class RecentClaimsResponseDto(BaseModel):
    success: bool = True
    claims: List[RecentClaimDto]


class NativeCurrencyDto(BaseModel):
    name: str
    symbol: str
    decimals: int = 18


class NetworkConfigResponseDto(BaseModel):
    """Chain parameters in the shape wallet_addEthereumChain expects"""
    success: bool = True
    chainId: str
    chainIdDecimal: int
    chainName: str
    nativeCurrency: NativeCurrencyDto
    rpcUrls: List[str]
    blockExplorerUrls: List[str]
    claimMessageTemplate: str


class HealthResponseDto(BaseModel):
    success: bool = True
    message: str
    timestamp: str


class ReadinessResponseDto(BaseModel):
    success: bool
    status: str
    checks: Dict[str, Any]
    timestamp: str
