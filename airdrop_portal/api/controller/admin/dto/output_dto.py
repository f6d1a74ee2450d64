"""
Output DTOs for the admin endpoints.
"""

from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime

from airdrop_portal.core.service.admin.models import Dashboard


class DashboardResponseDto(BaseModel):
    success: bool = True
    dashboard: Dashboard


class AdminUserDto(BaseModel):
    walletAddress: str
    allocatedAmount: str
    xpPoints: int
    rank: int
    claimed: bool
    claimDate: Optional[datetime] = None
    txHash: Optional[str] = None
    attempts: int
    ipAddress: Optional[str] = None
    country: Optional[str] = None


class PaginationDto(BaseModel):
    currentPage: int
    totalPages: int
    totalUsers: int
    limit: int


class UsersResponseDto(BaseModel):
    success: bool = True
    users: List[AdminUserDto]
    pagination: PaginationDto


class PauseResponseDto(BaseModel):
    success: bool = True
    paused: bool
    message: str


class MetricsResponseDto(BaseModel):
    success: bool = True
    metrics: Dict[str, Any]
