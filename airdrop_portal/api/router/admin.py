"""Admin router. Every route requires the x-admin-key header."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from airdrop_portal.api.controller.admin.admin_controller import AdminController
from airdrop_portal.api.controller.admin.dto.input_dto import PauseRequestDto
from airdrop_portal.api.controller.admin.dto.output_dto import (
    DashboardResponseDto,
    MetricsResponseDto,
    PauseResponseDto,
    UsersResponseDto,
)
from airdrop_portal.api.utils.metrics import ClaimMetrics
from airdrop_portal.core.dependencies import get_claim_metrics, get_reporting_service, require_admin_key
from airdrop_portal.core.service.admin.reporting_service import ReportingService

EXPORT_FILENAME = "verified-claims.csv"

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_key)],
    responses={401: {"description": "Unauthorized"}}
)


async def get_admin_controller(
    reporting: ReportingService = Depends(get_reporting_service)
) -> AdminController:
    return AdminController(reporting)


@router.get("/dashboard", response_model=DashboardResponseDto)
async def dashboard(
    request: Request,
    controller: AdminController = Depends(get_admin_controller)
) -> DashboardResponseDto:
    return await controller.get_dashboard(request.app.state)


@router.get("/users", response_model=UsersResponseDto)
async def users(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    claimed: Optional[bool] = Query(None),
    controller: AdminController = Depends(get_admin_controller)
) -> UsersResponseDto:
    return await controller.list_users(page, limit, claimed)


@router.get("/export", response_class=Response)
async def export_claims(controller: AdminController = Depends(get_admin_controller)) -> Response:
    """CSV of every claimed wallet, newest claim first."""
    content = await controller.export_claims()
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'}
    )


@router.post("/pause", response_model=PauseResponseDto)
async def pause_claims(payload: PauseRequestDto, request: Request) -> PauseResponseDto:
    return AdminController.set_paused(request.app.state, payload.paused)


@router.get("/metrics", response_model=MetricsResponseDto)
async def claim_metrics(metrics: ClaimMetrics = Depends(get_claim_metrics)) -> MetricsResponseDto:
    return AdminController.get_metrics(metrics)
