from fastapi import APIRouter, Depends

from app.api.errors import http_errors
from app.core.auth import Actor
from app.core.security import get_current_actor
from app.schemas.dashboard import DashboardSummaryOut
from app.services.dashboard import build_dashboard_summary
from app.services.providers import get_data_store

router = APIRouter()


@router.get("/summary", response_model=DashboardSummaryOut)
async def dashboard_summary(
    actor: Actor = Depends(get_current_actor),
    store=Depends(get_data_store),
) -> DashboardSummaryOut:
    with http_errors():
        summary = await build_dashboard_summary(store, actor=actor)
    return DashboardSummaryOut(
        campaigns_by_status=summary.campaigns_by_status,
        proposals_by_status=summary.proposals_by_status,
        total_campaigns=summary.total_campaigns,
        total_proposals=summary.total_proposals,
    )
