"""Dashboard endpoint."""

from fastapi import APIRouter

from larder.models.service_models import Dashboard
from larder.services import dashboard_service


router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("", response_model=Dashboard)
async def get_dashboard() -> Dashboard:
    return await dashboard_service.get_dashboard()
