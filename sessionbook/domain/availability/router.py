"""Availability router - FastAPI endpoints for templates, overrides and resolution"""

import logging

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import get_db
from .schemas import (
    AvailabilityRangeResponse,
    CombinedAvailabilityResponse,
    OverridesResponse,
    SlotsResponse,
    TemplateResponse,
)
from .service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["Availability"])


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db)


# ============================================================================
# WEEKLY TEMPLATE
# ============================================================================


@router.get("/{provider_id}/template", response_model=TemplateResponse)
async def get_template(
    provider_id: str,
    service: AvailabilityService = Depends(get_availability_service),
):
    """Get the provider's weekly template (empty map if never saved)"""
    return TemplateResponse(template=service.get_template(provider_id))


@router.put("/{provider_id}/template", response_model=TemplateResponse)
async def save_template(
    provider_id: str,
    template: dict = Body(..., embed=True),
    admin_uid: str = Depends(require_admin),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Replace the provider's whole weekly template"""
    return TemplateResponse(template=service.save_template(provider_id, template))


# ============================================================================
# DAILY OVERRIDES
# ============================================================================


@router.get("/{provider_id}/overrides", response_model=OverridesResponse)
async def list_overrides(
    provider_id: str,
    start: str = Query(...),
    end: str = Query(...),
    admin_uid: str = Depends(require_admin),
    service: AvailabilityService = Depends(get_availability_service),
):
    """List overrides between two dates (inclusive)"""
    return OverridesResponse(overrides=service.list_overrides(provider_id, start, end))


@router.get("/{provider_id}/overrides/{date}", response_model=SlotsResponse)
async def get_override(
    provider_id: str,
    date: str,
    service: AvailabilityService = Depends(get_availability_service),
):
    return SlotsResponse(slots=service.get_override(provider_id, date))


@router.put("/{provider_id}/overrides/{date}", response_model=SlotsResponse)
async def save_override(
    provider_id: str,
    date: str,
    slots: list = Body(..., embed=True),
    admin_uid: str = Depends(require_admin),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Store the explicit slot list for a date (an empty list closes the date)"""
    return SlotsResponse(slots=service.save_override(provider_id, date, slots))


@router.delete("/{provider_id}/overrides/{date}")
async def clear_override(
    provider_id: str,
    date: str,
    admin_uid: str = Depends(require_admin),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Remove an override so the date falls back to the weekly template"""
    return {"success": True, "cleared": service.clear_override(provider_id, date)}


# ============================================================================
# RESOLUTION
# ============================================================================


@router.get("/{provider_id}/combined", response_model=CombinedAvailabilityResponse)
async def get_combined_availability(
    provider_id: str,
    date: str = Query(...),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Bookable slots for a provider on a date"""
    return CombinedAvailabilityResponse(
        success=True, finalSlots=service.get_combined_availability(provider_id, date)
    )


@router.get("/{provider_id}/range", response_model=AvailabilityRangeResponse)
async def get_availability_range(
    provider_id: str,
    start: str = Query(...),
    end: str = Query(...),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Bookable slots for each date in an inclusive range"""
    return AvailabilityRangeResponse(days=service.get_availability_range(provider_id, start, end))
