"""Service request router - public intake and admin dashboard endpoints"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import SessionLocal, get_db
from .schemas import (
    BatchDeleteRequest,
    ScheduleVideoConsultRequest,
    ServiceRequestAdminUpdate,
    ServiceRequestDraft,
    ServiceRequestResponse,
    SubmitResponse,
    VideoConsultResponse,
)
from .service import KEEP_MEETING_URL, ServiceRequestService, process_submission_side_effects

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/requests", tags=["Service Requests"])


def get_request_service(db: Session = Depends(get_db)) -> ServiceRequestService:
    """Dependency injection for ServiceRequestService"""
    return ServiceRequestService(db)


def get_session_factory():
    """Session factory used by background tasks that outlive the request session"""
    return SessionLocal


# ============================================================================
# PUBLIC INTAKE
# ============================================================================


@router.post("", response_model=SubmitResponse)
async def submit_request(
    draft: ServiceRequestDraft,
    background_tasks: BackgroundTasks,
    service: ServiceRequestService = Depends(get_request_service),
    session_factory=Depends(get_session_factory),
):
    """Submit a service request; confirmation side effects run after the response"""
    request = service.submit(draft)
    background_tasks.add_task(
        process_submission_side_effects, request.id, draft.paymentProof, session_factory
    )
    return SubmitResponse(success=True, requestId=request.id)


@router.get("/{request_id}", response_model=ServiceRequestResponse)
async def get_request(
    request_id: str,
    service: ServiceRequestService = Depends(get_request_service),
):
    """Get a request by id (confirmation page)"""
    return ServiceRequestResponse.from_model(service.get_request(request_id))


# ============================================================================
# ADMIN DASHBOARD
# ============================================================================


@router.get("", response_model=list[ServiceRequestResponse])
async def list_requests(
    status: Optional[str] = Query(None, description="Filter by request status"),
    admin_uid: str = Depends(require_admin),
    service: ServiceRequestService = Depends(get_request_service),
):
    """List all requests, newest first"""
    return [ServiceRequestResponse.from_model(r) for r in service.list_requests(status)]


@router.patch("/{request_id}")
async def update_request(
    request_id: str,
    data: ServiceRequestAdminUpdate,
    admin_uid: str = Depends(require_admin),
    service: ServiceRequestService = Depends(get_request_service),
):
    """Update a request's status, and its meeting link when one is sent"""
    meeting_url = data.meetingUrl if "meetingUrl" in data.model_fields_set else KEEP_MEETING_URL
    service.update_status_and_meeting(request_id, data.status, meeting_url)
    return {"success": True}


@router.post("/batch-delete")
async def batch_delete_requests(
    data: BatchDeleteRequest,
    admin_uid: str = Depends(require_admin),
    service: ServiceRequestService = Depends(get_request_service),
):
    """Batch delete multiple requests"""
    return {"success": True, "deletedCount": service.delete_many(data.requestIds)}


@router.post("/{request_id}/video-consult", response_model=VideoConsultResponse)
async def schedule_video_consultation(
    request_id: str,
    data: ScheduleVideoConsultRequest,
    admin_uid: str = Depends(require_admin),
    service: ServiceRequestService = Depends(get_request_service),
):
    """Schedule an in-app video call; the request id becomes the room id"""
    consult = service.schedule_video_consultation(request_id, data.userId, data.userName)
    return VideoConsultResponse(
        id=consult.id,
        roomId=consult.room_id,
        serviceRequestId=consult.service_request_id,
        userId=consult.user_id,
        userName=consult.user_name,
        providerId=consult.provider_id,
        providerName=consult.provider_name,
        status=consult.status,
        createdAt=consult.created_at,
    )
