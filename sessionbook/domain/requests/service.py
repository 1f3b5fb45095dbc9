"""Service request service - Booking ledger business rules and admin operations"""

import logging
import time
from collections import Counter
from datetime import date, datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ...config import (
    ADMIN_DISPLAY_NAME,
    BOOKING_TIMEZONE,
    MAX_COACHING_SLOTS,
    RESEND_API_KEY,
    SERVICE_PROVIDER_UID,
)
from ...database import SessionLocal
from ...email_service import send_request_confirmation
from ...models import ServiceRequest, VideoConsult
from ...services.google_calendar_service import calendar_configured, create_meet_event
from ...services.upload_service import decode_data_url, r2_configured, upload_payment_proof
from ...shared.errors import (
    DependencyError,
    NotFoundError,
    SlotUnavailableError,
    ValidationError,
    field_errors_from_pydantic,
)
from ..availability.service import AvailabilityService
from .repository import ServiceRequestRepository
from .schemas import PaymentProofUpload, ServiceRequestAdminUpdate, ServiceRequestDraft

logger = logging.getLogger(__name__)

# Default for an omitted meeting link: the stored link is left as it is
KEEP_MEETING_URL = object()


def booking_today() -> date:
    """Current date in the booking time zone"""
    return datetime.now(ZoneInfo(BOOKING_TIMEZONE)).date()


class ServiceRequestService:
    """Service layer for the booking ledger"""

    def __init__(
        self,
        db: Session,
        provider_id: str = SERVICE_PROVIDER_UID,
        today: Optional[Callable[[], date]] = None,
    ):
        self.db = db
        self.provider_id = provider_id
        self.today = today or booking_today
        self.repo = ServiceRequestRepository()
        self.availability = AvailabilityService(db)

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def submit(self, draft: ServiceRequestDraft) -> ServiceRequest:
        """
        Validate business rules, check the slots are still open and persist the
        request as pending. Side effects (upload, email, meeting link) are run
        separately by ``process_submission_side_effects``.
        """
        if not self.provider_id:
            logger.error("❌ SERVICE_PROVIDER_UID is not configured")
            raise DependencyError("Requests cannot be submitted right now: provider is not configured")

        self._check_slot_rules(draft)
        self._check_payment_proof(draft)
        self._check_slots_available(draft)

        slots = [{"date": slot.date, "time": slot.time} for slot in draft.selectedSlots]
        request = self.repo.create_request(
            self.db,
            self.provider_id,
            slots,
            user_id=f"user_anon_{int(time.time() * 1000)}",
            name=draft.name,
            surname=draft.surname,
            email=draft.email,
            phone=draft.phone,
            service_type=draft.serviceType,
            meeting_type=draft.meetingType,
            problem_description=draft.problemDescription,
            status="pending",
        )
        logger.info(
            f"✅ Service request {request.id} submitted ({draft.serviceType}, "
            f"{len(slots)} slot(s), {draft.meetingType})"
        )
        return request

    def _check_slot_rules(self, draft: ServiceRequestDraft) -> None:
        slots = draft.selectedSlots
        today = self.today()

        if any(date.fromisoformat(slot.date) <= today for slot in slots):
            raise ValidationError.for_field(
                "selectedSlots", "Sessions cannot be booked for today or a past date"
            )

        if draft.serviceType == "consultation":
            if len(slots) != 1:
                raise ValidationError.for_field(
                    "selectedSlots", "A consultation requires exactly one slot"
                )
        elif draft.serviceType == "coaching":
            if len(slots) > MAX_COACHING_SLOTS:
                raise ValidationError.for_field(
                    "selectedSlots", f"Coaching allows at most {MAX_COACHING_SLOTS} slots"
                )
            per_date = Counter(slot.date for slot in slots)
            if any(count > 1 for count in per_date.values()):
                raise ValidationError.for_field(
                    "selectedSlots", "Each coaching session must be on a different day"
                )

    def _check_payment_proof(self, draft: ServiceRequestDraft) -> None:
        if draft.serviceType == "consultation" and draft.paymentProof is None:
            raise ValidationError.for_field(
                "paymentProof", "Payment proof is required for a consultation"
            )
        if draft.paymentProof is not None:
            try:
                decode_data_url(draft.paymentProof.base64, draft.paymentProof.fileType)
            except ValueError as e:
                raise ValidationError.for_field("paymentProof", str(e)) from None

    def _check_slots_available(self, draft: ServiceRequestDraft) -> None:
        open_slots: dict[str, list[str]] = {}
        for slot in draft.selectedSlots:
            if slot.date not in open_slots:
                open_slots[slot.date] = self.availability.get_combined_availability(
                    self.provider_id, slot.date
                )
            if slot.time not in open_slots[slot.date]:
                logger.warning(
                    f"⚠️ Rejected booking for taken slot {slot.date} {slot.time} "
                    f"(provider {self.provider_id})"
                )
                raise SlotUnavailableError(
                    f"The slot {slot.date} {slot.time} is no longer available"
                )

    # ------------------------------------------------------------------
    # Admin dashboard
    # ------------------------------------------------------------------

    def get_request(self, request_id: str) -> ServiceRequest:
        request = self.repo.get_request(self.db, request_id)
        if not request:
            raise NotFoundError("Service request not found")
        return request

    def list_requests(self, status: Optional[str] = None) -> list[ServiceRequest]:
        """All requests for the provider, newest first"""
        return self.repo.list_requests(self.db, self.provider_id, status)

    def update_status_and_meeting(
        self, request_id: str, status: str, meeting_url=KEEP_MEETING_URL
    ) -> ServiceRequest:
        """
        Set the status and, when given, the meeting link (an empty link clears
        it). Leaving ``meeting_url`` out keeps the stored link.
        """
        fields = {"status": status}
        if meeting_url is not KEEP_MEETING_URL:
            fields["meetingUrl"] = meeting_url
        try:
            update = ServiceRequestAdminUpdate(**fields)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid status or meeting link", field_errors_from_pydantic(e.errors())
            ) from None

        changes = {"status": update.status}
        if "meetingUrl" in update.model_fields_set:
            changes["meeting_url"] = update.meetingUrl

        request = self.get_request(request_id)
        previous_status = request.status
        request = self.repo.update_request(self.db, request, **changes)
        logger.info(f"✅ Request {request_id} updated: {previous_status} -> {request.status}")
        return request

    def delete_many(self, request_ids: list[str]) -> int:
        """Hard-delete requests; their slots go with them"""
        if not request_ids:
            return 0
        deleted_count = self.repo.batch_delete_requests(self.db, list(dict.fromkeys(request_ids)))
        logger.info(f"🗑️ Deleted {deleted_count} of {len(request_ids)} service request(s)")
        return deleted_count

    def schedule_video_consultation(
        self, request_id: str, user_id: str, user_name: str
    ) -> VideoConsult:
        """
        Schedule an in-app video call for a request. The request id doubles as
        the signaling room id and is stored as the request's meeting link.
        """
        request = self.get_request(request_id)
        room_id = request.id

        self.repo.update_request(self.db, request, meeting_url=room_id, status="confirmed")
        consult = self.repo.create_video_consult(
            self.db,
            room_id=room_id,
            service_request_id=request.id,
            user_id=user_id,
            user_name=user_name,
            provider_id=self.provider_id,
            provider_name=ADMIN_DISPLAY_NAME,
            status="scheduled",
        )
        logger.info(f"📹 Video consultation {consult.id} scheduled in room {room_id}")
        return consult


# ============================================================================
# SUBMISSION SIDE EFFECTS (run after the response; never fail the booking)
# ============================================================================


async def process_submission_side_effects(
    request_id: str,
    payment_proof: Optional[PaymentProofUpload] = None,
    session_factory=SessionLocal,
) -> None:
    """Upload the payment proof, send the confirmation email, attach a Meet link"""
    db = session_factory()
    try:
        request = ServiceRequestRepository.get_request(db, request_id)
        if request is None:
            logger.warning(f"⚠️ Request {request_id} vanished before side effects ran")
            return

        if payment_proof is not None:
            _store_payment_proof(db, request, payment_proof)
        await _send_confirmation(request)
        if request.meeting_type == "online":
            await _attach_meet_link(db, request)
    finally:
        db.close()


def _store_payment_proof(db: Session, request: ServiceRequest, proof: PaymentProofUpload) -> None:
    if not r2_configured():
        logger.warning("⚠️ R2 storage not configured. Skipping payment proof upload.")
        return
    try:
        stored = upload_payment_proof(request.id, proof.base64, proof.fileName, proof.fileType)
        ServiceRequestRepository.update_request(db, request, payment_proof=stored)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Request {request.id} saved, but payment proof upload failed: {e}")


async def _send_confirmation(request: ServiceRequest) -> None:
    if not RESEND_API_KEY:
        logger.warning("⚠️ RESEND_API_KEY not found. Skipping confirmation email.")
        return
    try:
        await send_request_confirmation(request.email, request.full_name, request.id)
    except Exception as e:
        logger.warning(f"⚠️ Request {request.id} saved, but confirmation email failed: {e}")


async def _attach_meet_link(db: Session, request: ServiceRequest) -> None:
    if not calendar_configured():
        logger.info("ℹ️ Google Calendar not configured. Skipping automatic Meet link.")
        return
    if not request.slots:
        return

    first_slot = min(request.slots, key=lambda slot: (slot.date, slot.time))
    try:
        meet_link = await create_meet_event(
            summary=f"{request.service_type.title()} session - {request.full_name}",
            description=request.problem_description,
            date=first_slot.date,
            time_of_day=first_slot.time,
            attendee_email=request.email,
        )
        if not meet_link:
            return

        db.refresh(request)
        if not request.meeting_url:
            ServiceRequestRepository.update_request(db, request, meeting_url=meet_link)
            logger.info(f"✅ Meet link attached to request {request.id}")
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Could not attach Meet link to request {request.id}: {e}")
