"""Service request repository - Database operations for the booking ledger"""

from typing import Optional

from sqlalchemy.orm import Session, selectinload

from ...models import ServiceRequest, ServiceRequestSlot, VideoConsult


class ServiceRequestRepository:
    """Repository for service request database operations"""

    @staticmethod
    def get_booked_times(db: Session, provider_id: str, date: str) -> set[str]:
        """Times booked on a date by non-cancelled requests (filtered in the database)"""
        rows = (
            db.query(ServiceRequestSlot.time)
            .join(ServiceRequest, ServiceRequest.id == ServiceRequestSlot.request_id)
            .filter(
                ServiceRequestSlot.provider_id == provider_id,
                ServiceRequestSlot.date == date,
                ServiceRequest.status != "cancelled",
            )
            .distinct()
            .all()
        )
        return {row[0] for row in rows}

    @staticmethod
    def create_request(
        db: Session, provider_id: str, slots: list[dict], **request_data
    ) -> ServiceRequest:
        """Create a request together with its selected slots"""
        request = ServiceRequest(provider_id=provider_id, **request_data)
        request.slots = [
            ServiceRequestSlot(provider_id=provider_id, date=slot["date"], time=slot["time"])
            for slot in slots
        ]
        db.add(request)
        db.commit()
        db.refresh(request)
        return request

    @staticmethod
    def get_request(db: Session, request_id: str) -> Optional[ServiceRequest]:
        return (
            db.query(ServiceRequest)
            .options(selectinload(ServiceRequest.slots))
            .filter(ServiceRequest.id == request_id)
            .first()
        )

    @staticmethod
    def list_requests(
        db: Session, provider_id: str, status: Optional[str] = None
    ) -> list[ServiceRequest]:
        """Requests for a provider, newest first"""
        query = (
            db.query(ServiceRequest)
            .options(selectinload(ServiceRequest.slots))
            .filter(ServiceRequest.provider_id == provider_id)
        )

        if status and status != "all":
            query = query.filter(ServiceRequest.status == status)

        return query.order_by(ServiceRequest.created_at.desc()).all()

    @staticmethod
    def update_request(db: Session, request: ServiceRequest, **updates) -> ServiceRequest:
        """Update a request with provided fields (None clears nullable columns)"""
        for key, value in updates.items():
            if hasattr(request, key):
                setattr(request, key, value)

        db.commit()
        db.refresh(request)
        return request

    @staticmethod
    def batch_delete_requests(db: Session, request_ids: list[str]) -> int:
        """Delete requests (and their slots). Returns the number deleted"""
        deleted_count = 0

        for request_id in request_ids:
            request = db.query(ServiceRequest).filter(ServiceRequest.id == request_id).first()
            if request:
                db.delete(request)
                deleted_count += 1

        db.commit()
        return deleted_count

    @staticmethod
    def create_video_consult(db: Session, **consult_data) -> VideoConsult:
        consult = VideoConsult(**consult_data)
        db.add(consult)
        db.commit()
        db.refresh(consult)
        return consult
