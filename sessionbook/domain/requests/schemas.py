"""Service request schemas - Pydantic models for intake and admin updates"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import (
    validate_email,
    validate_iso_date,
    validate_phone,
    validate_time_of_day,
)
from ...utils.sanitization import validate_and_sanitize_input

ServiceType = Literal["coaching", "consultation"]
MeetingType = Literal["online", "in-person"]
RequestStatus = Literal["pending", "confirmed", "completed", "cancelled"]


class SelectedSlot(BaseModel):
    date: str
    time: str

    @field_validator("date")
    @classmethod
    def validate_date(cls, v):
        return validate_iso_date(v)

    @field_validator("time")
    @classmethod
    def validate_time(cls, v):
        return validate_time_of_day(v)


class PaymentProofUpload(BaseModel):
    """Payment proof sent inline with the form, as a base64 data URL"""

    base64: str = Field(..., min_length=1)
    fileName: Optional[str] = None
    fileType: Optional[str] = None


class ServiceRequestDraft(BaseModel):
    """Schema for public request submission"""

    name: str = Field(..., min_length=1, max_length=255)
    surname: str = Field(..., min_length=1, max_length=255)
    email: str
    phone: str = Field(..., min_length=1)
    serviceType: ServiceType
    meetingType: MeetingType
    problemDescription: str = Field(..., min_length=1, max_length=1000)
    selectedSlots: list[SelectedSlot] = Field(..., min_length=1)
    paymentProof: Optional[PaymentProofUpload] = None

    @field_validator("name", "surname")
    @classmethod
    def sanitize_names(cls, v):
        v = validate_and_sanitize_input(v, max_length=255)
        if not v:
            raise ValueError("Field is required")
        return v

    @field_validator("email")
    @classmethod
    def validate_email_address(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone_number(cls, v):
        return validate_phone(v)

    @field_validator("problemDescription")
    @classmethod
    def sanitize_description(cls, v):
        v = validate_and_sanitize_input(v, max_length=1000)
        if not v:
            raise ValueError("Problem description is required")
        return v


class ServiceRequestAdminUpdate(BaseModel):
    """Schema for admin status / meeting link updates"""

    status: RequestStatus
    meetingUrl: Optional[str] = Field(None, max_length=500)

    @field_validator("meetingUrl")
    @classmethod
    def blank_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v


class BatchDeleteRequest(BaseModel):
    """Schema for batch delete operation"""

    requestIds: list[str] = Field(..., min_length=1)


class ScheduleVideoConsultRequest(BaseModel):
    userId: str = Field(..., min_length=1)
    userName: str = Field(..., min_length=1)


class SubmitResponse(BaseModel):
    success: bool
    requestId: Optional[str] = None
    error: Optional[str] = None


class SelectedSlotResponse(BaseModel):
    date: str
    time: str


class ServiceRequestResponse(BaseModel):
    """Schema for service request response"""

    id: str
    providerId: str
    userId: str
    name: str
    surname: str
    email: str
    phone: str
    serviceType: str
    meetingType: str
    problemDescription: str
    selectedSlots: list[SelectedSlotResponse]
    status: str
    meetingUrl: Optional[str] = None
    paymentProof: Optional[dict] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @classmethod
    def from_model(cls, request) -> "ServiceRequestResponse":
        return cls(
            id=request.id,
            providerId=request.provider_id,
            userId=request.user_id,
            name=request.name,
            surname=request.surname,
            email=request.email,
            phone=request.phone,
            serviceType=request.service_type,
            meetingType=request.meeting_type,
            problemDescription=request.problem_description,
            selectedSlots=[
                SelectedSlotResponse(date=slot.date, time=slot.time) for slot in request.slots
            ],
            status=request.status,
            meetingUrl=request.meeting_url,
            paymentProof=request.payment_proof,
            createdAt=request.created_at,
            updatedAt=request.updated_at,
        )


class VideoConsultResponse(BaseModel):
    id: str
    roomId: str
    serviceRequestId: str
    userId: str
    userName: str
    providerId: str
    providerName: Optional[str] = None
    status: str
    createdAt: Optional[datetime] = None
