"""Availability domain schemas - Pydantic models for validation"""

from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel

from ...shared.validators import validate_day_key, validate_iso_date, validate_time_of_day

TimeOfDay = Annotated[str, AfterValidator(validate_time_of_day)]
DayKey = Annotated[str, AfterValidator(validate_day_key)]
IsoDate = Annotated[str, AfterValidator(validate_iso_date)]
# Slot lists are stored de-duplicated and sorted
SlotList = Annotated[list[TimeOfDay], AfterValidator(lambda slots: sorted(set(slots)))]


class WeeklyTemplatePayload(BaseModel):
    """Schema for saving a weekly template (replaces the whole map)"""

    template: dict[DayKey, SlotList]


class OverridePayload(BaseModel):
    """Schema for saving a daily override"""

    slots: SlotList


class OverrideKey(BaseModel):
    """Validated (provider, date) pair for override reads and writes"""

    providerId: str
    date: IsoDate


class DateRange(BaseModel):
    start: IsoDate
    end: IsoDate


class TemplateResponse(BaseModel):
    success: bool = True
    template: dict[str, list[str]]


class SlotsResponse(BaseModel):
    success: bool = True
    slots: list[str]


class CombinedAvailabilityResponse(BaseModel):
    """Consumer contract for intake: {success, finalSlots?, error?}"""

    success: bool
    finalSlots: Optional[list[str]] = None
    error: Optional[str] = None


class AvailabilityRangeResponse(BaseModel):
    success: bool = True
    days: dict[str, list[str]]


class OverridesResponse(BaseModel):
    success: bool = True
    overrides: dict[str, list[str]]
