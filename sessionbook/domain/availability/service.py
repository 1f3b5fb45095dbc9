"""Availability service - weekly templates, daily overrides and the resolver.

Bookable slots for a provider on a date are always re-derived from the
stored template/override and the booking ledger; nothing is cached, so a
cancelled booking frees its slot on the very next read.

Failure policy: a template that cannot be read degrades to "no template";
a failure to read overrides or bookings is raised as ``DependencyError``.
"""

import logging
from datetime import date, timedelta

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ...config import MAX_AVAILABILITY_RANGE_DAYS
from ...shared.errors import DependencyError, ValidationError, field_errors_from_pydantic
from ...shared.validators import day_key_for
from ..requests.repository import ServiceRequestRepository
from .repository import AvailabilityRepository
from .schemas import DateRange, OverrideKey, OverridePayload, WeeklyTemplatePayload

logger = logging.getLogger(__name__)


def _validated(model, data: dict, message: str):
    """Run a pydantic model and convert failures to a field-level ValidationError"""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(message, field_errors_from_pydantic(e.errors())) from None


def _require_provider(provider_id: str) -> None:
    if not provider_id or not provider_id.strip():
        raise ValidationError.for_field("providerId", "Provider id is required")


class AvailabilityService:
    """Service layer for availability templates, overrides and resolution"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AvailabilityRepository()
        self.bookings = ServiceRequestRepository()

    # ------------------------------------------------------------------
    # Weekly template
    # ------------------------------------------------------------------

    def save_template(self, provider_id: str, template: dict) -> dict[str, list[str]]:
        """Validate and replace the provider's whole weekly template"""
        _require_provider(provider_id)
        payload = _validated(
            WeeklyTemplatePayload, {"template": template}, "Invalid weekly template"
        )

        row = self.repo.replace_template(self.db, provider_id, payload.template)
        logger.info(f"✅ Weekly template saved for provider {provider_id}: {sorted(row.template)}")
        return row.template

    def get_template(self, provider_id: str) -> dict[str, list[str]]:
        """Weekly template, or an empty map if the provider never saved one"""
        _require_provider(provider_id)
        row = self.repo.get_template(self.db, provider_id)
        if row is None:
            logger.debug(f"No weekly template for provider {provider_id}, returning empty map")
            return {}
        return row.template or {}

    # ------------------------------------------------------------------
    # Daily overrides
    # ------------------------------------------------------------------

    def save_override(self, provider_id: str, date_str: str, slots: list[str]) -> list[str]:
        """Validate and store the explicit slot list for one date"""
        _require_provider(provider_id)
        key = _validated(
            OverrideKey, {"providerId": provider_id, "date": date_str}, "Invalid override date"
        )
        payload = _validated(OverridePayload, {"slots": slots}, "Invalid override slots")

        row = self.repo.upsert_override_slots(self.db, provider_id, key.date, payload.slots)
        logger.info(f"✅ Override saved for provider {provider_id} on {key.date}: {row.slots}")
        return row.slots

    def get_override(self, provider_id: str, date_str: str) -> list[str]:
        """Override slots for a date, or an empty list if there is none"""
        _require_provider(provider_id)
        key = _validated(
            OverrideKey, {"providerId": provider_id, "date": date_str}, "Invalid override date"
        )
        row = self.repo.get_override(self.db, provider_id, key.date)
        return list(row.slots or []) if row else []

    def clear_override(self, provider_id: str, date_str: str) -> bool:
        """Remove an override so the date falls back to the weekly template"""
        _require_provider(provider_id)
        key = _validated(
            OverrideKey, {"providerId": provider_id, "date": date_str}, "Invalid override date"
        )
        cleared = self.repo.delete_override(self.db, provider_id, key.date)
        if cleared:
            logger.info(f"🧹 Override cleared for provider {provider_id} on {key.date}")
        return cleared

    def list_overrides(self, provider_id: str, start: str, end: str) -> dict[str, list[str]]:
        _require_provider(provider_id)
        window = self._validated_range(start, end)
        rows = self.repo.list_overrides(self.db, provider_id, window.start, window.end)
        return {row.date: list(row.slots or []) for row in rows}

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def get_combined_availability(self, provider_id: str, date_str: str) -> list[str]:
        """
        Bookable slots for a provider on a date.

        1. An override row for the date, if present, supplies the slots
           (an override with no slots closes the date).
        2. Otherwise the weekly template entry for the day of week is used.
        3. Times held by non-cancelled requests on that exact date are removed.
        """
        _require_provider(provider_id)
        key = _validated(
            OverrideKey, {"providerId": provider_id, "date": date_str}, "Invalid availability date"
        )

        general_slots = self._general_slots(provider_id, key.date)
        if not general_slots:
            logger.debug(f"No general availability for provider {provider_id} on {key.date}")
            return []

        try:
            booked_times = self.bookings.get_booked_times(self.db, provider_id, key.date)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to load bookings for provider {provider_id} on {key.date}: {e}")
            raise DependencyError("Could not load existing bookings. Please try again.") from e

        final_slots = sorted(set(general_slots) - booked_times)
        logger.debug(
            f"Availability for provider {provider_id} on {key.date}: "
            f"{len(final_slots)} open, {len(booked_times)} booked"
        )
        return final_slots

    def get_availability_range(self, provider_id: str, start: str, end: str) -> dict[str, list[str]]:
        """Resolved slots for each date in an inclusive range (intake calendar view)"""
        _require_provider(provider_id)
        window = self._validated_range(start, end)

        current = date.fromisoformat(window.start)
        last = date.fromisoformat(window.end)
        days: dict[str, list[str]] = {}
        while current <= last:
            day = current.isoformat()
            days[day] = self.get_combined_availability(provider_id, day)
            current += timedelta(days=1)
        return days

    def _general_slots(self, provider_id: str, date_str: str) -> list[str]:
        """Override slots if an override exists, otherwise the template's day entry"""
        try:
            override = self.repo.get_override(self.db, provider_id, date_str)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to load override for provider {provider_id} on {date_str}: {e}")
            raise DependencyError("Could not load availability. Please try again.") from e

        if override is not None:
            logger.debug(f"Using daily override for provider {provider_id} on {date_str}")
            return list(override.slots or [])

        try:
            template_row = self.repo.get_template(self.db, provider_id)
        except Exception as e:
            self.db.rollback()
            logger.warning(
                f"⚠️ Could not fetch weekly template for provider {provider_id}, treating as empty: {e}"
            )
            return []

        template = (template_row.template or {}) if template_row else {}
        return list(template.get(day_key_for(date.fromisoformat(date_str)), []))

    def _validated_range(self, start: str, end: str) -> DateRange:
        window = _validated(DateRange, {"start": start, "end": end}, "Invalid date range")
        span = (date.fromisoformat(window.end) - date.fromisoformat(window.start)).days
        if span < 0:
            raise ValidationError.for_field("end", "End date must not be before start date")
        if span >= MAX_AVAILABILITY_RANGE_DAYS:
            raise ValidationError.for_field(
                "end", f"Date range must not exceed {MAX_AVAILABILITY_RANGE_DAYS} days"
            )
        return window
