"""Availability repository - Database operations for templates and daily overrides"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import AvailabilityOverride, AvailabilityTemplate, utcnow


class AvailabilityRepository:
    """Repository for availability database operations"""

    @staticmethod
    def get_template(db: Session, provider_id: str) -> Optional[AvailabilityTemplate]:
        """Get the weekly template row for a provider"""
        return (
            db.query(AvailabilityTemplate)
            .filter(AvailabilityTemplate.provider_id == provider_id)
            .first()
        )

    @staticmethod
    def replace_template(
        db: Session, provider_id: str, template: dict[str, list[str]]
    ) -> AvailabilityTemplate:
        """Replace the whole weekly map; day keys are never merged"""
        row = AvailabilityRepository.get_template(db, provider_id)
        if row is None:
            row = AvailabilityTemplate(provider_id=provider_id, template=template)
            db.add(row)
        else:
            row.template = template
            row.updated_at = utcnow()
        db.commit()
        db.refresh(row)
        return row

    @staticmethod
    def get_override(db: Session, provider_id: str, date: str) -> Optional[AvailabilityOverride]:
        """Get the override row for a provider on a date"""
        return (
            db.query(AvailabilityOverride)
            .filter(AvailabilityOverride.provider_id == provider_id, AvailabilityOverride.date == date)
            .first()
        )

    @staticmethod
    def upsert_override_slots(
        db: Session, provider_id: str, date: str, slots: list[str]
    ) -> AvailabilityOverride:
        """Merge-style write: only slots and updated_at change on an existing row"""
        row = AvailabilityRepository.get_override(db, provider_id, date)
        if row is None:
            row = AvailabilityOverride(provider_id=provider_id, date=date, slots=slots)
            db.add(row)
        else:
            row.slots = slots
            row.updated_at = utcnow()
        db.commit()
        db.refresh(row)
        return row

    @staticmethod
    def delete_override(db: Session, provider_id: str, date: str) -> bool:
        """Delete an override. Returns True if a row was removed"""
        row = AvailabilityRepository.get_override(db, provider_id, date)
        if row is None:
            return False
        db.delete(row)
        db.commit()
        return True

    @staticmethod
    def list_overrides(
        db: Session, provider_id: str, start: str, end: str
    ) -> list[AvailabilityOverride]:
        """Overrides between two dates (inclusive); ISO dates sort lexically"""
        return (
            db.query(AvailabilityOverride)
            .filter(
                AvailabilityOverride.provider_id == provider_id,
                AvailabilityOverride.date >= start,
                AvailabilityOverride.date <= end,
            )
            .order_by(AvailabilityOverride.date.asc())
            .all()
        )
