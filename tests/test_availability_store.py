"""Tests for weekly templates and daily overrides."""

import pytest

from sessionbook.domain.availability.service import AvailabilityService
from sessionbook.models import AvailabilityOverride
from sessionbook.shared.errors import ValidationError
from tests.conftest import ADMIN_UID


@pytest.fixture
def availability(db):
    return AvailabilityService(db)


class TestWeeklyTemplate:
    def test_missing_template_is_empty(self, availability):
        assert availability.get_template(ADMIN_UID) == {}

    def test_save_and_read_back(self, availability):
        availability.save_template(ADMIN_UID, {"1": ["10:00", "09:00"], "3": ["14:00"]})
        assert availability.get_template(ADMIN_UID) == {"1": ["09:00", "10:00"], "3": ["14:00"]}

    def test_slots_are_deduplicated(self, availability):
        saved = availability.save_template(ADMIN_UID, {"2": ["09:00", "09:00", "08:30"]})
        assert saved == {"2": ["08:30", "09:00"]}

    def test_save_replaces_whole_map(self, availability):
        availability.save_template(ADMIN_UID, {"1": ["09:00"], "2": ["10:00"]})
        availability.save_template(ADMIN_UID, {"5": ["11:00"]})
        assert availability.get_template(ADMIN_UID) == {"5": ["11:00"]}

    def test_templates_are_per_provider(self, availability):
        availability.save_template("provider-a", {"1": ["09:00"]})
        assert availability.get_template("provider-b") == {}

    @pytest.mark.parametrize("day_key", ["7", "-1", "monday", "01", "1\n"])
    def test_invalid_day_key_rejected(self, availability, day_key):
        with pytest.raises(ValidationError) as exc_info:
            availability.save_template(ADMIN_UID, {day_key: ["09:00"]})
        assert exc_info.value.field_errors

    @pytest.mark.parametrize("slot", ["24:00", "9:00", "09:60", "0900", "", "09:00\n"])
    def test_malformed_slot_rejected(self, availability, slot):
        with pytest.raises(ValidationError):
            availability.save_template(ADMIN_UID, {"1": ["10:00", slot]})

    def test_rejected_template_leaves_previous_in_place(self, availability):
        availability.save_template(ADMIN_UID, {"1": ["09:00"]})
        with pytest.raises(ValidationError):
            availability.save_template(ADMIN_UID, {"1": ["10:00"], "9": ["11:00"]})
        assert availability.get_template(ADMIN_UID) == {"1": ["09:00"]}

    def test_field_errors_name_the_offending_day(self, availability):
        with pytest.raises(ValidationError) as exc_info:
            availability.save_template(ADMIN_UID, {"1": ["25:00"]})
        assert any(field.startswith("template.1") for field in exc_info.value.field_errors)


class TestDailyOverride:
    def test_missing_override_is_empty_list(self, availability):
        assert availability.get_override(ADMIN_UID, "2025-03-17") == []

    def test_save_and_read_back_sorted(self, availability):
        availability.save_override(ADMIN_UID, "2025-03-17", ["15:00", "14:00"])
        assert availability.get_override(ADMIN_UID, "2025-03-17") == ["14:00", "15:00"]

    def test_save_only_touches_slots(self, availability, db):
        availability.save_override(ADMIN_UID, "2025-03-17", ["14:00"])
        row = db.query(AvailabilityOverride).one()
        created_at = row.created_at

        availability.save_override(ADMIN_UID, "2025-03-17", ["16:00"])
        db.refresh(row)
        assert row.slots == ["16:00"]
        assert row.created_at == created_at
        assert db.query(AvailabilityOverride).count() == 1

    @pytest.mark.parametrize("bad_date", ["2025-02-30", "17-03-2025", "2025/03/17", "tomorrow", "2025-03-17\n"])
    def test_invalid_date_rejected(self, availability, bad_date):
        with pytest.raises(ValidationError):
            availability.save_override(ADMIN_UID, bad_date, ["09:00"])

    def test_malformed_slot_rejected_before_write(self, availability, db):
        with pytest.raises(ValidationError):
            availability.save_override(ADMIN_UID, "2025-03-17", ["09:00", "9am"])
        assert db.query(AvailabilityOverride).count() == 0

    def test_clear_override(self, availability):
        availability.save_override(ADMIN_UID, "2025-03-17", ["14:00"])
        assert availability.clear_override(ADMIN_UID, "2025-03-17") is True
        assert availability.clear_override(ADMIN_UID, "2025-03-17") is False
        assert availability.get_override(ADMIN_UID, "2025-03-17") == []

    def test_list_overrides_in_range(self, availability):
        availability.save_override(ADMIN_UID, "2025-03-16", ["09:00"])
        availability.save_override(ADMIN_UID, "2025-03-17", [])
        availability.save_override(ADMIN_UID, "2025-04-01", ["10:00"])

        assert availability.list_overrides(ADMIN_UID, "2025-03-10", "2025-03-20") == {
            "2025-03-16": ["09:00"],
            "2025-03-17": [],
        }

    def test_list_overrides_rejects_reversed_range(self, availability):
        with pytest.raises(ValidationError):
            availability.list_overrides(ADMIN_UID, "2025-03-20", "2025-03-10")

    def test_provider_is_required(self, availability):
        with pytest.raises(ValidationError):
            availability.get_override(" ", "2025-03-17")
