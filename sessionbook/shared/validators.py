"""Shared validation utilities"""

import re
from datetime import date
from typing import Optional

TIME_OF_DAY_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DAY_KEY_PATTERN = re.compile(r"^[0-6]$")


def validate_time_of_day(value: str) -> str:
    """
    Validate a 24-hour time-of-day string.

    Args:
        value: Time string such as "09:30"

    Returns:
        The same string

    Raises:
        ValueError: If the value is not HH:MM between 00:00 and 23:59
    """
    if not isinstance(value, str) or not TIME_OF_DAY_PATTERN.fullmatch(value):
        raise ValueError(f"Time must be in HH:MM format: {value!r}")
    return value


def validate_iso_date(value: str) -> str:
    """
    Validate a calendar date string.

    Args:
        value: Date string such as "2025-03-17"

    Returns:
        The same string

    Raises:
        ValueError: If the value is not YYYY-MM-DD or is not a real date
    """
    if not isinstance(value, str) or not DATE_PATTERN.fullmatch(value):
        raise ValueError(f"Date must be in YYYY-MM-DD format: {value!r}")
    try:
        date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Date does not exist: {value!r}") from None
    return value


def validate_day_key(value: str) -> str:
    """Day-of-week keys are "0" (Sunday) through "6" (Saturday)"""
    if not isinstance(value, str) or not DAY_KEY_PATTERN.fullmatch(value):
        raise ValueError(f"Day key must be a single digit 0-6: {value!r}")
    return value


def day_key_for(value: date) -> str:
    """Sunday-indexed day-of-week key for a date (Sunday = "0")"""
    return str((value.weekday() + 1) % 7)


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """Keep digits and a leading +; international numbers have 6 to 15 digits"""
    if not phone:
        return phone

    phone = phone.strip()
    digits = re.sub(r"\D", "", phone)
    if not 6 <= len(digits) <= 15:
        raise ValueError("Phone number must contain between 6 and 15 digits")

    return f"+{digits}" if phone.startswith("+") else digits
