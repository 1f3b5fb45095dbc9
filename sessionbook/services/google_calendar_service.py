"""
Google Calendar Service
Creates calendar events with a Google Meet conference for online sessions
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Optional

import httpx

from ..config import (
    BOOKING_TIMEZONE,
    DEFAULT_SESSION_MINUTES,
    GOOGLE_CALENDAR_ID,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REFRESH_TOKEN,
)

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"


def calendar_configured() -> bool:
    return bool(GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET and GOOGLE_REFRESH_TOKEN)


async def get_access_token() -> Optional[str]:
    """
    Exchange the provider's refresh token for an access token
    Returns None if refresh fails
    """
    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": GOOGLE_CLIENT_ID,
                    "client_secret": GOOGLE_CLIENT_SECRET,
                    "refresh_token": GOOGLE_REFRESH_TOKEN,
                    "grant_type": "refresh_token",
                },
            )

        if response.status_code != 200:
            logger.error(f"❌ Token refresh failed: {response.text}")
            return None

        access_token = response.json().get("access_token")
        if not access_token:
            logger.error("❌ No access token in refresh response")
            return None

        return access_token

    except Exception as e:
        logger.error(f"❌ Error getting access token: {str(e)}")
        return None


def extract_meet_link(event: dict[str, Any]) -> Optional[str]:
    """Video entry point of the conference, or the legacy hangoutLink"""
    entry_points = (event.get("conferenceData") or {}).get("entryPoints") or []
    for entry in entry_points:
        if entry.get("entryPointType") == "video" and entry.get("uri"):
            return entry["uri"]
    return event.get("hangoutLink")


async def create_meet_event(
    summary: str,
    description: str,
    date: str,
    time_of_day: str,
    attendee_email: Optional[str] = None,
    duration_minutes: int = DEFAULT_SESSION_MINUTES,
) -> Optional[str]:
    """
    Create a Google Calendar event with a Meet conference
    Returns the Meet link if successful, None otherwise
    """
    access_token = await get_access_token()
    if not access_token:
        logger.error("❌ Failed to get valid access token")
        return None

    start_datetime = datetime.fromisoformat(f"{date}T{time_of_day}")
    end_datetime = start_datetime + timedelta(minutes=duration_minutes)

    event_data = {
        "summary": summary,
        "description": description,
        "start": {"dateTime": start_datetime.isoformat(), "timeZone": BOOKING_TIMEZONE},
        "end": {"dateTime": end_datetime.isoformat(), "timeZone": BOOKING_TIMEZONE},
        "conferenceData": {
            "createRequest": {
                "requestId": f"meet-{int(time.time() * 1000)}",
                "conferenceSolutionKey": {"type": "hangoutsMeet"},
            }
        },
    }
    if attendee_email:
        event_data["attendees"] = [{"email": attendee_email}]

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{GOOGLE_CALENDAR_API}/calendars/{GOOGLE_CALENDAR_ID}/events",
                headers={"Authorization": f"Bearer {access_token}"},
                params={"conferenceDataVersion": 1, "sendUpdates": "all"},
                json=event_data,
            )

        if response.status_code not in [200, 201]:
            logger.error(f"❌ Failed to create calendar event: {response.text}")
            return None

        event = response.json()
        meet_link = extract_meet_link(event)
        logger.info(f"✅ Google Calendar event created: {event.get('id')} (meet: {meet_link})")
        return meet_link

    except Exception as e:
        logger.error(f"❌ Error creating calendar event: {str(e)}")
        return None
