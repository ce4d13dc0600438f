"""
GoogleCalendarProvider — OAuth2 web flow for Google Calendar.
"""

from __future__ import annotations

from typing import Optional, Tuple

import httpx

from oauth.google import GoogleProvider

_CALENDAR_LIST_URL = "https://www.googleapis.com/calendar/v3/users/me/calendarList"


class GoogleCalendarProvider(GoogleProvider):
    """OAuth2 provider for Google Calendar."""

    @property
    def provider_key(self) -> str:
        return "calendar"

    @property
    def display_name(self) -> str:
        return "Google Calendar"

    @property
    def credential_type(self) -> str:
        return "googleCalendarOAuth"

    @property
    def scopes(self) -> Tuple[str, ...]:
        return (
            "https://www.googleapis.com/auth/calendar",
            "https://www.googleapis.com/auth/calendar.events",
            "https://www.googleapis.com/auth/calendar.readonly",
            "https://www.googleapis.com/auth/calendar.settings.readonly",
        )

    async def probe(self, client: httpx.AsyncClient, access_token: str) -> Optional[str]:
        """
        List one calendar.  The primary calendar's id is the account
        address; it may not be in the first page, so the hint is optional.
        """
        resp = await client.get(
            _CALENDAR_LIST_URL,
            params={"maxResults": 1},
            headers={"Authorization": f"Bearer {access_token}"},
        )
        items = self._json_object(resp).get("items") or []
        if not isinstance(items, list):
            raise ValueError("calendarList items is not a list")
        for item in items:
            if isinstance(item, dict) and item.get("primary"):
                return self._hint(item.get("id"))
        return None
