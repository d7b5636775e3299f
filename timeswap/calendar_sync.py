"""Google Calendar integration for TimeSwap.

OAuth tokens are kept on the user's profile under ``googleCalendarTokens``.
Listed events are cached into the ``schedule`` document so the dashboard
can show them without another round trip.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from timeswap.config import Settings
from timeswap.errors import AuthenticationError, IntegrationError, ValidationError
from timeswap.models import Profile, Schedule
from timeswap.store import DocumentStore
from timeswap.workspace import parse_timestamp, to_iso

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/calendar.events",
]
AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"

EVENT_WINDOW_DAYS = 7
MAX_EVENTS = 50
INTEGRATIONS = ("google-calendar", "notion")


class CalendarClient:
    """Thin wrapper over the Google OAuth flow and Calendar v3 API."""

    def __init__(self, settings: Settings) -> None:
        self.client_id = settings.google_client_id
        self.client_secret = settings.google_client_secret
        self.redirect_uri = settings.calendar_redirect_uri

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def require_config(self) -> None:
        if not self.configured:
            raise IntegrationError("Google Calendar integration not configured")

    def _flow(self, state: str | None = None) -> Flow:
        return Flow.from_client_config(
            {
                "web": {
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "auth_uri": AUTH_URI,
                    "token_uri": TOKEN_URI,
                }
            },
            scopes=SCOPES,
            redirect_uri=self.redirect_uri,
            state=state,
            autogenerate_code_verifier=False,
        )

    # ── OAuth ─────────────────────────────────────────────────

    def authorization_url(self, state: str) -> str:
        """Consent URL; *state* is passed back untouched to the callback."""
        self.require_config()
        url, _ = self._flow(state).authorization_url(access_type="offline", prompt="consent")
        return url

    def exchange_code(self, code: str, now: datetime) -> dict[str, Any]:
        """Trade an authorization code for a token record."""
        self.require_config()
        flow = self._flow()
        try:
            flow.fetch_token(code=code)
        except Exception as e:
            raise AuthenticationError(f"Calendar authorization failed: {e}") from e
        tokens = tokens_from_credentials(flow.credentials)
        tokens["connectedAt"] = to_iso(now)
        return tokens

    def credentials(self, tokens: dict[str, Any]) -> Credentials:
        """Credentials for a stored token record, refreshed if expired."""
        self.require_config()
        creds = Credentials(
            token=tokens.get("access_token") or None,
            refresh_token=tokens.get("refresh_token") or None,
            token_uri=tokens.get("token_uri") or TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=tokens.get("scopes") or SCOPES,
        )
        if tokens.get("expiry"):
            creds.expiry = datetime.fromisoformat(tokens["expiry"])

        if not creds.valid:
            if not (creds.expired and creds.refresh_token):
                raise AuthenticationError("Calendar authorization expired")
            try:
                creds.refresh(GoogleAuthRequest())
            except RefreshError as e:
                raise AuthenticationError("Calendar authorization expired") from e
        return creds

    def _service(self, creds: Credentials):
        return build("calendar", "v3", credentials=creds, cache_discovery=False)

    # ── Events ────────────────────────────────────────────────

    def list_events(self, creds: Credentials, now: datetime) -> list[dict[str, Any]]:
        """Primary-calendar events for the next week, earliest first."""
        try:
            resp = self._service(creds).events().list(
                calendarId="primary",
                timeMin=to_iso(now),
                timeMax=to_iso(now + timedelta(days=EVENT_WINDOW_DAYS)),
                maxResults=MAX_EVENTS,
                singleEvents=True,
                orderBy="startTime",
            ).execute()
        except HttpError as e:
            raise _api_error(e, "Unable to fetch calendar events") from e
        return [map_event(item) for item in resp.get("items", [])]

    def create_event(
        self,
        creds: Credentials,
        summary: str,
        description: str,
        start: str | datetime,
        duration: int,
    ) -> dict[str, Any]:
        """Insert a *duration*-minute event on the primary calendar."""
        start_dt = parse_timestamp(start)
        if start_dt is None:
            raise ValidationError(f"Invalid start: {start}")
        body = {
            "summary": summary,
            "description": description,
            "start": {"dateTime": to_iso(start_dt)},
            "end": {"dateTime": to_iso(start_dt + timedelta(minutes=duration))},
        }
        try:
            return self._service(creds).events().insert(calendarId="primary", body=body).execute()
        except HttpError as e:
            raise _api_error(e, "Failed to create calendar event") from e


def _api_error(e: HttpError, message: str) -> Exception:
    status = getattr(getattr(e, "resp", None), "status", None)
    logger.error("Google Calendar API error (%s): %s", status, e)
    if status == 401:
        return AuthenticationError("Calendar authorization expired")
    return IntegrationError(message)


def tokens_from_credentials(creds: Credentials) -> dict[str, Any]:
    return {
        "access_token": creds.token,
        "refresh_token": creds.refresh_token,
        "token_uri": getattr(creds, "token_uri", TOKEN_URI),
        "scopes": list(creds.scopes or SCOPES),
        "expiry": creds.expiry.isoformat() if getattr(creds, "expiry", None) else None,
    }


def map_event(item: dict[str, Any]) -> dict[str, Any]:
    start = item.get("start") or {}
    end = item.get("end") or {}
    return {
        "id": item.get("id"),
        "summary": item.get("summary"),
        "start": start.get("dateTime") or start.get("date"),
        "end": end.get("dateTime") or end.get("date"),
        "description": item.get("description"),
    }


# ── Per-user operations ───────────────────────────────────────


def _connected_tokens(store: DocumentStore, user_id: str) -> dict[str, Any]:
    profile = Profile.from_dict(store.read(user_id, "profile"))
    if not profile.google_calendar_tokens:
        raise ValidationError("Google Calendar not connected")
    return profile.google_calendar_tokens


def _user_credentials(client: CalendarClient, store: DocumentStore, user_id: str) -> Credentials:
    """Credentials for a user; a refreshed access token is saved back."""
    client.require_config()
    tokens = _connected_tokens(store, user_id)
    creds = client.credentials(tokens)
    if creds.token and creds.token != tokens.get("access_token"):
        with store.transaction(user_id, "profile") as profile:
            stored = profile.get("googleCalendarTokens") or {}
            stored.update(tokens_from_credentials(creds))
            stored["refresh_token"] = stored.get("refresh_token") or tokens.get("refresh_token")
            profile["googleCalendarTokens"] = stored
    return creds


def connect(
    client: CalendarClient, store: DocumentStore, user_id: str, code: str, now: datetime
) -> None:
    """Finish the OAuth callback and store the tokens on the profile."""
    tokens = client.exchange_code(code, now)
    with store.transaction(user_id, "profile") as profile:
        profile["googleCalendarTokens"] = tokens
    logger.info("Google Calendar connected for user %s", user_id)


def sync_events(
    client: CalendarClient, store: DocumentStore, user_id: str, now: datetime
) -> list[dict[str, Any]]:
    """Fetch the coming week's events and cache them in the schedule."""
    creds = _user_credentials(client, store, user_id)
    events = client.list_events(creds, now)
    with store.locked(user_id, "schedule"):
        schedule = Schedule.from_dict(store.read(user_id, "schedule"))
        schedule.events = events
        schedule.extra["lastSynced"] = to_iso(now)
        store.write(user_id, "schedule", schedule.to_dict())
    return events


def create_event(
    client: CalendarClient, store: DocumentStore, user_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    summary = str(data.get("summary") or "").strip()
    if not summary or not data.get("start"):
        raise ValidationError("summary and start are required")
    try:
        duration = int(data.get("duration") or 60)
    except (TypeError, ValueError) as e:
        raise ValidationError("duration must be a whole number of minutes") from e
    if duration <= 0:
        raise ValidationError("duration must be positive")

    creds = _user_credentials(client, store, user_id)
    event = client.create_event(creds, summary, str(data.get("description") or ""), data["start"], duration)
    logger.info("Created calendar event for user %s", user_id)
    return event


def integration_status(profile: Profile, client: CalendarClient | None) -> dict[str, bool]:
    return {
        "googleCalendar": bool(profile.google_calendar_tokens and client is not None and client.configured),
        "notion": bool(profile.extra.get("notionTokens")),
    }


def disconnect(store: DocumentStore, user_id: str, name: str) -> None:
    """Forget the stored tokens of one integration."""
    if name not in INTEGRATIONS:
        raise ValidationError(f"Unknown integration: {name}")
    key = "googleCalendarTokens" if name == "google-calendar" else "notionTokens"
    with store.transaction(user_id, "profile") as profile:
        profile.pop(key, None)
    logger.info("Disconnected %s for user %s", name, user_id)
