from __future__ import annotations

import argparse
import logging
import time
from datetime import datetime
from typing import Any, Callable

from fastapi import APIRouter, Body, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from timeswap import accounts, calendar_sync
from timeswap.analytics import refresh_analytics
from timeswap.calendar_sync import CalendarClient
from timeswap.chat import clear_chats, list_chats, send_message
from timeswap.config import Settings, configure_logging
from timeswap.dashboard import build_recommendations, build_summary, todays_schedule
from timeswap.errors import (
    AuthenticationError,
    QuotaExceededError,
    TimeSwapError,
    ValidationError,
)
from timeswap.mailer import Mailer
from timeswap.models import Preferences, Profile, Schedule, validate_preferences
from timeswap.store import DocumentStore
from timeswap.tasks import (
    create_task,
    delete_task,
    list_tasks,
    optimize_user_tasks,
    toggle_task,
    update_task,
)
from timeswap.workspace import to_iso

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


# ── Request bodies ────────────────────────────────────────────
# Fields default to empty so missing values reach the core validators (400, not 422).


class RegisterRequest(BaseModel):
    firstName: str = ""
    lastName: str = ""
    email: str = ""
    password: str = ""


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class TwoFactorRequest(BaseModel):
    userId: str = ""
    code: str = ""


class ForgotPasswordRequest(BaseModel):
    email: str = ""


class ResetPasswordRequest(BaseModel):
    token: str = ""
    newPassword: str = ""


class ChatRequest(BaseModel):
    message: str = ""


# ── Dependencies ──────────────────────────────────────────────

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_mailer(request: Request) -> Mailer | None:
    return request.app.state.mailer


def get_calendar(request: Request) -> CalendarClient:
    return request.app.state.calendar


def get_now(request: Request) -> datetime:
    return request.app.state.clock()


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_settings),
    store: DocumentStore = Depends(get_store),
) -> str:
    """User id from a valid bearer token whose account still exists."""
    if credentials is None:
        raise AuthenticationError("Access token required")
    claims = accounts.verify_token(credentials.credentials, settings)
    user_id = str(claims["id"])
    if not store.user_exists(user_id):
        raise AuthenticationError("Invalid or expired token")
    return user_id


router = APIRouter(prefix="/api")


# ── Health & auth ─────────────────────────────────────────────

@router.get("/health")
def health(now: datetime = Depends(get_now)) -> dict[str, Any]:
    return {"status": "healthy", "timestamp": to_iso(now), "version": API_VERSION}


@router.post("/auth/register")
def api_register(
    body: RegisterRequest,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    return {"success": True, **accounts.register(store, settings, body.model_dump(), now)}


@router.post("/auth/login")
def api_login(
    body: LoginRequest,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    mailer: Mailer | None = Depends(get_mailer),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    result = accounts.login(store, settings, body.email, body.password, now, mailer)
    return {"success": True, **result}


@router.post("/auth/verify-login-2fa")
def api_verify_login_2fa(
    body: TwoFactorRequest,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    result = accounts.verify_login_2fa(store, settings, body.userId, body.code, now)
    return {"success": True, **result}


@router.post("/auth/forgot-password")
def api_forgot_password(
    body: ForgotPasswordRequest,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    mailer: Mailer | None = Depends(get_mailer),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    message = accounts.forgot_password(store, settings, body.email, now, mailer)
    return {"success": True, "message": message}


@router.post("/auth/reset-password")
def api_reset_password(
    body: ResetPasswordRequest,
    store: DocumentStore = Depends(get_store),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    accounts.reset_password(store, body.token, body.newPassword, now)
    return {"success": True, "message": "Password reset successfully"}


@router.get("/auth/verify")
def api_verify(
    user_id: str = Depends(get_current_user), store: DocumentStore = Depends(get_store)
) -> dict[str, Any]:
    return accounts.public_profile(store, user_id)


@router.post("/auth/enable-2fa")
def api_enable_2fa(
    user_id: str = Depends(get_current_user), store: DocumentStore = Depends(get_store)
) -> dict[str, Any]:
    accounts.set_two_factor(store, user_id, True)
    return {"success": True, "message": "2FA enabled successfully"}


@router.post("/auth/disable-2fa")
def api_disable_2fa(
    user_id: str = Depends(get_current_user), store: DocumentStore = Depends(get_store)
) -> dict[str, Any]:
    accounts.set_two_factor(store, user_id, False)
    return {"success": True, "message": "2FA disabled successfully"}


@router.put("/user/update")
def api_update_user(
    payload: dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    return {"success": True, "user": accounts.update_profile(store, user_id, payload)}


# ── Tasks ─────────────────────────────────────────────────────

@router.get("/tasks")
def api_list_tasks(
    user_id: str = Depends(get_current_user), store: DocumentStore = Depends(get_store)
) -> dict[str, Any]:
    """Tasks in display order."""
    return {"success": True, "tasks": [t.to_dict() for t in list_tasks(store, user_id)]}


@router.post("/tasks")
def api_create_task(
    payload: dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    task = create_task(store, user_id, payload, now)
    return {"success": True, "task": task.to_dict()}


@router.post("/tasks/optimize")
def api_optimize_tasks(
    user_id: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    """Reorder tasks by AI-optimize score."""
    tasks = optimize_user_tasks(store, user_id, now)
    schedule = store.read(user_id, "schedule")
    return {
        "success": True,
        "tasks": [t.to_dict() for t in tasks],
        "optimizedSchedule": schedule.get("optimizedSchedule", []),
    }


@router.put("/tasks/{task_id}")
def api_update_task(
    task_id: str,
    payload: dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    task = update_task(store, user_id, task_id, payload, now)
    return {"success": True, "task": task.to_dict()}


@router.post("/tasks/{task_id}/toggle")
def api_toggle_task(
    task_id: str,
    user_id: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    task = toggle_task(store, user_id, task_id, now)
    return {"success": True, "task": task.to_dict()}


@router.delete("/tasks/{task_id}")
def api_delete_task(
    task_id: str,
    user_id: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    delete_task(store, user_id, task_id, now)
    return {"success": True}


# ── AI chat ───────────────────────────────────────────────────

@router.get("/ai/chats")
def api_list_chats(
    user_id: str = Depends(get_current_user), store: DocumentStore = Depends(get_store)
) -> dict[str, Any]:
    return {"success": True, "chats": [c.to_dict() for c in list_chats(store, user_id)]}


@router.post("/ai/chats")
def api_send_chat(
    body: ChatRequest,
    user_id: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    entry = send_message(
        store,
        user_id,
        body.message,
        now,
        daily_limit=settings.chat_daily_limit,
        history_limit=settings.chat_history_limit,
    )
    return {"success": True, "chat": entry.to_dict()}


@router.delete("/ai/chats")
def api_clear_chats(
    user_id: str = Depends(get_current_user), store: DocumentStore = Depends(get_store)
) -> dict[str, Any]:
    clear_chats(store, user_id)
    return {"success": True}


# ── Preferences, schedule, analytics ──────────────────────────

@router.get("/preferences")
def api_get_preferences(
    user_id: str = Depends(get_current_user), store: DocumentStore = Depends(get_store)
) -> dict[str, Any]:
    return Preferences.from_dict(store.read(user_id, "preferences")).to_dict()


@router.post("/preferences")
def api_save_preferences(
    payload: dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    """Replace the preferences document (missing keys fall back to defaults)."""
    errors = validate_preferences(payload)
    if errors:
        raise ValidationError(errors)
    preferences = Preferences.from_dict(payload).to_dict()
    store.write(user_id, "preferences", preferences)
    return {"success": True, "preferences": preferences}


@router.get("/schedule")
def api_get_schedule(
    user_id: str = Depends(get_current_user), store: DocumentStore = Depends(get_store)
) -> dict[str, Any]:
    return Schedule.from_dict(store.read(user_id, "schedule")).to_dict()


@router.post("/schedule")
def api_save_schedule(
    payload: dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    schedule = Schedule.from_dict(payload).to_dict()
    store.write(user_id, "schedule", schedule)
    return {"success": True, "schedule": schedule}


@router.get("/analytics")
def api_get_analytics(
    user_id: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    """Freshly recomputed analytics."""
    return refresh_analytics(store, user_id, now).to_dict()


@router.get("/dashboard/summary")
def api_dashboard_summary(
    user_id: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    analytics = refresh_analytics(store, user_id, now)
    tasks = list_tasks(store, user_id)
    events = Schedule.from_dict(store.read(user_id, "schedule")).events
    return {
        "success": True,
        "summary": build_summary(tasks, analytics, now),
        "recommendations": build_recommendations(tasks, now),
        "todaysSchedule": todays_schedule(tasks, events, now),
    }


# ── Calendar & integrations ───────────────────────────────────

@router.get("/calendar/auth-url")
def api_calendar_auth_url(
    user_id: str = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    calendar: CalendarClient = Depends(get_calendar),
) -> dict[str, Any]:
    state = accounts.create_calendar_state(user_id, settings)
    return {"success": True, "authUrl": calendar.authorization_url(state=state)}


@router.get("/calendar/callback")
def api_calendar_callback(
    code: str = "",
    state: str = "",
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    calendar: CalendarClient = Depends(get_calendar),
    now: datetime = Depends(get_now),
) -> RedirectResponse:
    """OAuth redirect target; *state* is the signed token from /calendar/auth-url."""
    dashboard = f"{settings.public_url.rstrip('/')}/dashboard"
    failed = RedirectResponse(f"{dashboard}?error=calendar_auth_failed")
    if not code or not state:
        return failed
    try:
        user_id = accounts.verify_calendar_state(state, settings)
    except AuthenticationError:
        logger.warning("Calendar callback with invalid state")
        return failed
    if not store.user_exists(user_id):
        return failed
    try:
        calendar_sync.connect(calendar, store, user_id, code, now)
    except TimeSwapError as e:
        logger.error("Calendar callback failed for user %s: %s", user_id, e.message)
        return failed
    return RedirectResponse(f"{dashboard}?calendar=connected")


@router.get("/calendar/events")
def api_calendar_events(
    user_id: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    calendar: CalendarClient = Depends(get_calendar),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    return {"success": True, "events": calendar_sync.sync_events(calendar, store, user_id, now)}


@router.post("/calendar/sync")
def api_calendar_sync(
    user_id: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    calendar: CalendarClient = Depends(get_calendar),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    events = calendar_sync.sync_events(calendar, store, user_id, now)
    return {
        "success": True,
        "message": "Calendar sync completed",
        "syncedAt": to_iso(now),
        "count": len(events),
    }


@router.post("/calendar/create-event")
def api_calendar_create_event(
    payload: dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    calendar: CalendarClient = Depends(get_calendar),
) -> dict[str, Any]:
    event = calendar_sync.create_event(calendar, store, user_id, payload)
    return {"success": True, "event": event, "message": "Event created successfully"}


@router.get("/integrations/status")
def api_integrations_status(
    user_id: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    calendar: CalendarClient = Depends(get_calendar),
) -> dict[str, Any]:
    profile = Profile.from_dict(store.read(user_id, "profile"))
    return {"success": True, "integrations": calendar_sync.integration_status(profile, calendar)}


@router.delete("/integrations/{name}")
def api_disconnect_integration(
    name: str,
    user_id: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    calendar_sync.disconnect(store, user_id, name)
    return {"success": True, "message": "Integration disconnected"}


# ── Error mapping ─────────────────────────────────────────────

def handle_timeswap_error(request: Request, exc: TimeSwapError) -> JSONResponse:
    body: dict[str, Any] = {"success": False, "error": exc.message}
    headers = None
    if isinstance(exc, ValidationError):
        body["errors"] = exc.errors
    elif isinstance(exc, QuotaExceededError):
        body["limit"] = exc.limit
        body["resetAt"] = exc.reset_at
    elif isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}

    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


# ── App factory ───────────────────────────────────────────────

def create_app(
    settings: Settings | None = None,
    store: DocumentStore | None = None,
    mailer: Mailer | None = None,
    calendar: CalendarClient | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    """Build the API with its collaborators; anything omitted comes from settings."""
    settings = settings or Settings.load()
    if store is None:
        store = DocumentStore(settings.data_root)
    if mailer is None and settings.mail_configured:
        mailer = Mailer(settings)
    if calendar is None:
        calendar = CalendarClient(settings)
    if clock is None:
        tz = settings.tzinfo()

        def clock() -> datetime:
            return datetime.now(tz)

    app = FastAPI(title="TimeSwap API", version=API_VERSION)
    app.state.settings = settings
    app.state.store = store
    app.state.mailer = mailer
    app.state.calendar = calendar
    app.state.clock = clock

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins or ["*"],
        allow_credentials=bool(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = (time.perf_counter() - start) * 1000
        logger.info("%s %s -> %d (%.1f ms)", request.method, request.url.path, response.status_code, elapsed)
        return response

    app.add_exception_handler(TimeSwapError, handle_timeswap_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.include_router(router)
    return app


def main() -> None:
    import uvicorn

    parser = argparse.ArgumentParser(description="TimeSwap API server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=4567)
    args = parser.parse_args()

    settings = Settings.load()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
