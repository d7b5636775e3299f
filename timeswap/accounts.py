"""User accounts for TimeSwap: registration, login, 2FA, password reset, JWT.

Profiles live in each user's ``profile`` document. There is no email
index; lookups by email scan the provisioned accounts.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from timeswap.config import Settings
from timeswap.errors import AuthenticationError, IntegrationError, StorageError, ValidationError
from timeswap.mailer import Mailer, password_reset_email, two_factor_email
from timeswap.models import PROTECTED_PROFILE_KEYS, Profile
from timeswap.store import DocumentStore
from timeswap.workspace import now_utc, parse_timestamp, to_iso

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 200_000
MIN_PASSWORD_LENGTH = 6
MIN_RESET_PASSWORD_LENGTH = 8
TWO_FACTOR_TTL = timedelta(minutes=10)
RESET_TOKEN_TTL = timedelta(hours=1)
CALENDAR_STATE_TTL = timedelta(minutes=10)
CALENDAR_STATE_PURPOSE = "calendar-connect"
RESET_SENT_MESSAGE = "If an account with that email exists, a reset link has been sent."


# ── Passwords ─────────────────────────────────────────────────


def hash_password(password: str, salt: str | None = None, iterations: int | None = None) -> str:
    """Salted PBKDF2-SHA256, stored as ``pbkdf2_sha256$iter$salt$hex``."""
    salt = salt or secrets.token_hex(16)
    iterations = iterations or PBKDF2_ITERATIONS
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        algorithm, iterations, salt, expected = stored.split("$")
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    candidate = hash_password(password, salt, int(iterations)).rsplit("$", 1)[1]
    return hmac.compare_digest(candidate, expected)


# ── Tokens ────────────────────────────────────────────────────


def create_token(profile: Profile, settings: Settings, now: datetime | None = None) -> str:
    """Signed bearer token carrying the user's ``id`` and ``email``."""
    issued = now or now_utc()
    claims = {
        "id": profile.id,
        "email": profile.email,
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(days=settings.jwt_expire_days)).timestamp()),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str, settings: Settings) -> dict[str, Any]:
    """Decode and check a bearer token. Raises AuthenticationError."""
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise AuthenticationError("Invalid or expired token") from e
    if not claims.get("id"):
        raise AuthenticationError("Invalid or expired token")
    return claims


def create_calendar_state(user_id: str, settings: Settings, now: datetime | None = None) -> str:
    """Signed OAuth ``state`` naming the user who started the calendar flow."""
    issued = now or now_utc()
    claims = {
        "sub": user_id,
        "purpose": CALENDAR_STATE_PURPOSE,
        "iat": int(issued.timestamp()),
        "exp": int((issued + CALENDAR_STATE_TTL).timestamp()),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_calendar_state(state: str, settings: Settings) -> str:
    """User id from a calendar OAuth ``state``. Raises AuthenticationError."""
    try:
        claims = jwt.decode(state, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise AuthenticationError("Invalid or expired calendar state") from e
    if claims.get("purpose") != CALENDAR_STATE_PURPOSE or not claims.get("sub"):
        raise AuthenticationError("Invalid or expired calendar state")
    return str(claims["sub"])


# ── Lookup ────────────────────────────────────────────────────


def normalize_email(email: str) -> str:
    return email.strip().lower()


def load_profile(store: DocumentStore, user_id: str) -> Profile:
    return Profile.from_dict(store.read(user_id, "profile"))


def save_profile(store: DocumentStore, profile: Profile) -> None:
    store.write(profile.id, "profile", profile.to_dict())


def _scan_profiles(store: DocumentStore):
    for user_id in store.list_users():
        try:
            data = store.read(user_id, "profile")
            profile = Profile.from_dict(data) if data else None
        except (StorageError, TypeError, ValueError):
            logger.warning("Skipping unreadable profile for user %s", user_id)
            continue
        if profile is not None:
            yield profile


def find_user_by_email(store: DocumentStore, email: str) -> Profile | None:
    target = normalize_email(email)
    for profile in _scan_profiles(store):
        if profile.email and normalize_email(profile.email) == target:
            return profile
    return None


def find_user_by_reset_token(store: DocumentStore, token: str) -> Profile | None:
    for profile in _scan_profiles(store):
        reset = profile.password_reset or {}
        if reset.get("token") and hmac.compare_digest(str(reset["token"]), token):
            return profile
    return None


def user_summary(profile: Profile) -> dict[str, Any]:
    return {
        "id": profile.id,
        "name": profile.name,
        "email": profile.email,
        "createdAt": profile.created_at,
    }


def _session(profile: Profile, settings: Settings) -> dict[str, Any]:
    return {"token": create_token(profile, settings), "user": user_summary(profile)}


# ── Registration & login ──────────────────────────────────────


def register(
    store: DocumentStore, settings: Settings, data: dict[str, Any], now: datetime
) -> dict[str, Any]:
    """Create an account and return ``{"token", "user"}``."""
    first = str(data.get("firstName") or "").strip()
    last = str(data.get("lastName") or "").strip()
    email = str(data.get("email") or "").strip()
    password = data.get("password") or ""
    if not (first and last and email and password):
        raise ValidationError("All fields are required")
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if find_user_by_email(store, email) is not None:
        raise ValidationError("An account with this email already exists")

    profile = Profile(
        id=uuid.uuid4().hex,
        first_name=first,
        last_name=last,
        name=f"{first} {last}",
        email=email,
        password=hash_password(password),
        created_at=to_iso(now),
    )
    store.ensure_user(profile.id)
    save_profile(store, profile)
    logger.info("Registered user %s", profile.id)
    return _session(profile, settings)


def login(
    store: DocumentStore,
    settings: Settings,
    email: str,
    password: str,
    now: datetime,
    mailer: Mailer | None = None,
) -> dict[str, Any]:
    """Check credentials.

    Returns ``{"token", "user"}``, or ``{"requires2FA", "userId", "message"}``
    when the account has 2FA on and a code was mailed. If mailing the code
    fails the login completes without it.
    """
    if not email or not password:
        raise ValidationError("Email and password are required")

    profile = find_user_by_email(store, email)
    if profile is None or not verify_password(password, profile.password):
        raise AuthenticationError("Invalid email or password")

    with store.locked(profile.id, "profile"):
        profile = load_profile(store, profile.id)
        profile.last_login = to_iso(now)

        if profile.two_factor_enabled and mailer is not None and mailer.configured:
            code = f"{secrets.randbelow(900000) + 100000}"
            profile.pending_two_factor = {
                "code": code,
                "expiry": to_iso(now + TWO_FACTOR_TTL),
                "email": profile.email,
            }
            save_profile(store, profile)
            try:
                mailer.send(profile.email, *two_factor_email(code))
            except IntegrationError:
                logger.exception("Error sending 2FA email to user %s", profile.id)
            else:
                return {
                    "requires2FA": True,
                    "userId": profile.id,
                    "message": "2FA code sent to your email",
                }
        else:
            save_profile(store, profile)

    logger.info("User %s logged in", profile.id)
    return _session(profile, settings)


def verify_login_2fa(
    store: DocumentStore, settings: Settings, user_id: str, code: str, now: datetime
) -> dict[str, Any]:
    """Finish a 2FA login with the mailed code."""
    if not user_id or not code:
        raise ValidationError("User ID and code are required")
    if not store.user_exists(user_id):
        raise AuthenticationError("No pending 2FA verification")

    with store.locked(user_id, "profile"):
        profile = load_profile(store, user_id)
        pending = profile.pending_two_factor
        if not pending:
            raise AuthenticationError("No pending 2FA verification")

        expiry = parse_timestamp(pending.get("expiry"))
        if expiry is None or now > expiry:
            profile.pending_two_factor = None
            save_profile(store, profile)
            raise AuthenticationError("2FA code expired")
        if not hmac.compare_digest(str(pending.get("code", "")), str(code).strip()):
            raise AuthenticationError("Invalid 2FA code")

        profile.pending_two_factor = None
        profile.last_login = to_iso(now)
        save_profile(store, profile)

    return _session(profile, settings)


def set_two_factor(store: DocumentStore, user_id: str, enabled: bool) -> Profile:
    with store.locked(user_id, "profile"):
        profile = load_profile(store, user_id)
        profile.two_factor_enabled = enabled
        if not enabled:
            profile.pending_two_factor = None
        save_profile(store, profile)
    logger.info("2FA %s for user %s", "enabled" if enabled else "disabled", user_id)
    return profile


# ── Password reset ────────────────────────────────────────────


def forgot_password(
    store: DocumentStore, settings: Settings, email: str, now: datetime, mailer: Mailer | None
) -> str:
    """Mail a one-hour reset link. Unknown emails get the same answer."""
    if not email:
        raise ValidationError("Email is required")
    if mailer is None or not mailer.configured:
        raise IntegrationError("Email service not available")

    profile = find_user_by_email(store, email)
    if profile is None:
        return RESET_SENT_MESSAGE

    token = secrets.token_hex(32)
    with store.locked(profile.id, "profile"):
        profile = load_profile(store, profile.id)
        profile.password_reset = {"token": token, "expiry": to_iso(now + RESET_TOKEN_TTL)}
        save_profile(store, profile)

    reset_url = f"{settings.public_url.rstrip('/')}/reset-password?token={token}"
    mailer.send(profile.email, *password_reset_email(reset_url))
    return RESET_SENT_MESSAGE


def reset_password(store: DocumentStore, token: str, new_password: str, now: datetime) -> None:
    if not token or not new_password:
        raise ValidationError("Token and new password are required")
    if len(new_password) < MIN_RESET_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_RESET_PASSWORD_LENGTH} characters")

    profile = find_user_by_reset_token(store, token)
    if profile is None:
        raise ValidationError("Invalid or expired reset token")

    with store.locked(profile.id, "profile"):
        profile = load_profile(store, profile.id)
        expiry = parse_timestamp((profile.password_reset or {}).get("expiry"))
        if expiry is None or now > expiry:
            profile.password_reset = None
            save_profile(store, profile)
            raise ValidationError("Reset token expired")

        profile.password = hash_password(new_password)
        profile.password_reset = None
        profile.password_changed_at = to_iso(now)
        save_profile(store, profile)
    logger.info("Password reset for user %s", profile.id)


# ── Profile ───────────────────────────────────────────────────


def public_profile(store: DocumentStore, user_id: str) -> dict[str, Any]:
    return load_profile(store, user_id).to_public_dict()


def validate_profile_update(updates: dict[str, Any]) -> list[str]:
    errors = []
    for key in ("firstName", "lastName", "name"):
        if key in updates and not isinstance(updates[key], str):
            errors.append(f"{key} must be a string")
    if "settings" in updates and not isinstance(updates["settings"], dict):
        errors.append("settings must be an object")
    return errors


def update_profile(store: DocumentStore, user_id: str, updates: dict[str, Any]) -> dict[str, Any]:
    """Shallow-merge client fields into the profile; protected keys are ignored."""
    errors = validate_profile_update(updates)
    if errors:
        raise ValidationError(errors)
    with store.transaction(user_id, "profile") as profile:
        for key, value in updates.items():
            if key not in PROTECTED_PROFILE_KEYS:
                profile[key] = value
        if ("firstName" in updates or "lastName" in updates) and "name" not in updates:
            profile["name"] = f"{profile.get('firstName', '')} {profile.get('lastName', '')}".strip()
    return Profile.from_dict(profile).to_public_dict()
