"""Tests for timeswap/accounts.py — registration, login, 2FA, reset, profile."""

from dataclasses import replace
from datetime import timedelta

import pytest

from timeswap.accounts import (
    RESET_SENT_MESSAGE,
    create_calendar_state,
    create_token,
    find_user_by_email,
    forgot_password,
    hash_password,
    load_profile,
    login,
    public_profile,
    register,
    reset_password,
    set_two_factor,
    update_profile,
    verify_calendar_state,
    verify_login_2fa,
    verify_password,
    verify_token,
)
from timeswap.errors import AuthenticationError, IntegrationError, ValidationError
from timeswap.workspace import now_utc

ALICE = {"firstName": "Alice", "lastName": "Smith", "email": "alice@example.com", "password": "secret1"}


@pytest.fixture
def alice(store, settings, now):
    return register(store, settings, dict(ALICE), now)


class FailingMailer:
    configured = True

    def send(self, to, subject, html):
        raise IntegrationError("Failed to send email: connection refused")


# ── Passwords & tokens ────────────────────────────────────────


def test_password_hash_is_salted():
    a = hash_password("pw")
    b = hash_password("pw")
    assert a != b
    assert a.startswith("pbkdf2_sha256$")
    assert verify_password("pw", a)
    assert not verify_password("other", a)


def test_verify_password_rejects_malformed_hash():
    assert not verify_password("pw", "plaintext")
    assert not verify_password("pw", "md5$1$salt$abc")


def test_token_round_trip(alice, settings):
    claims = verify_token(alice["token"], settings)
    assert claims["id"] == alice["user"]["id"]
    assert claims["email"] == "alice@example.com"


def test_token_with_wrong_secret_rejected(alice, settings):
    with pytest.raises(AuthenticationError):
        verify_token(alice["token"], replace(settings, jwt_secret="other"))
    with pytest.raises(AuthenticationError):
        verify_token("not-a-token", settings)


def test_expired_token_rejected(store, settings, alice, now):
    profile = load_profile(store, alice["user"]["id"])
    old = create_token(profile, settings, now=now - timedelta(days=30))
    with pytest.raises(AuthenticationError):
        verify_token(old, settings)


# ── Registration & login ──────────────────────────────────────


def test_register_creates_profile(store, alice, now):
    user = alice["user"]
    assert user["name"] == "Alice Smith"
    assert user["email"] == "alice@example.com"
    assert user["createdAt"] == "2026-02-11T15:00:00.000Z"
    assert "password" not in user

    stored = store.read(user["id"], "profile")
    assert stored["password"] != "secret1"
    assert verify_password("secret1", stored["password"])


@pytest.mark.parametrize("missing", ["firstName", "lastName", "email", "password"])
def test_register_requires_all_fields(store, settings, now, missing):
    data = dict(ALICE)
    data[missing] = ""
    with pytest.raises(ValidationError, match="All fields are required"):
        register(store, settings, data, now)


def test_register_short_password(store, settings, now):
    with pytest.raises(ValidationError, match="at least 6"):
        register(store, settings, dict(ALICE, password="12345"), now)


def test_register_duplicate_email(store, settings, now, alice):
    with pytest.raises(ValidationError):
        register(store, settings, dict(ALICE, email="ALICE@example.com "), now)


def test_login_success_records_last_login(store, settings, alice, now):
    later = now + timedelta(hours=1)
    result = login(store, settings, "Alice@Example.com", "secret1", later)
    assert result["user"]["id"] == alice["user"]["id"]
    assert verify_token(result["token"], settings)["id"] == alice["user"]["id"]
    assert load_profile(store, alice["user"]["id"]).last_login == "2026-02-11T16:00:00.000Z"


@pytest.mark.parametrize("email,password", [
    ("alice@example.com", "wrong"),
    ("nobody@example.com", "secret1"),
])
def test_login_bad_credentials(store, settings, alice, now, email, password):
    with pytest.raises(AuthenticationError, match="Invalid email or password"):
        login(store, settings, email, password, now)


def test_login_requires_fields(store, settings, now):
    with pytest.raises(ValidationError):
        login(store, settings, "", "", now)


# ── Two-factor ────────────────────────────────────────────────


def test_two_factor_login_flow(store, settings, alice, now, mailer):
    uid = alice["user"]["id"]
    set_two_factor(store, uid, True)

    result = login(store, settings, "alice@example.com", "secret1", now, mailer)
    assert result == {"requires2FA": True, "userId": uid, "message": "2FA code sent to your email"}
    assert len(mailer.sent) == 1
    to, subject, html = mailer.sent[0]
    assert to == "alice@example.com"

    code = load_profile(store, uid).pending_two_factor["code"]
    assert code in html

    session = verify_login_2fa(store, settings, uid, code, now + timedelta(minutes=2))
    assert session["user"]["id"] == uid
    assert load_profile(store, uid).pending_two_factor is None


def test_two_factor_wrong_code(store, settings, alice, now, mailer):
    uid = alice["user"]["id"]
    set_two_factor(store, uid, True)
    login(store, settings, "alice@example.com", "secret1", now, mailer)
    with pytest.raises(AuthenticationError, match="Invalid 2FA code"):
        verify_login_2fa(store, settings, uid, "000000", now)
    assert load_profile(store, uid).pending_two_factor is not None


def test_two_factor_code_expires(store, settings, alice, now, mailer):
    uid = alice["user"]["id"]
    set_two_factor(store, uid, True)
    login(store, settings, "alice@example.com", "secret1", now, mailer)
    code = load_profile(store, uid).pending_two_factor["code"]
    with pytest.raises(AuthenticationError, match="expired"):
        verify_login_2fa(store, settings, uid, code, now + timedelta(minutes=11))
    assert load_profile(store, uid).pending_two_factor is None


def test_two_factor_without_pending_code(store, settings, alice, now):
    with pytest.raises(AuthenticationError):
        verify_login_2fa(store, settings, alice["user"]["id"], "123456", now)
    with pytest.raises(AuthenticationError):
        verify_login_2fa(store, settings, "ghost", "123456", now)


def test_two_factor_mail_failure_falls_back(store, settings, alice, now):
    set_two_factor(store, alice["user"]["id"], True)
    result = login(store, settings, "alice@example.com", "secret1", now, FailingMailer())
    assert "token" in result


def test_two_factor_without_mailer_logs_in(store, settings, alice, now):
    set_two_factor(store, alice["user"]["id"], True)
    result = login(store, settings, "alice@example.com", "secret1", now)
    assert "token" in result


def test_disable_two_factor_clears_pending(store, settings, alice, now, mailer):
    uid = alice["user"]["id"]
    set_two_factor(store, uid, True)
    login(store, settings, "alice@example.com", "secret1", now, mailer)
    profile = set_two_factor(store, uid, False)
    assert profile.two_factor_enabled is False
    assert profile.pending_two_factor is None


# ── Password reset ────────────────────────────────────────────


def test_forgot_password_unknown_email_is_silent(store, settings, now, mailer):
    assert forgot_password(store, settings, "nobody@example.com", now, mailer) == RESET_SENT_MESSAGE
    assert mailer.sent == []


def test_forgot_password_requires_mailer(store, settings, alice, now):
    with pytest.raises(IntegrationError):
        forgot_password(store, settings, "alice@example.com", now, None)


def test_reset_password_flow(store, settings, alice, now, mailer):
    uid = alice["user"]["id"]
    assert forgot_password(store, settings, "alice@example.com", now, mailer) == RESET_SENT_MESSAGE

    token = load_profile(store, uid).password_reset["token"]
    assert f"http://testserver/reset-password?token={token}" in mailer.sent[0][2]

    reset_password(store, token, "new-password", now + timedelta(minutes=30))
    assert "token" in login(store, settings, "alice@example.com", "new-password", now)
    with pytest.raises(AuthenticationError):
        login(store, settings, "alice@example.com", "secret1", now)

    with pytest.raises(ValidationError):
        reset_password(store, token, "another-password", now)


def test_reset_token_expires(store, settings, alice, now, mailer):
    forgot_password(store, settings, "alice@example.com", now, mailer)
    token = load_profile(store, alice["user"]["id"]).password_reset["token"]
    with pytest.raises(ValidationError, match="expired"):
        reset_password(store, token, "new-password", now + timedelta(hours=2))


def test_reset_password_too_short(store, now):
    with pytest.raises(ValidationError, match="at least 8"):
        reset_password(store, "tok", "short", now)


def test_reset_password_unknown_token(store, alice, now):
    with pytest.raises(ValidationError):
        reset_password(store, "not-a-token", "new-password", now)


# ── Profile ───────────────────────────────────────────────────


def test_public_profile_hides_password(store, alice):
    profile = public_profile(store, alice["user"]["id"])
    assert "password" not in profile
    assert profile["email"] == "alice@example.com"


def test_update_profile_ignores_protected_keys(store, alice):
    uid = alice["user"]["id"]
    updated = update_profile(store, uid, {
        "email": "mallory@example.com",
        "password": "hacked",
        "twoFactorEnabled": True,
        "chatUsage": {"date": "2026-02-11", "count": 0},
        "firstName": "Alicia",
        "avatar": "cat.png",
    })
    assert updated["email"] == "alice@example.com"
    assert updated["name"] == "Alicia Smith"
    assert updated["avatar"] == "cat.png"
    assert updated["twoFactorEnabled"] is False

    stored = store.read(uid, "profile")
    assert verify_password("secret1", stored["password"])
    assert "chatUsage" not in stored
    assert find_user_by_email(store, "alice@example.com").id == uid


@pytest.mark.parametrize("updates", [
    {"settings": "dark"},
    {"firstName": ["Al"]},
    {"name": 42},
])
def test_update_profile_rejects_wrong_types(store, alice, updates):
    uid = alice["user"]["id"]
    before = store.read(uid, "profile")
    with pytest.raises(ValidationError):
        update_profile(store, uid, updates)
    assert store.read(uid, "profile") == before


def test_malformed_profile_does_not_block_other_logins(store, settings, alice, now):
    bob = register(store, settings, {
        "firstName": "Bob", "lastName": "Jones", "email": "bob@example.com", "password": "secret2",
    }, now)
    for uid in (alice["user"]["id"], bob["user"]["id"]):
        profile = store.read(uid, "profile")
        profile["settings"] = "dark"
        store.write(uid, "profile", profile)

    assert login(store, settings, "bob@example.com", "secret2", now)["user"]["id"] == bob["user"]["id"]
    assert login(store, settings, "alice@example.com", "secret1", now)["user"]["id"] == alice["user"]["id"]
    assert load_profile(store, alice["user"]["id"]).settings == {}


# ── Calendar OAuth state ──────────────────────────────────────


def test_calendar_state_round_trip(settings, alice):
    state = create_calendar_state(alice["user"]["id"], settings)
    assert verify_calendar_state(state, settings) == alice["user"]["id"]


def test_calendar_state_rejects_plain_ids_and_session_tokens(settings, alice):
    with pytest.raises(AuthenticationError):
        verify_calendar_state(alice["user"]["id"], settings)
    with pytest.raises(AuthenticationError):
        verify_calendar_state(alice["token"], settings)


def test_calendar_state_expires(settings, alice):
    state = create_calendar_state(alice["user"]["id"], settings, now_utc() - timedelta(minutes=11))
    with pytest.raises(AuthenticationError):
        verify_calendar_state(state, settings)


def test_calendar_state_is_not_a_session_token(settings, alice):
    state = create_calendar_state(alice["user"]["id"], settings)
    with pytest.raises(AuthenticationError):
        verify_token(state, settings)
