from datetime import timedelta

import pytest

from app.api.deps import FORM_DASHBOARD, FORM_EXTEND, FORM_REGISTER
from app.core.security import create_form_token, verify_form_token, verify_password
from app.models import MEMBERSHIP_EXPIRED, ROLE_ADMINISTRATOR

from conftest import TEST_PASSWORD


def _login(api, login, password=TEST_PASSWORD):
    return api.post("/v1/auth/login", json={"login": login, "password": password, "device_id": "browser-1"})


def test_form_token_checks_action_and_subject(settings):
    token = create_form_token(FORM_EXTEND, settings, subject="7")

    assert verify_form_token(token, FORM_EXTEND, settings, subject="7")
    assert not verify_form_token(token, FORM_EXTEND, settings, subject="8")
    assert not verify_form_token(token, FORM_DASHBOARD, settings, subject="7")
    assert not verify_form_token(None, FORM_EXTEND, settings, subject="7")
    assert not verify_form_token("garbage", FORM_EXTEND, settings, subject="7")


def test_form_token_expires(settings):
    settings.form_token_expire_seconds = -1
    token = create_form_token(FORM_REGISTER, settings)

    assert not verify_form_token(token, FORM_REGISTER, settings)


@pytest.mark.parametrize("login", ["student@example.com", "STUDENT@example.com", "student"])
def test_login_with_email_or_username(api, settings, active_student, login):
    resp = _login(api, login)

    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["user"]["id"] == active_student.id
    assert data["redirect_url"] == settings.student_redirect_url


def test_login_wrong_password(api, active_student):
    resp = _login(api, active_student.email, "wrong-password")

    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "INVALID_CREDENTIALS"


def test_login_redirects_by_role(api, settings, partner, make_user, now):
    admin = make_user(account_role=ROLE_ADMINISTRATOR)
    lapsed = make_user(membership_state=MEMBERSHIP_EXPIRED, expiry_at=now - timedelta(days=1))

    assert _login(api, partner.email).json()["redirect_url"] == settings.partner_admin_redirect_url
    assert _login(api, admin.email).json()["redirect_url"] == settings.administrator_redirect_url
    assert _login(api, lapsed.email).json()["redirect_url"] == settings.extend_url


def test_refresh_and_logout(api, settings, active_student):
    tokens = _login(api, active_student.email).json()

    refreshed = api.post(
        "/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"], "device_id": "browser-1"}
    )
    assert refreshed.status_code == 200, refreshed.text

    mismatch = api.post("/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"], "device_id": "other"})
    assert mismatch.status_code == 401
    assert mismatch.json()["error"]["code"] == "DEVICE_MISMATCH"

    logout = api.post("/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]})
    assert logout.json() == {"success": True, "redirect_url": settings.login_url}

    revoked = api.post("/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"], "device_id": "browser-1"})
    assert revoked.status_code == 401


def test_me_reports_membership(api, partner, active_student, auth_headers):
    resp = api.get("/v1/me", headers=auth_headers(active_student))

    assert resp.status_code == 200, resp.text
    membership = resp.json()["membership"]
    assert membership["state"] == "active"
    assert membership["active"] is True
    assert membership["manager_id"] == partner.id
    assert membership["days_remaining"] == 20


def test_me_rejects_bad_token(api):
    resp = api.get("/v1/me", headers={"Authorization": "Bearer not-a-token"})

    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "INVALID_TOKEN"


def test_update_profile(api, active_student, make_user, auth_headers):
    taken = make_user(email="taken@example.com")
    headers = auth_headers(active_student)

    resp = api.patch("/v1/me", json={"first_name": "Ada", "last_name": "King"}, headers=headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["display_name"] == "Ada King"

    conflict = api.patch("/v1/me", json={"email": taken.email}, headers=headers)
    assert conflict.status_code == 409


def test_change_password(api, db, active_student, auth_headers):
    headers = auth_headers(active_student)

    wrong = api.post(
        "/v1/me/password", json={"current_password": "nope", "new_password": "Another-Pass-456"}, headers=headers
    )
    assert wrong.status_code == 403
    assert wrong.json()["error"]["code"] == "INVALID_PASSWORD"

    resp = api.post(
        "/v1/me/password",
        json={"current_password": TEST_PASSWORD, "new_password": "Another-Pass-456"},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    db.refresh(active_student)
    assert verify_password("Another-Pass-456", active_student.password_hash)
