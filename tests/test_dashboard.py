from datetime import timedelta

from sqlalchemy import select

from app.core.security import verify_password
from app.models import MEMBERSHIP_ACTIVE, MEMBERSHIP_EXPIRED, ROLE_ADMINISTRATOR, ROLE_PARTNER_ADMIN, InviteCode, User
from app.services.enrollment import enroll_in_all_courses

from conftest import active_course_ids


def test_students_cannot_open_dashboard(api, active_student, auth_headers):
    resp = api.get("/v1/dashboard", headers=auth_headers(active_student))

    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "FORBIDDEN"


def test_dashboard_requires_login(api):
    assert api.get("/v1/dashboard").status_code == 401


def test_dashboard_lists_pool_invites_and_students(api, db, settings, partner, active_student, auth_headers):
    settings.global_seat_cap = 10
    db.add(InviteCode(code="K7MX2QPA", created_by_user_id=partner.id, allotted_days=30))
    db.commit()

    resp = api.get("/v1/dashboard", headers=auth_headers(partner))

    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["seat_pool"] == {"active": 1, "cap": 10, "available": 9}
    assert [item["code"] for item in data["invites"]] == ["K7MX2QPA"]
    assert [item["email"] for item in data["students"]] == [active_student.email]


def test_create_invites_requires_dashboard_token(api, db, partner, auth_headers):
    resp = api.post("/v1/dashboard/invites", json={"quantity": 2, "allotted_days": 30}, headers=auth_headers(partner))

    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "INVALID_FORM_TOKEN"
    assert db.query(InviteCode).count() == 0


def test_dashboard_token_is_bound_to_operator(api, db, partner, make_user, auth_headers):
    other = make_user(account_role=ROLE_PARTNER_ADMIN)
    headers = auth_headers(partner)
    headers["X-Form-Token"] = auth_headers(other, dashboard=True)["X-Form-Token"]

    resp = api.post("/v1/dashboard/invites", json={"quantity": 1}, headers=headers)

    assert resp.status_code == 403
    assert db.query(InviteCode).count() == 0


def test_create_invites(api, partner, auth_headers):
    headers = auth_headers(partner)
    headers["X-Form-Token"] = api.get("/v1/dashboard/form-token", headers=headers).json()["form_token"]

    resp = api.post("/v1/dashboard/invites", json={"quantity": 3, "allotted_days": 45}, headers=headers)

    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["count"] == 3
    assert {item["allotted_days"] for item in data["codes"]} == {45}
    assert {item["created_by_user_id"] for item in data["codes"]} == {partner.id}


def test_create_invites_rejects_oversized_batch(api, partner, auth_headers):
    resp = api.post("/v1/dashboard/invites", json={"quantity": 11}, headers=auth_headers(partner, dashboard=True))

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


def test_administrator_can_manage(api, make_user, auth_headers):
    admin = make_user(account_role=ROLE_ADMINISTRATOR)

    resp = api.post("/v1/dashboard/invites", json={"quantity": 1}, headers=auth_headers(admin, dashboard=True))

    assert resp.status_code == 201, resp.text


def test_revoke_student(api, db, enrollment, partner, active_student, courses, auth_headers):
    enroll_in_all_courses(enrollment, active_student.id)
    headers = auth_headers(partner, dashboard=True)

    resp = api.post(f"/v1/dashboard/users/{active_student.id}/revoke", headers=headers)

    assert resp.status_code == 200, resp.text
    assert resp.json()["membership"]["state"] == MEMBERSHIP_EXPIRED
    db.refresh(active_student)
    assert active_student.membership_state == MEMBERSHIP_EXPIRED
    assert active_course_ids(db, active_student.id) == set()

    again = api.post(f"/v1/dashboard/users/{active_student.id}/revoke", headers=headers)
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "NOT_ACTIVE"


def test_revoke_assigns_manager_to_legacy_student(api, db, partner, make_user, auth_headers):
    legacy = make_user(manager_id=None, expiry_at=None)

    resp = api.post(f"/v1/dashboard/users/{legacy.id}/revoke", headers=auth_headers(partner, dashboard=True))

    assert resp.status_code == 200, resp.text
    db.refresh(legacy)
    assert legacy.manager_id == partner.id


def test_revoke_unknown_or_non_student(api, partner, make_user, auth_headers):
    other_admin = make_user(account_role=ROLE_PARTNER_ADMIN)
    headers = auth_headers(partner, dashboard=True)

    assert api.post("/v1/dashboard/users/9999/revoke", headers=headers).status_code == 404
    assert api.post(f"/v1/dashboard/users/{other_admin.id}/revoke", headers=headers).status_code == 404


def test_update_expiry(api, db, partner, active_student, now, auth_headers):
    active_student.expiry_notice_sent_at = now
    active_student.expiry_notice_expiry_at = active_student.expiry_at
    db.commit()
    new_date = (now + timedelta(days=40)).date()

    resp = api.put(
        f"/v1/dashboard/users/{active_student.id}/expiry",
        json={"expiry_date": new_date.isoformat()},
        headers=auth_headers(partner, dashboard=True),
    )

    assert resp.status_code == 200, resp.text
    db.refresh(active_student)
    assert active_student.expiry_at.date() == new_date
    assert (active_student.expiry_at.hour, active_student.expiry_at.minute) == (23, 59)
    assert active_student.expiry_notice_sent_at is None
    assert active_student.expiry_notice_expiry_at is None


def test_update_expiry_rejects_past_date(api, db, partner, active_student, now, auth_headers):
    before = active_student.expiry_at

    resp = api.put(
        f"/v1/dashboard/users/{active_student.id}/expiry",
        json={"expiry_date": (now - timedelta(days=2)).date().isoformat()},
        headers=auth_headers(partner, dashboard=True),
    )

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_DATE"
    db.refresh(active_student)
    assert active_student.expiry_at == before


def test_reenrol(api, db, partner, make_user, courses, now, auth_headers):
    student = make_user(manager_id=partner.id, membership_state=MEMBERSHIP_EXPIRED, expiry_at=now - timedelta(days=2))
    headers = auth_headers(partner, dashboard=True)

    resp = api.post(f"/v1/dashboard/users/{student.id}/reenrol", json={"days": 30}, headers=headers)

    assert resp.status_code == 200, resp.text
    assert resp.json()["membership"]["active"] is True
    db.refresh(student)
    assert student.membership_state == MEMBERSHIP_ACTIVE
    assert active_course_ids(db, student.id) == {course.id for course in courses}

    again = api.post(f"/v1/dashboard/users/{student.id}/reenrol", json={"days": 30}, headers=headers)
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "ALREADY_ACTIVE"


def test_reenrol_respects_seat_cap(api, db, settings, partner, active_student, make_user, now, auth_headers):
    settings.global_seat_cap = 1
    student = make_user(manager_id=partner.id, membership_state=MEMBERSHIP_EXPIRED, expiry_at=now - timedelta(days=2))

    resp = api.post(
        f"/v1/dashboard/users/{student.id}/reenrol", json={"days": 30}, headers=auth_headers(partner, dashboard=True)
    )

    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "SEAT_POOL_FULL"
    db.refresh(student)
    assert student.membership_state == MEMBERSHIP_EXPIRED


def test_create_user_manually(api, db, outbox, partner, courses, auth_headers):
    resp = api.post(
        "/v1/dashboard/users",
        json={"email": "Manual.Student@example.com", "first_name": "Grace", "last_name": "Hopper", "days": 90},
        headers=auth_headers(partner, dashboard=True),
    )

    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["email"] == "manual.student@example.com"
    assert data["manager_id"] == partner.id
    assert data["membership"]["days_remaining"] == 90

    user = db.execute(select(User).where(User.email == "manual.student@example.com")).scalars().one()
    assert active_course_ids(db, user.id) == {course.id for course in courses}

    credentials = outbox.to("manual.student@example.com")
    assert len(credentials) == 1
    password = credentials[0].body.split("Temporary password: ")[1].split()[0]
    assert verify_password(password, user.password_hash)
    assert len(outbox.to(partner.email)) == 1


def test_create_user_with_taken_email(api, partner, active_student, auth_headers):
    resp = api.post(
        "/v1/dashboard/users",
        json={"email": active_student.email, "first_name": "Grace", "last_name": "Hopper", "days": 30},
        headers=auth_headers(partner, dashboard=True),
    )

    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "EMAIL_ALREADY_REGISTERED"


def test_create_user_in_full_pool(api, db, settings, partner, active_student, auth_headers):
    settings.global_seat_cap = 1

    resp = api.post(
        "/v1/dashboard/users",
        json={"email": "late@example.com", "first_name": "Grace", "last_name": "Hopper", "days": 30},
        headers=auth_headers(partner, dashboard=True),
    )

    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "SEAT_POOL_FULL"
    assert db.execute(select(User).where(User.email == "late@example.com")).scalars().first() is None


def test_delete_invite(api, db, partner, active_student, now, auth_headers):
    free = InviteCode(code="FREE2345", created_by_user_id=partner.id, allotted_days=30)
    taken = InviteCode(
        code="TAKEN234",
        created_by_user_id=partner.id,
        allotted_days=30,
        used=True,
        used_by_user_id=active_student.id,
        used_at=now,
    )
    db.add_all([free, taken])
    db.commit()
    headers = auth_headers(partner, dashboard=True)

    conflict = api.delete(f"/v1/dashboard/invites/{taken.id}", headers=headers)
    assert conflict.status_code == 409
    assert conflict.json()["error"]["code"] == "INVITE_IN_USE"

    resp = api.delete(f"/v1/dashboard/invites/{free.id}", headers=headers)
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"deleted": True}
    assert db.get(InviteCode, free.id) is None
    assert db.get(InviteCode, taken.id) is not None
