"""Course enrollment adapter.

One implementation is chosen from ``settings.enrollment_backend`` when the
adapter is built: ``database`` writes the local ``enrollments`` table, ``http``
talks to a remote LMS. Adapter failures surface as ``RecoverableError`` so the
callers can log them without undoing the membership change they follow.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import RecoverableError
from app.models import ENROLLMENT_ACTIVE, ENROLLMENT_REVOKED, Course, Enrollment

logger = logging.getLogger(__name__)


class EnrollmentAdapter(Protocol):
    def enroll(self, user_id: int, course_id: int) -> None: ...

    def unenroll(self, user_id: int, course_id: int) -> None: ...

    def list_all_course_ids(self) -> list[int]: ...

    def list_enrolled_course_ids(self, user_id: int) -> list[int]: ...


class DatabaseEnrollmentAdapter:
    def __init__(self, db: Session):
        self.db = db

    def _get(self, user_id: int, course_id: int) -> Enrollment | None:
        return self.db.execute(
            select(Enrollment).where(Enrollment.user_id == user_id, Enrollment.course_id == course_id)
        ).scalars().first()

    def enroll(self, user_id: int, course_id: int) -> None:
        try:
            enrollment = self._get(user_id, course_id)
            if enrollment is None:
                self.db.add(Enrollment(user_id=user_id, course_id=course_id, status=ENROLLMENT_ACTIVE))
            elif enrollment.status != ENROLLMENT_ACTIVE:
                enrollment.status = ENROLLMENT_ACTIVE
            else:
                return
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RecoverableError(f"enroll user {user_id} in course {course_id} failed") from exc

    def unenroll(self, user_id: int, course_id: int) -> None:
        try:
            enrollment = self._get(user_id, course_id)
            if enrollment is None or enrollment.status == ENROLLMENT_REVOKED:
                return
            enrollment.status = ENROLLMENT_REVOKED
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RecoverableError(f"unenroll user {user_id} from course {course_id} failed") from exc

    def list_all_course_ids(self) -> list[int]:
        try:
            return list(
                self.db.execute(select(Course.id).where(Course.is_active.is_(True)).order_by(Course.id)).scalars()
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RecoverableError("listing courses failed") from exc

    def list_enrolled_course_ids(self, user_id: int) -> list[int]:
        # Includes courses deactivated since enrollment.
        try:
            return list(
                self.db.execute(
                    select(Enrollment.course_id)
                    .where(Enrollment.user_id == user_id, Enrollment.status == ENROLLMENT_ACTIVE)
                    .order_by(Enrollment.course_id)
                ).scalars()
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RecoverableError(f"listing enrollments of user {user_id} failed") from exc


class HttpEnrollmentAdapter:
    """Remote LMS speaking a small JSON API under ``settings.lms_base_url``."""

    def __init__(self, settings: Settings, client: httpx.Client | None = None):
        self.client = client or httpx.Client(
            base_url=settings.lms_base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {settings.lms_api_key}"} if settings.lms_api_key else {},
            timeout=settings.lms_timeout_seconds,
        )

    def enroll(self, user_id: int, course_id: int) -> None:
        try:
            resp = self.client.post("/enrollments", json={"user_id": user_id, "course_id": course_id})
            # 409: already enrolled
            if resp.status_code != 409:
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise RecoverableError(f"enroll user {user_id} in course {course_id} failed") from exc

    def unenroll(self, user_id: int, course_id: int) -> None:
        try:
            resp = self.client.delete(f"/enrollments/{user_id}/{course_id}")
            if resp.status_code != 404:
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise RecoverableError(f"unenroll user {user_id} from course {course_id} failed") from exc

    def list_all_course_ids(self) -> list[int]:
        try:
            resp = self.client.get("/courses")
            resp.raise_for_status()
            return [int(item["id"]) for item in resp.json().get("courses", [])]
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            raise RecoverableError("listing courses failed") from exc

    def list_enrolled_course_ids(self, user_id: int) -> list[int]:
        try:
            resp = self.client.get(f"/enrollments/{user_id}")
            resp.raise_for_status()
            return [int(item["course_id"]) for item in resp.json().get("enrollments", [])]
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            raise RecoverableError(f"listing enrollments of user {user_id} failed") from exc


def build_enrollment_adapter(settings: Settings, db: Session) -> EnrollmentAdapter:
    if settings.enrollment_backend == "database":
        return DatabaseEnrollmentAdapter(db)
    if settings.enrollment_backend == "http":
        if not settings.lms_base_url:
            raise ValueError("LMS base URL not configured")
        return HttpEnrollmentAdapter(settings)
    raise ValueError(f"Unsupported enrollment backend: {settings.enrollment_backend}")


def enroll_in_all_courses(adapter: EnrollmentAdapter, user_id: int) -> int:
    """Best-effort enrollment in every course; returns how many succeeded."""
    try:
        course_ids = adapter.list_all_course_ids()
    except RecoverableError:
        logger.exception("Could not list courses while enrolling user %s", user_id)
        return 0

    enrolled = 0
    for course_id in course_ids:
        try:
            adapter.enroll(user_id, course_id)
            enrolled += 1
        except RecoverableError:
            logger.exception("Enrollment of user %s in course %s failed", user_id, course_id)
    return enrolled


def remove_all_enrollments(adapter: EnrollmentAdapter, user_id: int) -> int:
    """Revoke every enrollment the user holds, whether or not the course is still active."""
    try:
        course_ids = adapter.list_enrolled_course_ids(user_id)
    except RecoverableError:
        logger.exception("Could not list enrollments while unenrolling user %s", user_id)
        return 0

    removed = 0
    for course_id in course_ids:
        try:
            adapter.unenroll(user_id, course_id)
            removed += 1
        except RecoverableError:
            logger.exception("Removing user %s from course %s failed", user_id, course_id)
    return removed
