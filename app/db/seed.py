from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import Course, SeatPoolLock
from app.services.seat_pool import SEAT_POOL_LOCK_ID


def seed_if_needed(db: Session) -> None:
    if db.get(SeatPoolLock, SEAT_POOL_LOCK_ID) is None:
        db.add(SeatPoolLock(id=SEAT_POOL_LOCK_ID))

    existing_course = db.execute(select(Course).where(Course.course_code == "IELTS-AC")).scalars().first()
    if existing_course:
        return

    db.add_all(
        [
            Course(
                course_code="IELTS-AC",
                title="IELTS Academic Preparation",
                description="Reading, writing, listening and speaking practice for the Academic module.",
                is_active=True,
            ),
            Course(
                course_code="IELTS-GT",
                title="IELTS General Training Preparation",
                description="Practice tests and strategies for the General Training module.",
                is_active=True,
            ),
        ]
    )
