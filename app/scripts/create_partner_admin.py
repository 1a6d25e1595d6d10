from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Allow running this file directly: `python app/scripts/create_partner_admin.py`
if __package__ in (None, ""):
    repo_root = Path(__file__).resolve().parents[2]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

from sqlalchemy import select

from app.core.security import hash_password
from app.db.session import SessionLocal
from app.models import MEMBERSHIP_ACTIVE, ROLE_ADMINISTRATOR, ROLE_PARTNER_ADMIN, User
from app.services.membership_service import derive_username


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or update a partner admin (operator) account.")
    parser.add_argument("--email", required=True, help="Operator email")
    parser.add_argument("--password", required=True, help="Plain password (will be hashed)")
    parser.add_argument("--first-name", default="", help="First name (optional)")
    parser.add_argument("--last-name", default="", help="Last name (optional)")
    parser.add_argument(
        "--role",
        choices=[ROLE_PARTNER_ADMIN, ROLE_ADMINISTRATOR],
        default=ROLE_PARTNER_ADMIN,
        help="Account role (default: partner_admin)",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    email = args.email.strip().lower()
    first_name = args.first_name.strip()
    last_name = args.last_name.strip()
    display_name = f"{first_name} {last_name}".strip() or email.split("@")[0]

    if len(args.password) < 8:
        print("Error: password must be at least 8 characters", file=sys.stderr)
        return 2

    with SessionLocal() as db:
        user = db.execute(select(User).where(User.email == email)).scalars().first()
        created = user is None
        if user is None:
            user = User(email=email, username=derive_username(db, email))
            db.add(user)
        user.first_name = first_name
        user.last_name = last_name
        user.display_name = display_name
        user.password_hash = hash_password(args.password)
        user.account_role = args.role
        # Operators are not subject to the membership window.
        user.membership_state = MEMBERSHIP_ACTIVE
        user.expiry_at = None
        db.commit()
        user_id = user.id

    print(
        {
            "ok": True,
            "created": created,
            "id": user_id,
            "email": email,
            "role": args.role,
        }
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
