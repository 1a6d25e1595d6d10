import hashlib
import hmac
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from app.core.config import Settings

# No 0/O or 1/I, so codes survive being read aloud or copied by hand.
INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def hash_text(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def hash_password(password: str) -> str:
    iterations = 260_000
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), bytes.fromhex(salt), iterations).hex()
    return f"pbkdf2_sha256${iterations}${salt}${digest}"


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        algorithm, iterations_s, salt, expected = password_hash.split("$", 3)
        if algorithm != "pbkdf2_sha256":
            return False
        iterations = int(iterations_s)
        actual = hashlib.pbkdf2_hmac(
            "sha256",
            password.encode("utf-8"),
            bytes.fromhex(salt),
            iterations,
        ).hex()
        return hmac.compare_digest(actual, expected)
    except ValueError:
        return False


def generate_invite_code(length: int = 8) -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


def generate_temporary_password(length: int = 16) -> str:
    alphabet = string.ascii_letters + string.digits + "!@#$%^&*"
    while True:
        password = "".join(secrets.choice(alphabet) for _ in range(length))
        if any(c.isdigit() for c in password) and any(c.isupper() for c in password) and any(c.islower() for c in password):
            return password


def generate_refresh_token() -> str:
    return secrets.token_urlsafe(48)


def create_access_token(subject: str, settings: Settings, extra: dict[str, Any] | None = None) -> str:
    expire_at = now_utc() + timedelta(seconds=settings.access_token_expire_seconds)
    payload: dict[str, Any] = {"sub": subject, "exp": expire_at, "type": "access"}
    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def decode_access_token(token: str, settings: Settings) -> dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])


def create_form_token(action: str, settings: Settings, subject: str | None = None) -> str:
    """Anti-forgery token for one form action, optionally bound to a logged-in user."""
    expire_at = now_utc() + timedelta(seconds=settings.form_token_expire_seconds)
    payload: dict[str, Any] = {
        "type": "form",
        "act": action,
        "sub": subject or "",
        "exp": expire_at,
        "nonce": secrets.token_hex(8),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def verify_form_token(token: str | None, action: str, settings: Settings, subject: str | None = None) -> bool:
    if not token:
        return False
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])
    except jwt.PyJWTError:
        return False
    if payload.get("type") != "form" or payload.get("act") != action:
        return False
    return payload.get("sub", "") == (subject or "")
