"""Authentication utilities: password hashing, JWT tokens, TOTP verification, read-API keys."""

import hmac
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt
import pyotp

from backend.config import settings


def hash_password(password: str) -> str:
    pw = password.encode("utf-8")[:72]
    return bcrypt.hashpw(pw, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    pw = plain.encode("utf-8")[:72]
    return bcrypt.checkpw(pw, hashed.encode("utf-8"))


def create_access_token(subject: str) -> str:
    issued = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "iat": issued,
        "exp": issued + timedelta(minutes=settings.jwt_expire_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> str | None:
    """Decode JWT and return the subject (username). Returns None on failure."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        return payload.get("sub")
    except JWTError:
        return None


def verify_totp(secret: str, code: str) -> bool:
    totp = pyotp.TOTP(secret)
    return totp.verify(code, valid_window=1)


def generate_totp_secret() -> str:
    return pyotp.random_base32()


def get_totp_uri(secret: str, username: str) -> str:
    return pyotp.TOTP(secret).provisioning_uri(
        name=username,
        issuer_name="Account Monitor",
    )


def generate_api_key() -> str:
    """New random key for the read API (add it to MON_API_KEYS)."""
    return f"mon_{secrets.token_urlsafe(32)}"


def verify_api_key(candidate: str | None) -> bool:
    if not candidate:
        return False
    # Compare against every key so timing doesn't reveal which one matched
    matched = False
    for key in settings.api_keys:
        if key and hmac.compare_digest(candidate.encode(), key.encode()):
            matched = True
    return matched


def verify_cron_secret(authorization: str | None) -> bool:
    """Check an ``Authorization: Bearer <secret>`` header from an external cron."""
    if not settings.cron_secret or not authorization:
        return False
    return hmac.compare_digest(authorization.encode(), f"Bearer {settings.cron_secret}".encode())
