"""Authentication service: JWT token management for agents, admins and buyers."""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from estate_platform.app.config import get_settings

settings = get_settings()

BUYER_ROLE = "buyer"


def create_access_token(subject_id: str, role: str) -> str:
    """Issue a bearer token. ``role`` is a UserRole value or "buyer"."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expiration_minutes)
    payload = {"sub": subject_id, "role": role, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
