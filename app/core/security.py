from datetime import timedelta

from jose import jwt

from app.core.config import settings
from app.core.utils import utc_now


def create_access_token(subject: str, expires_delta: timedelta | None = None) -> str:
    """Issue a bearer token for the given user id."""
    expire = utc_now() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    payload = {"sub": str(subject), "exp": expire}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> dict:
    """Decode a bearer token. Raises jose.JWTError when invalid or expired."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
