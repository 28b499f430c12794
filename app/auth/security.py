"""Password hashing and bearer tokens."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from app.config import settings

logger = logging.getLogger(__name__)


@dataclass
class TokenPayload:
    user_id: int
    username: str
    role: str


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=10)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Malformed hash in the database
        return False


def generate_token(payload: TokenPayload, now: datetime | None = None) -> str:
    issued = now or datetime.now(timezone.utc)
    claims = {
        "userId": payload.user_id,
        "username": payload.username,
        "role": payload.role,
        "iat": issued,
        "exp": issued + timedelta(hours=settings.jwt_expiry_hours),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> TokenPayload | None:
    """Decode a token; None when it is invalid or expired."""
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired token")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected invalid token: {e}")
        return None

    try:
        return TokenPayload(
            user_id=int(claims["userId"]),
            username=str(claims["username"]),
            role=str(claims["role"]),
        )
    except (KeyError, TypeError, ValueError):
        return None


def get_token_from_header(auth_header: str | None) -> str | None:
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header[len("Bearer "):]
