"""Password hashing and bearer session tokens."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import Settings
from .errors import InvalidToken, SigningKeyMissing

logger = logging.getLogger(__name__)


class PasswordHasher:
    """One-way credential hashing backed by passlib's bcrypt scheme."""

    def __init__(self, rounds: int = 12):
        self._context = CryptContext(
            schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds
        )

    def hash(self, plain: str) -> str:
        return self._context.hash(plain)

    def verify(self, plain: str, hashed: str) -> bool:
        """Return ``True`` only when ``plain`` matches ``hashed``."""

        try:
            return self._context.verify(plain, hashed)
        except (ValueError, TypeError):
            # Unknown or corrupt hash formats never authenticate.
            logger.warning("Stored password hash could not be parsed")
            return False

    def verify_and_update(self, plain: str, hashed: str) -> tuple[bool, str | None]:
        """Verify ``plain`` and return a replacement hash if policy changed."""

        try:
            return self._context.verify_and_update(plain, hashed)
        except (ValueError, TypeError):
            logger.warning("Stored password hash could not be parsed")
            return False, None


class SessionIssuer:
    """Issues and verifies signed tokens binding a request to a user id.

    Tokens carry the user id in the ``sub`` claim. They have no expiry
    unless ``JWT_EXPIRY_SECONDS`` is configured; rotating ``JWT_SECRET``
    invalidates every outstanding token at once.
    """

    def __init__(
        self,
        secret: str | None,
        *,
        algorithm: str = "HS256",
        expiry_seconds: int | None = None,
    ):
        self._secret = secret
        self._algorithm = algorithm
        self._expiry_seconds = expiry_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionIssuer":
        return cls(
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            expiry_seconds=settings.jwt_expiry_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self._secret)

    def issue(self, user_id: str) -> str:
        if not self._secret:
            raise SigningKeyMissing("JWT_SECRET must be configured to issue sessions")
        claims: dict[str, Any] = {"sub": user_id}
        if self._expiry_seconds:
            claims["exp"] = datetime.now(timezone.utc) + timedelta(
                seconds=self._expiry_seconds
            )
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> str:
        """Return the user id bound to ``token`` or raise :class:`InvalidToken`."""

        if not self._secret:
            # Without a secret nothing can be verified; fail closed.
            raise InvalidToken("No signing secret configured")
        if not token:
            raise InvalidToken("Empty token")
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError as exc:
            raise InvalidToken(str(exc)) from exc
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise InvalidToken("Token does not identify a user")
        return subject


def bearer_token(authorization: str | None) -> str:
    """Extract the token from an ``Authorization`` header value.

    Both ``Bearer <token>`` and a bare token are accepted.
    """

    raw = (authorization or "").strip()
    if not raw:
        return ""
    if raw.lower().startswith("bearer "):
        return raw.split(" ", 1)[1].strip()
    if raw.lower() == "bearer":
        return ""
    return raw
