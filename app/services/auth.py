"""Account signup and login."""

from __future__ import annotations

import asyncio
import logging

from ..errors import InvalidCredentials, NotFound, SigningKeyMissing
from ..models import AuthResult, LoginPayload, SignupPayload, default_display_name
from ..security import PasswordHasher, SessionIssuer
from .users import UserRepository

logger = logging.getLogger(__name__)


class AuthService:
    """Creates accounts and exchanges credentials for session tokens."""

    def __init__(
        self,
        users: UserRepository,
        hasher: PasswordHasher,
        sessions: SessionIssuer,
    ):
        self._users = users
        self._hasher = hasher
        self._sessions = sessions

    async def signup(self, payload: SignupPayload) -> AuthResult:
        """Create a user and return a session for it.

        Raises :class:`~app.errors.DuplicateEmail` when the email is taken;
        no second record is written in that case.
        """

        if not self._sessions.configured:
            raise SigningKeyMissing("JWT_SECRET must be configured to issue sessions")
        name = payload.name or default_display_name(payload.email)
        # bcrypt is CPU bound; keep it off the event loop.
        password_hash = await asyncio.to_thread(self._hasher.hash, payload.password)
        user = await self._users.create_user(name, payload.email, password_hash)
        logger.info("Created account for %s", user.email)
        return AuthResult(token=self._sessions.issue(user.id), name=user.name)

    async def login(self, payload: LoginPayload) -> AuthResult:
        try:
            user = await self._users.find_user_by_email(payload.email)
        except NotFound as exc:
            logger.info("Login rejected for unknown email %s", payload.email)
            raise InvalidCredentials() from exc

        valid, new_hash = await asyncio.to_thread(
            self._hasher.verify_and_update,
            payload.password,
            user.password_hash,
        )
        if not valid:
            logger.info("Login rejected for %s", payload.email)
            raise InvalidCredentials()
        if new_hash is not None:
            user.password_hash = new_hash
            user = await self._users.save_user(user)
            logger.info("Upgraded password hash for %s", user.email)

        return AuthResult(token=self._sessions.issue(user.id), name=user.name)
