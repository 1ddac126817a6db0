"""Persistence adapter for user accounts and their watchlists."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import User, WatchlistEntryRecord
from ..errors import DuplicateEmail, NotFound, StorageUnavailable
from ..models import WatchlistEntry

logger = logging.getLogger(__name__)


class UserRepository:
    """Credential store backed by SQLAlchemy.

    Every public method opens its own short-lived session; no state is
    shared between calls. Unexpected database failures are re-raised as
    :class:`StorageUnavailable` and never retried here.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create_user(self, name: str, email: str, password_hash: str) -> User:
        user = User(
            id=uuid.uuid4().hex,
            name=name,
            email=email,
            password_hash=password_hash,
        )
        try:
            async with self._session_factory() as session:
                existing = await session.scalar(
                    select(User.id).where(User.email == email)
                )
                if existing is not None:
                    raise DuplicateEmail()
                session.add(user)
                try:
                    await session.commit()
                except IntegrityError as exc:
                    # Lost a race with a concurrent signup for the same email.
                    await session.rollback()
                    raise DuplicateEmail() from exc
                await session.refresh(user, attribute_names=["watchlist"])
        except SQLAlchemyError as exc:
            logger.exception("Failed to create user %s", email)
            raise StorageUnavailable() from exc
        return user

    async def find_user_by_email(self, email: str) -> User:
        return await self._find_one(select(User).where(User.email == email))

    async def find_user_by_id(self, user_id: str) -> User:
        return await self._find_one(select(User).where(User.id == user_id))

    async def save_user(self, user: User) -> User:
        try:
            async with self._session_factory() as session:
                merged = await session.merge(user)
                await session.commit()
                return merged
        except IntegrityError as exc:
            raise DuplicateEmail() from exc
        except SQLAlchemyError as exc:
            logger.exception("Failed to save user %s", user.id)
            raise StorageUnavailable() from exc

    async def add_watchlist_entry(self, user_id: str, entry: WatchlistEntry) -> bool:
        """Append ``entry`` unless the user already tracks the same pair.

        Returns ``True`` when a row was written. The unique constraint on
        ``(user_id, item_id, item_kind)`` makes the insert atomic, so two
        concurrent adds of the same pair leave exactly one row.
        """

        try:
            async with self._session_factory() as session:
                if await self._has_entry(session, user_id, entry):
                    return False
                touched = await session.execute(
                    update(User)
                    .where(User.id == user_id)
                    .values(updated_at=datetime.utcnow())
                )
                if touched.rowcount == 0:
                    raise NotFound()
                session.add(
                    WatchlistEntryRecord(
                        user_id=user_id,
                        item_id=entry.item_id,
                        item_kind=entry.item_kind,
                    )
                )
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    if await self._has_entry(session, user_id, entry):
                        logger.debug(
                            "Concurrent add of %s:%s for %s collapsed",
                            entry.item_kind,
                            entry.item_id,
                            user_id,
                        )
                        return False
                    raise
                return True
        except NotFound:
            raise
        except SQLAlchemyError as exc:
            logger.exception("Failed to add watchlist entry for %s", user_id)
            raise StorageUnavailable() from exc

    async def list_watchlist(self, user_id: str) -> list[WatchlistEntry]:
        """Return the user's entries in storage order."""

        try:
            async with self._session_factory() as session:
                rows = await session.execute(
                    select(WatchlistEntryRecord.item_id, WatchlistEntryRecord.item_kind)
                    .where(WatchlistEntryRecord.user_id == user_id)
                    .order_by(WatchlistEntryRecord.id)
                )
                return [
                    WatchlistEntry(item_id=item_id, item_kind=item_kind)
                    for item_id, item_kind in rows.all()
                ]
        except SQLAlchemyError as exc:
            logger.exception("Failed to list watchlist for %s", user_id)
            raise StorageUnavailable() from exc

    async def _find_one(self, statement) -> User:
        try:
            async with self._session_factory() as session:
                user = await session.scalar(statement)
        except SQLAlchemyError as exc:
            logger.exception("User lookup failed")
            raise StorageUnavailable() from exc
        if user is None:
            raise NotFound()
        return user

    @staticmethod
    async def _has_entry(
        session: AsyncSession, user_id: str, entry: WatchlistEntry
    ) -> bool:
        existing = await session.scalar(
            select(WatchlistEntryRecord.id).where(
                WatchlistEntryRecord.user_id == user_id,
                WatchlistEntryRecord.item_id == entry.item_id,
                WatchlistEntryRecord.item_kind == entry.item_kind,
            )
        )
        return existing is not None
