"""Server-side watchlist operations guarded by session tokens."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from ..errors import Forbidden, InvalidToken, Unauthenticated
from ..models import WatchlistEntry
from ..security import SessionIssuer
from .users import UserRepository

logger = logging.getLogger(__name__)


class WatchlistService:
    """Authoritative per-user watchlist.

    The server list is never merged with any client-side cache; clients
    reconcile only through explicit ``add_entry`` and ``list_entries`` calls.
    """

    def __init__(self, users: UserRepository, sessions: SessionIssuer):
        self._users = users
        self._sessions = sessions
        # user id -> (lock, number of callers holding or awaiting it)
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    def authenticate(self, token: str | None) -> str:
        """Return the user id bound to ``token``.

        A missing token raises :class:`Unauthenticated`; a token that does
        not verify raises :class:`Forbidden`.
        """

        if not token:
            raise Unauthenticated()
        try:
            return self._sessions.verify(token)
        except InvalidToken as exc:
            logger.debug("Rejected session token: %s", exc)
            raise Forbidden() from exc

    async def add_entry(self, token: str | None, entry: WatchlistEntry) -> bool:
        """Add ``entry`` to the caller's list; duplicates are a no-op.

        Returns ``True`` if the entry was new. The record is persisted
        before this returns.
        """

        user_id = self.authenticate(token)
        user = await self._users.find_user_by_id(user_id)
        async with self._user_lock(user.id):
            added = await self._users.add_watchlist_entry(user.id, entry)
        if added:
            logger.info(
                "Added %s %s to watchlist of %s", entry.item_kind, entry.item_id, user.id
            )
        return added

    async def list_entries(self, token: str | None) -> list[WatchlistEntry]:
        """Return the caller's entries in storage order."""

        user_id = self.authenticate(token)
        user = await self._users.find_user_by_id(user_id)
        return await self._users.list_watchlist(user.id)

    @property
    def active_locks(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def _user_lock(self, user_id: str) -> AsyncIterator[None]:
        lock, holders = self._locks.get(user_id, (asyncio.Lock(), 0))
        self._locks[user_id] = (lock, holders + 1)
        try:
            async with lock:
                yield
        finally:
            lock, holders = self._locks[user_id]
            if holders == 1:
                del self._locks[user_id]
            else:
                self._locks[user_id] = (lock, holders - 1)
