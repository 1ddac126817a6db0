"""Credential store tests against a real SQLite database."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from app.database import Database
from app.db_models import User
from app.errors import DuplicateEmail, NotFound, StorageUnavailable
from app.models import WatchlistEntry
from app.services.users import UserRepository


@pytest.fixture
async def database(database_url, anyio_backend):
    database = Database(database_url)
    await database.create_all()
    try:
        yield database
    finally:
        await database.dispose()


@pytest.fixture
def repository(database: Database) -> UserRepository:
    return UserRepository(database.session_factory)


@pytest.mark.anyio("asyncio")
async def test_create_and_find_user(repository: UserRepository) -> None:
    created = await repository.create_user("Ada", "ada@example.com", "hash")

    by_email = await repository.find_user_by_email("ada@example.com")
    by_id = await repository.find_user_by_id(created.id)

    assert by_email.id == created.id == by_id.id
    assert by_email.name == "Ada"
    assert by_email.password_hash == "hash"
    assert await repository.list_watchlist(created.id) == []


@pytest.mark.anyio("asyncio")
async def test_duplicate_email_creates_no_second_record(
    repository: UserRepository, database: Database
) -> None:
    first = await repository.create_user("Ada", "ada@example.com", "hash")

    with pytest.raises(DuplicateEmail):
        await repository.create_user("Imposter", "ada@example.com", "other")

    async with database.session() as session:
        count = await session.scalar(select(func.count()).select_from(User))
    assert count == 1
    assert (await repository.find_user_by_email("ada@example.com")).id == first.id


@pytest.mark.anyio("asyncio")
async def test_missing_users_raise_not_found(repository: UserRepository) -> None:
    with pytest.raises(NotFound):
        await repository.find_user_by_email("ghost@example.com")
    with pytest.raises(NotFound):
        await repository.find_user_by_id("does-not-exist")
    with pytest.raises(NotFound):
        await repository.add_watchlist_entry(
            "does-not-exist", WatchlistEntry(item_id=1, item_kind="movie")
        )


@pytest.mark.anyio("asyncio")
async def test_add_entry_is_idempotent_and_keeps_storage_order(
    repository: UserRepository,
) -> None:
    user = await repository.create_user("Ada", "ada@example.com", "hash")
    fight_club = WatchlistEntry(item_id=550, item_kind="movie")
    inception = WatchlistEntry(item_id=27205, item_kind="movie")
    same_id_show = WatchlistEntry(item_id=550, item_kind="tv")

    assert await repository.add_watchlist_entry(user.id, fight_club) is True
    for _ in range(3):
        assert await repository.add_watchlist_entry(user.id, fight_club) is False
    assert await repository.add_watchlist_entry(user.id, inception) is True
    assert await repository.add_watchlist_entry(user.id, same_id_show) is True

    assert await repository.list_watchlist(user.id) == [
        fight_club,
        inception,
        same_id_show,
    ]


@pytest.mark.anyio("asyncio")
async def test_unique_constraint_absorbs_lost_race(
    repository: UserRepository, monkeypatch
) -> None:
    """An insert that loses to a concurrent add collapses into a no-op."""

    user = await repository.create_user("Ada", "ada@example.com", "hash")
    entry = WatchlistEntry(item_id=550, item_kind="movie")
    await repository.add_watchlist_entry(user.id, entry)

    original = UserRepository._has_entry
    calls = {"count": 0}

    async def stale_check(session, user_id, candidate):
        # The first existence check observes the pre-race state.
        calls["count"] += 1
        if calls["count"] == 1:
            return False
        return await original(session, user_id, candidate)

    monkeypatch.setattr(UserRepository, "_has_entry", staticmethod(stale_check))

    assert await repository.add_watchlist_entry(user.id, entry) is False
    assert calls["count"] == 2
    assert await repository.list_watchlist(user.id) == [entry]


@pytest.mark.anyio("asyncio")
async def test_save_user_persists_changes(repository: UserRepository) -> None:
    user = await repository.create_user("Ada", "ada@example.com", "hash")
    user.name = "Ada Lovelace"

    await repository.save_user(user)

    assert (await repository.find_user_by_id(user.id)).name == "Ada Lovelace"


@pytest.mark.anyio("asyncio")
async def test_unreachable_storage_surfaces_storage_unavailable(tmp_path) -> None:
    database = Database(
        f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nested' / 'db.sqlite'}"
    )
    repository = UserRepository(database.session_factory)
    try:
        with pytest.raises(StorageUnavailable):
            await repository.find_user_by_email("ada@example.com")
        with pytest.raises(StorageUnavailable):
            await repository.create_user("Ada", "ada@example.com", "hash")
        with pytest.raises(StorageUnavailable):
            await repository.list_watchlist("user")
        with pytest.raises(StorageUnavailable):
            await repository.add_watchlist_entry(
                "user", WatchlistEntry(item_id=550, item_kind="movie")
            )
    finally:
        await database.dispose()
