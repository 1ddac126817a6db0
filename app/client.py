"""Client-side session handling and watchlist cache for the ReelWatch API.

This module plays the part of the browser front-end: it keeps the current
session and a local shadow watchlist in a durable key-value file, talks to
the backend over HTTP, and never merges the local and server watchlists on
its own.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable

import httpx
from pydantic import ValidationError

from .errors import Unauthenticated
from .models import CatalogQuery, ItemKind, WatchlistEntry
from .services.tmdb import POSTER_BASE_URL

logger = logging.getLogger(__name__)

CURRENT_USER_KEY = "currentUser"
WATCHLIST_KEY = "watchlist"
PLACEHOLDER_POSTER = "https://via.placeholder.com/300x450?text=No+Image"


class ClientAuthError(Exception):
    """The backend rejected an auth or watchlist request."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


class LocalStore:
    """Durable JSON key-value store; values never expire."""

    def __init__(self, path: Path | str):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable local store at %s", self._path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp_path.replace(self._path)

    def get(self, key: str, default: Any = None) -> Any:
        return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)


@dataclass(slots=True)
class SessionUser:
    name: str
    token: str

    def to_payload(self) -> dict[str, str]:
        return {"name": self.name, "token": self.token}


@dataclass
class SessionContext:
    """Current user plus the local watchlist, loaded once and saved on change."""

    store: LocalStore
    user: SessionUser | None = None
    watchlist: list[WatchlistEntry] = field(default_factory=list)

    @classmethod
    def load(cls, store: LocalStore) -> "SessionContext":
        user: SessionUser | None = None
        raw_user = store.get(CURRENT_USER_KEY)
        if isinstance(raw_user, dict):
            name, token = raw_user.get("name"), raw_user.get("token")
            if isinstance(token, str) and token:
                user = SessionUser(name=str(name or ""), token=token)

        entries: list[WatchlistEntry] = []
        raw_entries = store.get(WATCHLIST_KEY) or []
        if isinstance(raw_entries, list):
            for raw in raw_entries:
                try:
                    entry = WatchlistEntry.model_validate(raw)
                except ValidationError:
                    logger.debug("Dropping malformed local watchlist entry %r", raw)
                    continue
                if entry not in entries:
                    entries.append(entry)
        return cls(store=store, user=user, watchlist=entries)

    @property
    def authenticated(self) -> bool:
        return self.user is not None

    @property
    def token(self) -> str | None:
        return self.user.token if self.user else None

    def save(self) -> None:
        if self.user is None:
            self.store.remove(CURRENT_USER_KEY)
        else:
            self.store.set(CURRENT_USER_KEY, self.user.to_payload())
        self.store.set(
            WATCHLIST_KEY, [entry.to_payload() for entry in self.watchlist]
        )

    def sign_in(self, name: str, token: str) -> None:
        self.user = SessionUser(name=name, token=token)
        self.save()

    def sign_out(self) -> None:
        """Forget the session; the local watchlist is kept."""

        self.user = None
        self.save()

    def add_local(self, entry: WatchlistEntry) -> bool:
        """Append ``entry`` to the local cache unless already present.

        Raises :class:`Unauthenticated` without touching the cache when no
        session exists. Returns ``True`` if the entry was appended.
        """

        if not self.authenticated:
            raise Unauthenticated("Login required")
        if entry in self.watchlist:
            return False
        self.watchlist.append(entry)
        self.save()
        return True


@dataclass(slots=True)
class RenderedItem:
    """Display metadata for one watchlist entry."""

    item_id: int
    item_kind: ItemKind
    title: str
    poster_url: str
    rating: float | None

    def to_card(self) -> dict[str, Any]:
        return {
            "id": self.item_id,
            "title": self.title,
            "poster": self.poster_url,
            "vote_average": self.rating,
            "_type": self.item_kind,
        }


class BrowserClient:
    """Backend client holding an explicit :class:`SessionContext`."""

    def __init__(self, http_client: httpx.AsyncClient, context: SessionContext):
        self._client = http_client
        self.context = context

    async def fetch_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        fallback: Any = None,
    ) -> Any:
        """GET ``path`` and return its JSON, or ``fallback`` on any failure."""

        if fallback is None:
            fallback = {"results": []}
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            logger.warning("Request to %s failed: %s", path, exc)
            return fallback
        if response.status_code >= 400:
            return fallback
        try:
            return response.json()
        except ValueError:
            return fallback

    async def trending(self, content_type: ItemKind = "movie") -> list[dict[str, Any]]:
        data = await self.fetch_json("/api/trending", {"type": content_type})
        return _results(data)

    async def browse(self, query: CatalogQuery) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"type": query.content_type, "page": query.page}
        for key in ("search", "genre", "rating", "language", "mood"):
            value = getattr(query, key)
            if value is not None:
                params[key] = value
        data = await self.fetch_json("/api/movies", params)
        return _results(data)

    async def details(self, content_type: ItemKind, item_id: int) -> dict[str, Any]:
        data = await self.fetch_json(
            f"/api/movie/{item_id}", {"type": content_type}, fallback={}
        )
        return data if isinstance(data, dict) else {}

    async def home(
        self, content_type: ItemKind = "movie", *, limit: int = 10
    ) -> dict[str, list[dict[str, Any]]]:
        """Load the three home rows: trending, popular and recommended."""

        trending, popular, recommended = await asyncio.gather(
            self.trending(content_type),
            self.browse(CatalogQuery(content_type=content_type, page=1)),
            self.browse(CatalogQuery(content_type=content_type, rating=7)),
        )
        return {
            "trending": trending[:limit],
            "popular": popular[:limit],
            "recommended": recommended[:limit],
        }

    async def signup(self, email: str, password: str, name: str | None = None) -> str:
        return await self._authenticate(
            "/api/auth/signup", {"name": name or "", "email": email, "password": password}
        )

    async def login(self, email: str, password: str) -> str:
        return await self._authenticate(
            "/api/auth/login", {"email": email, "password": password}
        )

    def logout(self) -> None:
        self.context.sign_out()

    async def add_to_watchlist(
        self, entry: WatchlistEntry, *, remote: bool = False
    ) -> bool:
        """Add to the local cache and, when asked, to the server list too.

        The local add always happens first and is not rolled back if the
        server call fails.
        """

        added = self.context.add_local(entry)
        if remote:
            response = await self._send(
                "POST", "/api/watchlist", json=entry.to_payload()
            )
            _raise_for_auth(response)
        return added

    async def remote_watchlist(self) -> list[WatchlistEntry]:
        """Return the server-side watchlist for the current session."""

        response = await self._send("GET", "/api/watchlist")
        _raise_for_auth(response)
        payload = response.json()
        if not isinstance(payload, list):
            return []
        return [WatchlistEntry.model_validate(raw) for raw in payload]

    async def pull_watchlist(self) -> list[WatchlistEntry]:
        """Replace the local cache with the server list; an explicit step only."""

        entries = await self.remote_watchlist()
        self.context.watchlist = list(entries)
        self.context.save()
        return entries

    async def render_watchlist(
        self, entries: list[WatchlistEntry] | None = None
    ) -> list[RenderedItem]:
        """Resolve display metadata per entry, skipping any that fail."""

        if entries is None:
            if not self.context.authenticated:
                raise Unauthenticated("Login required")
            entries = self.context.watchlist
        rendered: list[RenderedItem] = []
        for entry in entries:
            data = await self.details(entry.item_kind, entry.item_id)
            details = data.get("details")
            if not isinstance(details, dict):
                logger.info(
                    "Skipping %s %s: no catalog details", entry.item_kind, entry.item_id
                )
                continue
            poster_path = details.get("poster_path")
            rendered.append(
                RenderedItem(
                    item_id=entry.item_id,
                    item_kind=entry.item_kind,
                    title=str(details.get("title") or details.get("name") or ""),
                    poster_url=(
                        f"{POSTER_BASE_URL}{poster_path}"
                        if poster_path
                        else PLACEHOLDER_POSTER
                    ),
                    rating=details.get("vote_average"),
                )
            )
        return rendered

    async def _authenticate(self, path: str, body: dict[str, Any]) -> str:
        if not body.get("email") or not body.get("password"):
            raise ClientAuthError(400, "Email and password required")
        try:
            response = await self._client.post(path, json=body)
        except httpx.HTTPError as exc:
            raise ClientAuthError(503, "Backend unreachable") from exc
        data = _json_object(response)
        if response.status_code >= 400:
            raise ClientAuthError(response.status_code, str(data.get("msg") or "Auth failed"))
        name, token = data.get("name"), data.get("token")
        if not isinstance(token, str) or not token:
            raise ClientAuthError(502, "Backend returned no token")
        self.context.sign_in(str(name or ""), token)
        return self.context.user.name  # type: ignore[union-attr]

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        token = self.context.token
        if not token:
            raise Unauthenticated("Login required")
        headers = {"Authorization": f"Bearer {token}"}
        try:
            return await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise ClientAuthError(503, "Backend unreachable") from exc


class BrowseCursor:
    """Page-by-page browsing state for an infinite-scroll grid."""

    def __init__(self, client: BrowserClient, query: CatalogQuery | None = None):
        self._client = client
        self.query = query or CatalogQuery()
        self.items: list[dict[str, Any]] = []
        self._loading = False

    @property
    def loading(self) -> bool:
        return self._loading

    async def load_more(self) -> list[dict[str, Any]]:
        """Fetch the current page and advance; concurrent calls are dropped."""

        if self._loading:
            return []
        self._loading = True
        try:
            results = await self._client.browse(self.query)
            self.items.extend(results)
            if results:
                self.query = self.query.model_copy(update={"page": self.query.page + 1})
            return results
        finally:
            self._loading = False

    def reset(self, **filters: Any) -> None:
        """Apply new filters and start again from the first page."""

        data = self.query.model_dump()
        data.update(filters)
        data["page"] = 1
        self.query = CatalogQuery.model_validate(data)
        self.items = []


class Debouncer:
    """Collapse rapid successive calls into one call after a quiet period."""

    def __init__(self, delay: float, callback: Callable[..., Awaitable[Any]]):
        self._delay = delay
        self._callback = callback
        self._timer: asyncio.Task[None] | None = None
        self._running: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        """Whether a call is still waiting out its quiet period."""

        return self._timer is not None and not self._timer.done()

    @property
    def running(self) -> int:
        return len(self._running)

    def trigger(self, *args: Any, **kwargs: Any) -> None:
        self.cancel()
        self._timer = asyncio.create_task(self._wait_then_fire(args, kwargs))

    def cancel(self) -> None:
        """Drop the waiting call; callbacks that already started keep running."""

        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _wait_then_fire(
        self, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> None:
        await asyncio.sleep(self._delay)
        task = asyncio.create_task(self._fire(args, kwargs))
        self._running.add(task)
        task.add_done_callback(self._finished)

    async def _fire(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        await self._callback(*args, **kwargs)

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._running.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Debounced callback failed", exc_info=exc)


def _results(data: Any) -> list[dict[str, Any]]:
    if not isinstance(data, dict):
        return []
    results = data.get("results")
    if not isinstance(results, list):
        return []
    return [item for item in results if isinstance(item, dict)]


def _json_object(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _raise_for_auth(response: httpx.Response) -> None:
    if response.status_code >= 400:
        data = _json_object(response)
        raise ClientAuthError(
            response.status_code, str(data.get("msg") or "Request failed")
        )
