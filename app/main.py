"""Entry point for the FastAPI-powered ReelWatch backend."""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, TypeVar

import httpx
from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from .config import settings
from .database import Database
from .errors import InvalidInput, ReelWatchError, SigningKeyMissing
from .models import CatalogQuery, ItemKind, LoginPayload, SignupPayload, WatchlistEntry
from .security import PasswordHasher, SessionIssuer, bearer_token
from .services.auth import AuthService
from .services.tmdb import TMDBClient
from .services.users import UserRepository
from .services.watchlist import WatchlistService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI

PayloadT = TypeVar("PayloadT", bound=BaseModel)


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(15.0, connect=5.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    sessions = SessionIssuer.from_settings(settings)
    if not sessions.configured:
        logger.warning("JWT_SECRET is not set; signup, login and watchlist will fail")
    users = UserRepository(database.session_factory)

    fastapi_app.state.database = database
    fastapi_app.state.tmdb_client = TMDBClient(settings, tmdb_http_client)
    fastapi_app.state.auth_service = AuthService(
        users, PasswordHasher(settings.password_hash_rounds), sessions
    )
    fastapi_app.state.watchlist_service = WatchlistService(users, sessions)

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Movie and TV browsing with accounts and a personal watchlist",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def _service(fastapi_app: FastAPI, name: str, expected: type) -> Any:
    service = getattr(fastapi_app.state, name, None)
    if not isinstance(service, expected):
        raise RuntimeError(f"{expected.__name__} not initialised")
    return service


def get_auth_service(fastapi_app: FastAPI) -> AuthService:
    return _service(fastapi_app, "auth_service", AuthService)


def get_watchlist_service(fastapi_app: FastAPI) -> WatchlistService:
    return _service(fastapi_app, "watchlist_service", WatchlistService)


def get_tmdb_client(fastapi_app: FastAPI) -> TMDBClient:
    return _service(fastapi_app, "tmdb_client", TMDBClient)


def _message(status_code: int, msg: str) -> JSONResponse:
    return JSONResponse({"msg": msg}, status_code=status_code)


def _error_response(exc: ReelWatchError) -> JSONResponse:
    return _message(exc.status_code, exc.message)


async def _read_payload(
    request: Request, model: type[PayloadT], *, invalid_message: str
) -> PayloadT:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidInput("Invalid JSON body") from exc
    if not isinstance(payload, dict):
        raise InvalidInput("Invalid JSON body")
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise InvalidInput(invalid_message) from exc


def _content_type(raw: str | None) -> ItemKind:
    value = (raw or "movie").strip().lower()
    if value not in {"movie", "tv"}:
        raise InvalidInput("Unsupported content type")
    return value  # type: ignore[return-value]


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.post("/api/auth/signup")
    async def signup(request: Request) -> JSONResponse:
        service = get_auth_service(fastapi_app)
        try:
            payload = await _read_payload(
                request, SignupPayload, invalid_message="Email and password required"
            )
            result = await service.signup(payload)
        except ReelWatchError as exc:
            return _error_response(exc)
        except SigningKeyMissing:
            logger.error("Cannot issue session: JWT_SECRET is not configured")
            return _message(500, "Server error")
        return JSONResponse(result.model_dump())

    @fastapi_app.post("/api/auth/login")
    async def login(request: Request) -> JSONResponse:
        service = get_auth_service(fastapi_app)
        try:
            payload = await _read_payload(
                request, LoginPayload, invalid_message="Email and password required"
            )
            result = await service.login(payload)
        except ReelWatchError as exc:
            return _error_response(exc)
        except SigningKeyMissing:
            logger.error("Cannot issue session: JWT_SECRET is not configured")
            return _message(500, "Server error")
        return JSONResponse(result.model_dump())

    @fastapi_app.post("/api/watchlist")
    async def add_to_watchlist(request: Request) -> JSONResponse:
        service = get_watchlist_service(fastapi_app)
        token = bearer_token(request.headers.get("authorization"))
        try:
            # Credentials are checked before the body is parsed.
            service.authenticate(token)
            entry = await _read_payload(
                request,
                WatchlistEntry,
                invalid_message="Body must be {id: integer, type: 'movie' | 'tv'}",
            )
            await service.add_entry(token, entry)
        except ReelWatchError as exc:
            return _error_response(exc)
        return JSONResponse({"success": True})

    @fastapi_app.get("/api/watchlist")
    async def list_watchlist(request: Request) -> JSONResponse:
        service = get_watchlist_service(fastapi_app)
        token = bearer_token(request.headers.get("authorization"))
        try:
            entries = await service.list_entries(token)
        except ReelWatchError as exc:
            return _error_response(exc)
        return JSONResponse([entry.to_payload() for entry in entries])

    @fastapi_app.get("/api/trending")
    async def trending(
        raw_type: str | None = Query(default=None, alias="type")
    ) -> JSONResponse:
        try:
            content_type = _content_type(raw_type)
        except InvalidInput as exc:
            return _error_response(exc)
        client = get_tmdb_client(fastapi_app)
        return JSONResponse(await client.trending(content_type))

    @fastapi_app.get("/api/movies")
    async def browse(request: Request) -> JSONResponse:
        try:
            query = CatalogQuery.from_query(request.query_params)
        except ValidationError:
            return _message(400, "Invalid browse filters")
        client = get_tmdb_client(fastapi_app)
        return JSONResponse(await client.browse(query))

    @fastapi_app.get("/api/movie/{item_id}")
    async def details(
        item_id: int, raw_type: str | None = Query(default=None, alias="type")
    ) -> JSONResponse:
        try:
            content_type = _content_type(raw_type)
        except InvalidInput as exc:
            return _error_response(exc)
        client = get_tmdb_client(fastapi_app)
        return JSONResponse(await client.details(content_type, item_id))

    @fastapi_app.exception_handler(RequestValidationError)
    async def invalid_request(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # Path and query parameters FastAPI validates before a route runs.
        return _message(400, "Invalid request")


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
