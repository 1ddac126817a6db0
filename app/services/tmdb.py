"""Pass-through client for The Movie Database (TMDB) catalog API.

Every public method degrades to an empty payload when TMDB is unreachable,
answers with an error status, returns malformed JSON, or no API key is
configured. Callers never see an exception from here.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..config import Settings
from ..models import CatalogQuery, ItemKind

logger = logging.getLogger(__name__)

POSTER_BASE_URL = "https://image.tmdb.org/t/p/w500"

# Mood presets resolve to a TMDB genre id. TV uses its own genre ids for
# the combined action/adventure and sci-fi/fantasy buckets and has no
# romance or horror genre.
MOOD_GENRES: dict[str, dict[ItemKind, int]] = {
    "happy": {"movie": 35, "tv": 35},
    "sad": {"movie": 18, "tv": 18},
    "excited": {"movie": 28, "tv": 10759},
    "adventurous": {"movie": 12, "tv": 10759},
    "scared": {"movie": 27, "tv": 9648},
    "romantic": {"movie": 10749, "tv": 18},
    "thoughtful": {"movie": 99, "tv": 99},
    "curious": {"movie": 9648, "tv": 9648},
    "relaxed": {"movie": 10751, "tv": 10751},
    "dreamy": {"movie": 14, "tv": 10765},
}


def empty_results() -> dict[str, Any]:
    return {"results": []}


def genre_for_mood(mood: str | None, content_type: ItemKind) -> int | None:
    if not mood:
        return None
    mapping = MOOD_GENRES.get(mood.lower())
    if mapping is None:
        return None
    return mapping[content_type]


class TMDBClient:
    """Client forwarding browse, search, trending and detail lookups."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client
        if not settings.tmdb_api_key:
            logger.warning("TMDB_API_KEY is not set; catalog endpoints will be empty")

    async def trending(self, content_type: ItemKind) -> dict[str, Any]:
        data = await self._get(
            f"/trending/{content_type}/{self._settings.trending_window}"
        )
        return self._tag_results(data, content_type)

    async def browse(self, query: CatalogQuery) -> dict[str, Any]:
        """Search when a term is given, otherwise discover by filters."""

        content_type = query.content_type
        genre = query.genre or genre_for_mood(query.mood, content_type)

        if query.search:
            data = await self._get(
                f"/search/{content_type}",
                {
                    "query": query.search,
                    "page": query.page,
                    "include_adult": "false",
                },
            )
            payload = self._tag_results(data, content_type)
            # Search does not accept discover filters; apply them locally.
            payload["results"] = [
                item
                for item in payload["results"]
                if self._matches_filters(item, genre, query.rating, query.language)
            ]
            return payload

        params: dict[str, Any] = {
            "page": query.page,
            "sort_by": "popularity.desc",
            "include_adult": "false",
        }
        if genre:
            params["with_genres"] = genre
        if query.rating is not None:
            params["vote_average.gte"] = query.rating
        if query.language:
            params["with_original_language"] = query.language
        data = await self._get(f"/discover/{content_type}", params)
        return self._tag_results(data, content_type)

    async def details(self, content_type: ItemKind, item_id: int) -> dict[str, Any]:
        """Aggregate details, credits, trailer key and a watch link.

        Returns ``{}`` when the item itself cannot be fetched.
        """

        base = f"/{content_type}/{item_id}"
        details, credits, videos, providers = await asyncio.gather(
            self._get(base),
            self._get(f"{base}/credits"),
            self._get(f"{base}/videos"),
            self._get(f"{base}/watch/providers"),
        )
        if not details:
            return {}
        return {
            "details": details,
            "credits": credits,
            "trailerKey": self._trailer_key(videos),
            "ottLink": self._watch_link(providers),
        }

    async def _get(
        self, path: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        api_key = self._settings.tmdb_api_key
        if not api_key:
            return None
        query: dict[str, Any] = {
            "api_key": api_key,
            "language": self._settings.tmdb_language,
        }
        if params:
            query.update(params)
        try:
            response = await self._client.get(path, params=query)
        except httpx.HTTPError as exc:
            logger.warning("TMDB request %s failed: %s", path, exc)
            return None
        if response.status_code >= 400:
            logger.warning(
                "TMDB request %s returned %s: %s",
                path,
                response.status_code,
                response.text[:200],
            )
            return None
        try:
            data = response.json()
        except ValueError:
            logger.warning("TMDB request %s returned invalid JSON", path)
            return None
        if not isinstance(data, dict):
            return None
        return data

    @staticmethod
    def _tag_results(
        data: dict[str, Any] | None, content_type: ItemKind
    ) -> dict[str, Any]:
        if not data:
            return empty_results()
        raw_results = data.get("results")
        if not isinstance(raw_results, list):
            return empty_results()
        results = [
            {**item, "_type": item.get("media_type") or content_type}
            for item in raw_results
            if isinstance(item, dict)
        ]
        payload: dict[str, Any] = {"results": results}
        for key in ("page", "total_pages", "total_results"):
            if key in data:
                payload[key] = data[key]
        return payload

    @staticmethod
    def _matches_filters(
        item: dict[str, Any],
        genre: int | None,
        rating: float | None,
        language: str | None,
    ) -> bool:
        if genre and genre not in (item.get("genre_ids") or []):
            return False
        if rating is not None:
            try:
                if float(item.get("vote_average") or 0) < rating:
                    return False
            except (TypeError, ValueError):
                return False
        if language and item.get("original_language") != language:
            return False
        return True

    @staticmethod
    def _trailer_key(videos: dict[str, Any] | None) -> str | None:
        if not videos:
            return None
        candidates = [
            video
            for video in videos.get("results") or []
            if isinstance(video, dict) and video.get("site") == "YouTube"
        ]
        for video in candidates:
            if video.get("type") == "Trailer" and video.get("key"):
                return video["key"]
        for video in candidates:
            if video.get("key"):
                return video["key"]
        return None

    def _watch_link(self, providers: dict[str, Any] | None) -> str | None:
        if not providers:
            return None
        regions = providers.get("results")
        if not isinstance(regions, dict):
            return None
        region = regions.get(self._settings.watch_region)
        if not isinstance(region, dict):
            return None
        link = region.get("link")
        return link if isinstance(link, str) and link else None
