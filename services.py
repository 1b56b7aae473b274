# services.py
import json
import logging
import sqlite3
from typing import Any, Callable, Generic, Iterator, List, Optional, Tuple, TypeVar

import httpx

from config import Config
from models import (FavoriteRecord, FetchFailed, InvalidCredential,
                    MissingCredential, MovieDetails, MovieSummary,
                    SearchResultPage)

logger = logging.getLogger(__name__)

S = TypeVar("S")


class StateContainer(Generic[S]):
    """Holds a state snapshot and notifies subscribers whenever it is replaced."""

    def __init__(self, initial: S):
        self._state = initial
        self._listeners: List[Callable[[S], None]] = []

    @property
    def state(self) -> S:
        return self._state

    def subscribe(self, listener: Callable[[S], None]) -> Callable[[], None]:
        """Registers a listener and returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: S) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("State listener %r failed", listener)


class KeyValueStore:
    """A service to manage the SQLite key-value table used for persistence."""
    def __init__(self, db_name: str):
        self.db_name = db_name
        self.conn = sqlite3.connect(db_name)
        self.create_table()

    def create_table(self):
        """Creates the settings table if it doesn't exist."""
        with self.conn:
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)

    def get_raw(self, key: str) -> Optional[str]:
        cursor = self.conn.execute("SELECT value FROM settings WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row[0] if row else None

    def set_raw(self, key: str, value: str) -> None:
        with self.conn:
            self.conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, value)
            )

    def close(self):
        self.conn.close()


class PersistentStore:
    """JSON-typed access to the key-value store that never raises to callers."""
    def __init__(self, substrate: KeyValueStore):
        self.substrate = substrate

    def get(self, key: str, fallback: Any = None) -> Any:
        """Returns the decoded value for ``key`` or ``fallback`` if it is absent or unreadable."""
        try:
            raw = self.substrate.get_raw(key)
        except sqlite3.Error:
            logger.warning("Could not read %r from storage", key, exc_info=True)
            return fallback
        if raw is None:
            return fallback
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning("Discarding corrupted value stored under %r", key)
            return fallback
        if fallback is not None and not isinstance(value, type(fallback)):
            logger.warning("Discarding value of unexpected type %s under %r", type(value).__name__, key)
            return fallback
        return value

    def set(self, key: str, value: Any) -> bool:
        """Stores ``value`` under ``key``. Returns False when it did not persist."""
        try:
            raw = json.dumps(value)
        except (TypeError, ValueError):
            logger.warning("Value for %r is not JSON serialisable", key, exc_info=True)
            return False
        try:
            self.substrate.set_raw(key, raw)
        except sqlite3.Error:
            logger.warning("Could not persist %r", key, exc_info=True)
            return False
        return True


class CredentialStore:
    """Keeps the TMDB API key entered by the user."""
    def __init__(self, store: PersistentStore, key: str = Config.API_KEY_KEY):
        self.store = store
        self.key = key

    def get(self) -> str:
        return self.store.get(self.key, "").strip()

    def set(self, value: str) -> None:
        self.store.set(self.key, value.strip())

    @property
    def is_configured(self) -> bool:
        return bool(self.get())


class FavoritesRegistry(StateContainer[Tuple[FavoriteRecord, ...]]):
    """Ordered, de-duplicated favorites, most recently added first.

    The list is read from the store on first use and written back after every
    mutation, so memory and storage agree once a call returns.
    """

    def __init__(self, store: PersistentStore, key: str = Config.FAVORITES_KEY):
        super().__init__(())
        self.store = store
        self.key = key
        self._ids: set = set()
        self._loaded = False

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        records: List[FavoriteRecord] = []
        for entry in self.store.get(self.key, []):
            record = FavoriteRecord.from_dict(entry)
            if record is None or record.id in self._ids:
                continue
            self._ids.add(record.id)
            records.append(record)
        self._state = tuple(records)

    @property
    def state(self) -> Tuple[FavoriteRecord, ...]:
        self._ensure_loaded()
        return self._state

    @property
    def records(self) -> Tuple[FavoriteRecord, ...]:
        return self.state

    def __len__(self) -> int:
        return len(self.state)

    def __iter__(self) -> Iterator[FavoriteRecord]:
        return iter(self.state)

    def is_favorite(self, movie_id: int) -> bool:
        self._ensure_loaded()
        return movie_id in self._ids

    def toggle(self, movie) -> bool:
        """Adds ``movie`` if absent, removes it otherwise. Returns the new membership."""
        self._ensure_loaded()
        if movie.id in self._ids:
            self._ids.discard(movie.id)
            records = tuple(r for r in self._state if r.id != movie.id)
        else:
            self._ids.add(movie.id)
            records = (FavoriteRecord.from_summary(movie),) + self._state
        self._commit(records)
        return movie.id in self._ids

    def clear(self) -> None:
        self._ensure_loaded()
        self._ids.clear()
        self._commit(())

    def _commit(self, records: Tuple[FavoriteRecord, ...]) -> None:
        if not self.store.set(self.key, [r.to_dict() for r in records]):
            logger.warning("Favorites changed in memory but were not persisted")
        self._set_state(records)


class CatalogService:
    """A service to handle interactions with the TMDB catalog API."""
    def __init__(self, client: httpx.AsyncClient, config: Config):
        self.client = client
        self.config = config

    async def search_movies(self, text: str, page: int, credential: str) -> SearchResultPage:
        """Fetches one page of search results for ``text``."""
        data = await self._get_json(self.config.SEARCH_URL, credential, {
            "query": text,
            "page": str(page),
        })
        results = data.get("results")
        if not isinstance(results, list):
            raise FetchFailed()
        items = tuple(m for m in (MovieSummary.from_api(item) for item in results) if m is not None)
        total_pages = data.get("total_pages") or 0
        if not isinstance(total_pages, int):
            raise FetchFailed()
        return SearchResultPage(
            items=items,
            page=page,
            total_pages=min(total_pages, self.config.MAX_TOTAL_PAGES),
        )

    async def fetch_details(self, movie_id: int, credential: str) -> MovieDetails:
        """Fetches the extended record for one movie, credits included."""
        data = await self._get_json(f"{self.config.MOVIE_URL}/{movie_id}", credential, {
            "append_to_response": "credits",
        })
        return self._parse_details(movie_id, data)

    async def _get_json(self, url: str, credential: str, params: dict) -> dict:
        if not credential or not credential.strip():
            raise MissingCredential()
        query = {"api_key": credential.strip(), "language": self.config.LANGUAGE}
        query.update(params)
        try:
            response = await self.client.get(url, params=query, timeout=self.config.REQUEST_TIMEOUT)
        except httpx.HTTPError as e:
            logger.warning("Request to %s failed: %s", url, e)
            raise FetchFailed() from e
        if response.status_code == 401:
            raise InvalidCredential()
        if not response.is_success:
            logger.info("Catalog answered %s for %s", response.status_code, url)
            raise FetchFailed(response.status_code)
        try:
            data = response.json()
        except ValueError as e:
            raise FetchFailed() from e
        if not isinstance(data, dict):
            raise FetchFailed()
        return data

    def _parse_details(self, movie_id: int, data: dict) -> MovieDetails:
        """Parses a raw detail payload into our MovieDetails data model."""
        credits = data.get("credits")
        if not isinstance(credits, dict):
            credits = {}
        crew = credits.get("crew") or []
        cast = credits.get("cast") or []
        director = next(
            (c.get("name") for c in crew
             if isinstance(c, dict) and c.get("job") == "Director" and c.get("name")),
            self.config.DIRECTOR_PLACEHOLDER,
        )
        names = [c.get("name") for c in cast[:self.config.CAST_LIMIT] if isinstance(c, dict)]
        return MovieDetails(
            id=movie_id,
            overview=data.get("overview") or "",
            director=director,
            cast=tuple(name for name in names if name),
            homepage=data.get("homepage") or None,
        )
