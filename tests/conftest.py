"""Shared fixtures and test doubles for the movie search tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

import pytest

from config import Config
from models import MovieDetails, MovieSummary, SearchResultPage
from services import KeyValueStore, PersistentStore


def make_movie(movie_id: int, title: str | None = None, **extra) -> MovieSummary:
    return MovieSummary(id=movie_id, title=title or f"Movie {movie_id}", **extra)


def make_page(text: str, page: int, total_pages: int = 5) -> SearchResultPage:
    return SearchResultPage(items=(make_movie(page * 100, f"{text} {page}"),), page=page, total_pages=total_pages)


async def wait_until(predicate: Callable[[], bool], attempts: int = 200) -> None:
    """Yields to the event loop until ``predicate`` holds."""

    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.001)
    raise AssertionError("condition was never met")


@dataclass
class FakeCatalog:
    """In-memory catalog double whose responses can be held back per query.

    ``gates`` hold a response until the event is set. Queries listed in
    ``stubborn`` keep waiting even after their task is cancelled, which
    simulates a transport that resolves late regardless.
    """

    responses: dict = field(default_factory=dict)
    details: dict = field(default_factory=dict)
    gates: dict = field(default_factory=dict)
    stubborn: set = field(default_factory=set)
    search_calls: list = field(default_factory=list)
    detail_calls: list = field(default_factory=list)
    completed: list = field(default_factory=list)

    def gate(self, key) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[key] = event
        return event

    async def _hold(self, key) -> None:
        gate = self.gates.get(key)
        if gate is None:
            return
        while True:
            try:
                await gate.wait()
                return
            except asyncio.CancelledError:
                if key not in self.stubborn:
                    raise

    async def search_movies(self, text: str, page: int, credential: str) -> SearchResultPage:
        self.search_calls.append((text, page, credential))
        await self._hold((text, page))
        self.completed.append((text, page))
        result = self.responses.get((text, page)) or make_page(text, page)
        if isinstance(result, Exception):
            raise result
        return result

    async def fetch_details(self, movie_id: int, credential: str) -> MovieDetails:
        self.detail_calls.append((movie_id, credential))
        await self._hold(movie_id)
        self.completed.append(movie_id)
        result = self.details.get(movie_id) or MovieDetails(
            id=movie_id, overview=f"Overview {movie_id}", director="Someone", cast=("A", "B"),
        )
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def config() -> Config:
    return Config(DEBOUNCE_DELAY=0.01, DATABASE_FILENAME=":memory:")


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def substrate(tmp_path) -> Iterator[KeyValueStore]:
    kv = KeyValueStore(str(tmp_path / "settings.db"))
    yield kv
    kv.close()


@pytest.fixture
def store(substrate: KeyValueStore) -> PersistentStore:
    return PersistentStore(substrate)
