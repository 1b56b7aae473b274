# models.py
import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, Tuple, TypeVar, Union

T = TypeVar("T")


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


@dataclass(frozen=True)
class SearchQuery:
    """The text and page a single search request is issued for."""
    text: str
    page: int = 1

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")


@dataclass(frozen=True)
class MovieSummary:
    """A single movie as returned by a catalog search."""
    id: int
    title: str
    poster_path: Optional[str] = None
    release_date: Optional[str] = None
    vote_average: Optional[float] = None
    overview: Optional[str] = None

    @classmethod
    def from_api(cls, item: dict) -> Optional["MovieSummary"]:
        """Parses a raw TMDB result, skipping entries without a usable id."""
        if not isinstance(item, dict):
            return None
        movie_id = item.get("id")
        if not isinstance(movie_id, int) or isinstance(movie_id, bool):
            return None
        return cls(
            id=movie_id,
            title=_text(item.get("title")) or "N/A",
            poster_path=_text(item.get("poster_path")),
            release_date=_text(item.get("release_date")),
            vote_average=_number(item.get("vote_average")),
            overview=_text(item.get("overview")),
        )

    @property
    def year(self) -> Optional[str]:
        return self.release_date[:4] if self.release_date else None


@dataclass(frozen=True)
class FavoriteRecord:
    """The reduced projection of a movie that gets persisted as a favorite."""
    id: int
    title: str
    poster_path: Optional[str] = None
    release_date: Optional[str] = None
    vote_average: Optional[float] = None

    @classmethod
    def from_summary(cls, movie: Union[MovieSummary, "FavoriteRecord"]) -> "FavoriteRecord":
        return cls(
            id=movie.id,
            title=movie.title,
            poster_path=movie.poster_path,
            release_date=movie.release_date,
            vote_average=movie.vote_average,
        )

    @classmethod
    def from_dict(cls, data: Any) -> Optional["FavoriteRecord"]:
        if not isinstance(data, dict):
            return None
        movie_id = data.get("id")
        title = data.get("title")
        if not isinstance(movie_id, int) or isinstance(movie_id, bool) or not isinstance(title, str):
            return None
        return cls(
            id=movie_id,
            title=title,
            poster_path=_text(data.get("poster_path")),
            release_date=_text(data.get("release_date")),
            vote_average=_number(data.get("vote_average")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "poster_path": self.poster_path,
            "release_date": self.release_date,
            "vote_average": self.vote_average,
        }

    @property
    def year(self) -> Optional[str]:
        return self.release_date[:4] if self.release_date else None


@dataclass(frozen=True)
class SearchResultPage:
    """One page of search results. Always replaces the previous page."""
    items: Tuple[MovieSummary, ...]
    page: int
    total_pages: int


@dataclass(frozen=True)
class MovieDetails:
    """Extended record for a single movie, derived from the detail endpoint."""
    id: int
    overview: str
    director: str
    cast: Tuple[str, ...] = ()
    homepage: Optional[str] = None


# --- Errors ---

class CatalogError(Exception):
    """Base class for every failure the controllers turn into state."""
    message = "Failed to fetch movies."

    def __init__(self, message: Optional[str] = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class MissingCredential(CatalogError):
    message = "Enter your TMDB API key to search for movies."


class InvalidCredential(CatalogError):
    message = "Invalid API key."


class FetchFailed(CatalogError):
    def __init__(self, status: Optional[int] = None) -> None:
        self.status = status
        super().__init__(f"Error {status}" if status is not None else None)


class DetailsUnavailable(CatalogError):
    message = "Could not load the movie details."


# --- Request outcomes ---

@dataclass(frozen=True)
class Resolved(Generic[T]):
    value: T


@dataclass(frozen=True)
class Failed:
    error: CatalogError


@dataclass(frozen=True)
class Canceled:
    pass


Outcome = Union[Resolved, Failed, Canceled]


class CancellationToken:
    """Cooperative cancellation signal for one in-flight request.

    A token can be bound to the asyncio task doing the work; cancelling the
    token then also cancels the task. Work that completes anyway must check
    ``cancelled`` before applying its result.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._task: Optional[asyncio.Task] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def bind(self, task: asyncio.Task) -> None:
        self._task = task
        if self._cancelled:
            task.cancel()

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()


# --- State snapshots ---

class SearchStatus(enum.Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class SearchState:
    """A single object to hold the entire search state.

    ``page`` is the page of the results on screen. ``requested_page`` is the
    page of the most recently issued request, which differs while a page
    change is loading or after it failed.
    """
    text: str = ""
    page: int = 1
    requested_page: int = 1
    status: SearchStatus = SearchStatus.IDLE
    items: Tuple[MovieSummary, ...] = ()
    total_pages: int = 0
    error: Optional[CatalogError] = None

    @property
    def has_results(self) -> bool:
        return bool(self.items)

    @property
    def can_go_back(self) -> bool:
        return self.status in (SearchStatus.READY, SearchStatus.FAILED) and self.page > 1

    @property
    def can_go_forward(self) -> bool:
        return self.status in (SearchStatus.READY, SearchStatus.FAILED) and self.page < self.total_pages


class DetailsStatus(enum.Enum):
    CLOSED = "closed"
    LOADING = "loading"
    LOADED = "loaded"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class DetailsState:
    movie: Optional[MovieSummary] = None
    status: DetailsStatus = DetailsStatus.CLOSED
    details: Optional[MovieDetails] = None
    error: Optional[CatalogError] = None


@dataclass
class AppState:
    """Everything the presentation layer renders, gathered in one place."""
    search: SearchState = field(default_factory=SearchState)
    details: DetailsState = field(default_factory=DetailsState)
    selected: Optional[MovieSummary] = None
    favorite_ids: frozenset = frozenset()
