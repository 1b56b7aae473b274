# controller.py
import asyncio
import logging
from dataclasses import replace
from typing import Callable, Optional

from config import Config
from models import (Canceled, CancellationToken, CatalogError, DetailsState,
                    DetailsStatus, DetailsUnavailable, Failed, FetchFailed,
                    MissingCredential, MovieDetails, MovieSummary, Outcome,
                    Resolved, SearchQuery, SearchState, SearchStatus)
from services import CatalogService, StateContainer

logger = logging.getLogger(__name__)

CredentialProvider = Callable[[], str]


async def _wait_for(*tasks: Optional[asyncio.Task]) -> bool:
    pending = [t for t in tasks if t is not None and not t.done()]
    if not pending:
        return False
    await asyncio.wait(pending)
    return True


class SearchController(StateContainer[SearchState]):
    """Turns search text into debounced, cancellable, paginated catalog queries.

    Only the most recently issued request is allowed to change the state.
    Every older request is cancelled when a new one is issued, and if it
    resolves anyway its result is discarded.
    """

    def __init__(self, catalog: CatalogService, credential_provider: CredentialProvider, config: Config):
        super().__init__(SearchState())
        self.catalog = catalog
        self.credential_provider = credential_provider
        self.config = config
        self._timer: Optional[asyncio.Task] = None
        self._request: Optional[asyncio.Task] = None
        self._token: Optional[CancellationToken] = None

    # --- User intents ---
    def set_text(self, text: str) -> None:
        self._cancel_timer()
        self._cancel_request()
        if not text.strip():
            self._set_state(SearchState(text=text))
            return
        self._set_state(replace(self.state, text=text, status=SearchStatus.DEBOUNCING, error=None))
        self._timer = asyncio.create_task(self._debounce())

    def credential_changed(self) -> None:
        """Restarts the search for the current text with the new credential."""
        self.set_text(self.state.text)

    def change_page(self, page: int) -> bool:
        """Requests ``page`` of the current query. Returns whether a request was issued."""
        state = self.state
        if state.status not in (SearchStatus.READY, SearchStatus.FAILED):
            return False
        if page == state.page:
            return False
        if not 1 <= page <= state.total_pages:
            logger.debug("Rejected page %s outside 1..%s", page, state.total_pages)
            return False
        self._issue(SearchQuery(state.text, page))
        return True

    def next_page(self) -> bool:
        return self.change_page(self.state.page + 1)

    def previous_page(self) -> bool:
        return self.change_page(self.state.page - 1)

    def first_page(self) -> bool:
        return self.change_page(1)

    def last_page(self) -> bool:
        return self.change_page(self.state.total_pages)

    async def settle(self) -> None:
        """Waits until no debounce timer or request is pending."""
        while await _wait_for(self._timer, self._request):
            pass

    def close(self) -> None:
        self._cancel_timer()
        self._cancel_request()

    # --- Request lifecycle ---
    async def _debounce(self) -> None:
        await asyncio.sleep(self.config.DEBOUNCE_DELAY)
        self._timer = None
        self._issue(SearchQuery(self.state.text, 1), new_text=True)

    def _issue(self, query: SearchQuery, new_text: bool = False) -> None:
        self._cancel_request()
        # a page change keeps the current page on screen until its results arrive
        page = query.page if new_text else self.state.page
        credential = self.credential_provider()
        if not credential or not credential.strip():
            self._set_state(replace(self.state, page=page, requested_page=query.page,
                                    status=SearchStatus.FAILED, error=MissingCredential()))
            return
        self._set_state(replace(self.state, page=page, requested_page=query.page,
                                status=SearchStatus.LOADING, error=None))
        token = CancellationToken()
        self._token = token
        self._request = asyncio.create_task(self._run(query, credential, token))
        token.bind(self._request)

    async def _run(self, query: SearchQuery, credential: str, token: CancellationToken) -> None:
        outcome = await self._fetch(query, credential, token)
        self._apply(outcome)

    async def _fetch(self, query: SearchQuery, credential: str, token: CancellationToken) -> Outcome:
        try:
            page = await self.catalog.search_movies(query.text, query.page, credential)
        except asyncio.CancelledError:
            if token.cancelled:
                return Canceled()
            raise
        except CatalogError as e:
            outcome: Outcome = Failed(e)
        except Exception:
            logger.exception("Unexpected failure searching for %r", query.text)
            outcome = Failed(FetchFailed())
        else:
            outcome = Resolved(page)
        if token.cancelled or token is not self._token:
            return Canceled()
        return outcome

    def _apply(self, outcome: Outcome) -> None:
        if isinstance(outcome, Canceled):
            logger.debug("Discarded a superseded search response")
            return
        self._request = None
        self._token = None
        if isinstance(outcome, Failed):
            logger.info("Search for %r failed: %s", self.state.text, outcome.error.message)
            self._set_state(replace(self.state, status=SearchStatus.FAILED, error=outcome.error))
            return
        result = outcome.value
        self._set_state(replace(
            self.state,
            page=result.page,
            requested_page=result.page,
            status=SearchStatus.READY,
            items=result.items,
            total_pages=result.total_pages,
            error=None,
        ))

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def _cancel_request(self) -> None:
        if self._token is not None:
            self._token.cancel()
        self._token = None
        self._request = None


class DetailsLoader(StateContainer[DetailsState]):
    """Loads the extended record of the movie currently open in the details view."""

    def __init__(self, catalog: CatalogService, credential_provider: CredentialProvider):
        super().__init__(DetailsState())
        self.catalog = catalog
        self.credential_provider = credential_provider
        self._task: Optional[asyncio.Task] = None
        self._token: Optional[CancellationToken] = None

    def open(self, movie: MovieSummary) -> None:
        self._cancel()
        self._set_state(DetailsState(movie=movie, status=DetailsStatus.LOADING))
        self._task = asyncio.create_task(self.load(movie.id, self.credential_provider()))

    def close(self) -> None:
        self._cancel()
        self._set_state(DetailsState())

    async def settle(self) -> None:
        await _wait_for(self._task)

    async def load(self, movie_id: int, credential: str) -> Optional[MovieDetails]:
        """Fetches details for ``movie_id``, superseding any load still in flight.

        Returns None when the load failed or was superseded. The open movie is
        kept only when its id is ``movie_id``; otherwise the state holds no
        movie, so ``state.movie`` never describes a different record than
        ``state.details``.
        """
        token = CancellationToken()
        previous, self._token = self._token, token
        if previous is not None:
            previous.cancel()
        current = asyncio.current_task()
        if current is not None and current is self._task:
            token.bind(current)
        movie = self.state.movie
        if movie is not None and movie.id != movie_id:
            movie = None
        if self.state.status is not DetailsStatus.LOADING or movie is not self.state.movie:
            self._set_state(DetailsState(movie=movie, status=DetailsStatus.LOADING))

        try:
            details = await self.catalog.fetch_details(movie_id, credential)
        except asyncio.CancelledError:
            if token.cancelled:
                return None
            raise
        except CatalogError as e:
            logger.info("Details for movie %s unavailable: %s", movie_id, e.message)
            outcome: Outcome = Failed(DetailsUnavailable())
        except Exception:
            logger.exception("Unexpected failure loading details for movie %s", movie_id)
            outcome = Failed(DetailsUnavailable())
        else:
            outcome = Resolved(details)

        if token.cancelled or token is not self._token:
            return None
        self._token = None
        if isinstance(outcome, Failed):
            self._set_state(replace(self.state, status=DetailsStatus.UNAVAILABLE, error=outcome.error))
            return None
        self._set_state(replace(self.state, status=DetailsStatus.LOADED, details=outcome.value, error=None))
        return outcome.value

    def _cancel(self) -> None:
        if self._token is not None:
            self._token.cancel()
        self._token = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
