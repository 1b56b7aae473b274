# main.py
import logging
from dataclasses import replace
from typing import Optional, Tuple, Union

try:
    import pyperclip
except ImportError:
    pyperclip = None

import httpx
from rich.markup import escape
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.logging import TextualHandler
from textual.reactive import reactive
from textual.widgets import Footer, Header, Label

from config import Config
from controller import DetailsLoader, SearchController
from models import (AppState, DetailsState, FavoriteRecord, MovieSummary,
                    SearchState, SearchStatus)
from services import (CatalogService, CredentialStore, FavoritesRegistry,
                      KeyValueStore, PersistentStore)
from ui import (DetailsPane, FavoritesDisplay, LogPane, PaginationBar,
                ResultsDisplay, SearchControls, StatusLine)

logger = logging.getLogger(__name__)

Selectable = Union[MovieSummary, FavoriteRecord]


def as_summary(movie: Selectable) -> MovieSummary:
    if isinstance(movie, MovieSummary):
        return movie
    return MovieSummary(**movie.to_dict())


class MovieSearchApp(App):
    BINDINGS = [
        ("d", "toggle_dark", "Toggle dark mode"),
        ("q", "quit", "Quit"),
        ("f", "toggle_favorite", "Favorite"),
        ("c", "copy_link", "Copy Link"),
        ("x", "clear_favorites", "Clear Favorites"),
        ("p", "previous_page", "Prev Page"),
        ("n", "next_page", "Next Page"),
        ("home", "first_page", "First Page"),
        ("end", "last_page", "Last Page"),
        ("escape", "close_details", "Close Details"),
    ]
    CSS_PATH = "movie_search.tcss"

    app_state = reactive(AppState(), always_update=True, init=False)

    def __init__(self, controller: SearchController, details: DetailsLoader, favorites: FavoritesRegistry,
                 credentials: CredentialStore, config: Config):
        super().__init__()
        self.controller = controller
        self.details = details
        self.favorites = favorites
        self.credentials = credentials
        self.config = config
        self._unsubscribers = []

    def compose(self) -> ComposeResult:
        yield Header()
        with Container(id="main-container"):
            yield SearchControls(api_key=self.credentials.get(), id="search-controls")
            yield StatusLine(id="status")
            with Horizontal(id="app-grid"):
                with Vertical(id="left-pane"):
                    yield ResultsDisplay(id="results-table")
                    yield PaginationBar(id="pagination")
                    yield Label("Favorites", id="favorites-title")
                    yield FavoritesDisplay(id="favorites-table")
                with Vertical(id="right-pane"):
                    yield DetailsPane(id="details-pane")
            yield LogPane(id="log", wrap=True, highlight=True, markup=True)
        yield Footer()

    def on_mount(self) -> None:
        log = self.query_one(LogPane)
        self.query_one("#search-input").focus()
        if self.credentials.is_configured:
            log.add_message("[green]✅ TMDB API key loaded.[/green]")
        else:
            log.add_message("[yellow]⚠️ Enter your TMDB API key to start searching.[/yellow]")
        if not pyperclip:
            log.add_message("[yellow]⚠️ 'pyperclip' not installed.[/yellow]")

        self._unsubscribers = [
            self.controller.subscribe(self._search_state_changed),
            self.details.subscribe(self._details_state_changed),
            self.favorites.subscribe(self._favorites_changed),
        ]
        log.add_message(f"❤ {len(self.favorites)} favorites loaded.")
        self._favorites_changed(self.favorites.records)
        self._update_state(search=self.controller.state, details=self.details.state)

    async def on_unmount(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self.controller.close()
        self.details.close()
        await self.controller.catalog.client.aclose()

    # --- State plumbing ---
    def _update_state(self, **changes) -> None:
        self.app_state = replace(self.app_state, **changes)

    def _search_state_changed(self, state: SearchState) -> None:
        self._update_state(search=state)

    def _details_state_changed(self, state: DetailsState) -> None:
        self._update_state(details=state)

    def _favorites_changed(self, records: Tuple[FavoriteRecord, ...]) -> None:
        self.query_one(FavoritesDisplay).update_favorites(records)
        self._update_state(favorite_ids=frozenset(r.id for r in records))

    def watch_app_state(self, old_state: AppState, new_state: AppState) -> None:
        """Pushes state changes to child widgets."""
        search = new_state.search
        self.query_one(StatusLine).update_status(search)
        self.query_one(PaginationBar).update_pages(search)
        if old_state.search.items != search.items or old_state.favorite_ids != new_state.favorite_ids:
            self.query_one(ResultsDisplay).update_results(search.items, new_state.favorite_ids)
        movie = new_state.details.movie
        is_favorite = movie is not None and movie.id in new_state.favorite_ids
        self.query_one(DetailsPane).update_details(new_state.details, is_favorite)
        self._log_transition(old_state.search, search)

    def _log_transition(self, old: SearchState, new: SearchState) -> None:
        if (old.status is new.status and old.requested_page == new.requested_page
                and old.items == new.items):
            return
        log = self.query_one(LogPane)
        if new.status is SearchStatus.LOADING:
            log.add_message(f"🔎 Searching for '{escape(new.text)}' (page {new.requested_page})...")
        elif new.status is SearchStatus.FAILED and new.error is not None:
            log.add_message(f"[red]❌ {new.error.message}[/red]")
        elif new.status is SearchStatus.READY:
            if not new.items:
                log.add_message(f"🤷 No movies found for '{escape(new.text)}'.")
            else:
                log.add_message(f"🎬 Found {len(new.items)} results (page {new.page} of {new.total_pages}).")

    # --- Message Handlers ---
    def on_search_controls_query_changed(self, message: SearchControls.QueryChanged) -> None:
        self.controller.set_text(message.text)

    def on_search_controls_credential_changed(self, message: SearchControls.CredentialChanged) -> None:
        if message.value.strip() == self.credentials.get():
            return
        self.credentials.set(message.value)
        self.controller.credential_changed()

    def on_pagination_bar_page_requested(self, message: PaginationBar.PageRequested) -> None:
        self.controller.change_page(message.page)

    def on_results_display_movie_highlighted(self, message: ResultsDisplay.MovieHighlighted) -> None:
        self._update_state(selected=message.movie)

    def on_results_display_movie_selected(self, message: ResultsDisplay.MovieSelected) -> None:
        self.details.open(message.movie)

    def on_favorites_display_favorite_highlighted(self, message: FavoritesDisplay.FavoriteHighlighted) -> None:
        self._update_state(selected=as_summary(message.record) if message.record else None)

    def on_favorites_display_favorite_selected(self, message: FavoritesDisplay.FavoriteSelected) -> None:
        self.details.open(as_summary(message.record))

    # --- Actions ---
    def _target(self) -> Optional[MovieSummary]:
        return self.app_state.details.movie or self.app_state.selected

    def action_toggle_dark(self) -> None:
        self.theme = "textual-light" if self.theme == "textual-dark" else "textual-dark"

    def action_toggle_favorite(self) -> None:
        log = self.query_one(LogPane)
        movie = self._target()
        if movie is None:
            log.add_message("[yellow]⚠️ No movie selected.[/yellow]")
            return
        if self.favorites.toggle(movie):
            log.add_message(f"❤ Added '[b]{escape(movie.title)}[/b]' to favorites.")
        else:
            log.add_message(f"♡ Removed '[b]{escape(movie.title)}[/b]' from favorites.")

    def action_clear_favorites(self) -> None:
        if len(self.favorites):
            self.favorites.clear()
            self.query_one(LogPane).add_message("🗑 Favorites cleared.")

    def action_previous_page(self) -> None:
        self.controller.previous_page()

    def action_next_page(self) -> None:
        self.controller.next_page()

    def action_first_page(self) -> None:
        self.controller.first_page()

    def action_last_page(self) -> None:
        self.controller.last_page()

    def action_close_details(self) -> None:
        self.details.close()

    def action_copy_link(self) -> None:
        log = self.query_one(LogPane)
        if not pyperclip:
            log.add_message("[red]❌ 'pyperclip' not installed.[/red]")
            return
        movie = self._target()
        if movie:
            try:
                pyperclip.copy(f"{self.config.MOVIE_PAGE_URL}/{movie.id}")
            except pyperclip.PyperclipException as e:
                logger.warning("Clipboard copy failed: %s", e)
                log.add_message("[red]❌ Clipboard is not available.[/red]")
                return
            log.add_message(f"📋 Copied link for '[b]{escape(movie.title)}[/b]'.")
        else:
            log.add_message("[yellow]⚠️ No movie selected.[/yellow]")


def build_app(config: Config, store: PersistentStore, client: httpx.AsyncClient) -> MovieSearchApp:
    """Wires the services together and injects them into the app."""
    credentials = CredentialStore(store, config.API_KEY_KEY)
    favorites = FavoritesRegistry(store, config.FAVORITES_KEY)
    catalog = CatalogService(client, config)
    controller = SearchController(catalog, credentials.get, config)
    details = DetailsLoader(catalog, credentials.get)
    return MovieSearchApp(controller, details, favorites, credentials, config)


def main() -> None:
    app_config = Config()
    logging.basicConfig(level=app_config.LOG_LEVEL, handlers=[TextualHandler()])
    db_service = KeyValueStore(app_config.DATABASE_FILENAME)
    app = build_app(app_config, PersistentStore(db_service), httpx.AsyncClient())
    try:
        app.run()
    finally:
        db_service.close()


if __name__ == "__main__":
    main()
