# ui.py
from typing import Iterable, Optional

from rich.markup import escape
from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.message import Message
from textual.widgets import (Button, DataTable, Input, Label, Markdown, RichLog,
                             Static)

from models import (DetailsState, DetailsStatus, FavoriteRecord, MovieSummary,
                    SearchState, SearchStatus)


def format_rating(vote_average: Optional[float]) -> str:
    return f"{vote_average:.1f}" if vote_average is not None else "N/A"


class SearchControls(Static):
    """Widget for the search input and the API key input."""
    class QueryChanged(Message):
        def __init__(self, text: str) -> None:
            self.text = text
            super().__init__()

    class CredentialChanged(Message):
        def __init__(self, value: str) -> None:
            self.value = value
            super().__init__()

    def __init__(self, api_key: str = "", **kwargs) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key

    def compose(self) -> ComposeResult:
        with Horizontal(id="inputs-row"):
            yield Input(placeholder="Movie title", id="search-input")
            yield Input(value=self.api_key, placeholder="TMDB API key", password=True, id="api-key-input")

    def on_input_changed(self, event: Input.Changed) -> None:
        event.stop()
        if event.input.id == "search-input":
            self.post_message(self.QueryChanged(event.value))
        elif event.input.id == "api-key-input":
            self.post_message(self.CredentialChanged(event.value))


class StatusLine(Static):
    """One line describing what the search is doing right now."""
    def update_status(self, state: SearchState) -> None:
        if state.status is SearchStatus.IDLE:
            text = "Type a title to search."
        elif state.status is SearchStatus.DEBOUNCING:
            text = f"Waiting to search for '{escape(state.text)}'..."
        elif state.status is SearchStatus.LOADING:
            text = "Loading..."
        elif state.status is SearchStatus.FAILED:
            text = f"[red]{state.error.message if state.error else 'Search failed.'}[/red]"
        elif not state.items:
            text = "No results found."
        else:
            text = f"{len(state.items)} results"
        self.update(text)


class ResultsDisplay(DataTable):
    """Widget for the search results table."""
    class MovieSelected(Message):
        def __init__(self, movie: MovieSummary) -> None:
            self.movie = movie
            super().__init__()

    class MovieHighlighted(Message):
        def __init__(self, movie: Optional[MovieSummary]) -> None:
            self.movie = movie
            super().__init__()

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.movies: dict = {}

    def on_mount(self) -> None:
        self.add_columns("Fav", "Title", "Year", "Rating")
        self.cursor_type = "row"

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        event.stop()
        movie = self.movies.get(event.row_key.value)
        if movie is not None:
            self.post_message(self.MovieSelected(movie))

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        event.stop()
        self.post_message(self.MovieHighlighted(self.movies.get(event.row_key.value)))

    def update_results(self, movies: Iterable[MovieSummary], favorite_ids: frozenset) -> None:
        cursor_row = self.cursor_row
        self.clear()
        self.movies = {}
        for m in movies:
            key = str(m.id)
            self.movies[key] = m
            self.add_row("❤" if m.id in favorite_ids else "♡", m.title, m.year or "N/A",
                         format_rating(m.vote_average), key=key)
        if 0 < cursor_row < self.row_count:
            self.move_cursor(row=cursor_row)


class FavoritesDisplay(DataTable):
    """Widget listing favorited movies, most recent first."""
    class FavoriteHighlighted(Message):
        def __init__(self, record: Optional[FavoriteRecord]) -> None:
            self.record = record
            super().__init__()

    class FavoriteSelected(Message):
        def __init__(self, record: FavoriteRecord) -> None:
            self.record = record
            super().__init__()

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.records: dict = {}

    def on_mount(self) -> None:
        self.add_columns("Title", "Year")
        self.cursor_type = "row"

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        event.stop()
        record = self.records.get(event.row_key.value)
        if record is not None:
            self.post_message(self.FavoriteSelected(record))

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        event.stop()
        self.post_message(self.FavoriteHighlighted(self.records.get(event.row_key.value)))

    def update_favorites(self, records: Iterable[FavoriteRecord]) -> None:
        self.clear()
        self.records = {}
        for r in records:
            key = str(r.id)
            self.records[key] = r
            self.add_row(r.title, r.year or "N/A", key=key)


class PaginationBar(Static):
    """First/previous/next/last buttons around a page counter."""
    class PageRequested(Message):
        def __init__(self, page: int) -> None:
            self.page = page
            super().__init__()

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.search_state = SearchState()

    def compose(self) -> ComposeResult:
        with Horizontal():
            yield Button("First", id="first-page")
            yield Button("Previous", id="prev-page")
            yield Label("", id="page-label")
            yield Button("Next", id="next-page")
            yield Button("Last", id="last-page")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        event.stop()
        targets = {
            "first-page": 1,
            "prev-page": self.search_state.page - 1,
            "next-page": self.search_state.page + 1,
            "last-page": self.search_state.total_pages,
        }
        self.post_message(self.PageRequested(targets[event.button.id]))

    def update_pages(self, state: SearchState) -> None:
        self.search_state = state
        label = f"Page {state.page} of {state.total_pages}" if state.total_pages > 1 else ""
        self.query_one("#page-label", Label).update(label)
        self.query_one("#first-page", Button).disabled = not state.can_go_back
        self.query_one("#prev-page", Button).disabled = not state.can_go_back
        self.query_one("#next-page", Button).disabled = not state.can_go_forward
        self.query_one("#last-page", Button).disabled = not state.can_go_forward


class DetailsPane(Static):
    """Widget to display details of the open movie."""
    def on_mount(self) -> None:
        self.update_details(DetailsState(), False)

    def update_details(self, state: DetailsState, is_favorite: bool) -> None:
        movie = state.movie
        if movie is None:
            content = "## Details\n\n*Press Enter on a movie to see its details.*"
        else:
            heart = "❤" if is_favorite else "♡"
            content = (f"## {movie.title} {heart}\n\n- **Year**: {movie.year or 'N/A'}"
                       f"\n- **Rating**: {format_rating(movie.vote_average)}")
            if state.status is DetailsStatus.LOADING:
                content += "\n\n*Loading details...*"
            elif state.status is DetailsStatus.UNAVAILABLE:
                content += f"\n\n**{state.error.message if state.error else 'Details unavailable.'}**"
            elif state.details is not None:
                details = state.details
                overview = details.overview or getattr(movie, "overview", None) or "No overview available."
                content += (f"\n- **Director**: {details.director}"
                            f"\n- **Cast**: {', '.join(details.cast) or 'N/A'}"
                            f"\n\n### Overview\n\n{overview}")
                if details.homepage:
                    content += f"\n\n[Official site]({details.homepage})"
        self.query_one(Markdown).update(content)

    def compose(self) -> ComposeResult:
        yield Markdown()


class LogPane(RichLog):
    """A dedicated widget for logging application events."""
    def add_message(self, message: str) -> None:
        self.write(message)
