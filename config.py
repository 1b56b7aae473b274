# config.py
from dataclasses import dataclass

@dataclass
class Config:
    """Holds all application configuration."""
    SEARCH_URL: str = "https://api.themoviedb.org/3/search/movie"
    MOVIE_URL: str = "https://api.themoviedb.org/3/movie"
    MOVIE_PAGE_URL: str = "https://www.themoviedb.org/movie"
    LANGUAGE: str = "pt-BR"
    DEBOUNCE_DELAY: float = 0.4
    REQUEST_TIMEOUT: float = 15.0
    # TMDB refuses to serve pages past 500
    MAX_TOTAL_PAGES: int = 500
    CAST_LIMIT: int = 8
    DIRECTOR_PLACEHOLDER: str = "Unknown"
    DATABASE_FILENAME: str = "movie_search.db"
    API_KEY_KEY: str = "api_key"
    FAVORITES_KEY: str = "favorites"
    LOG_LEVEL: str = "INFO"
