import os
import secrets
from dataclasses import dataclass, field
from typing import List

from dotenv import find_dotenv, load_dotenv


load_dotenv(find_dotenv(filename=".env", usecwd=True))  # run the app from the folder holding .env

# ---- Config ----
SPOTIFY_AUTH_URL = "https://accounts.spotify.com/authorize"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_API_BASE = "https://api.spotify.com/v1"

TIME_RANGES = {"short_term", "medium_term", "long_term"}

SCOPES = [
    "user-top-read",           # top artists + their genres
]


def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = "http://localhost:8080/callback"
    flask_secret: str = field(default_factory=lambda: secrets.token_hex(16))
    scopes: List[str] = field(default_factory=lambda: list(SCOPES))
    api_base: str = SPOTIFY_API_BASE
    db_path: str = "spotify_data.db"
    fetch_interval_minutes: int = 60
    http_timeout: float = 10.0
    top_time_range: str = "medium_term"
    top_limit: int = 20
    genre_window_days: int = 7
    host: str = "127.0.0.1"
    port: int = 8080


def load_settings() -> Settings:
    """Build Settings from the environment (and .env, loaded at import)."""
    time_range = (os.getenv("TOP_TIME_RANGE") or "medium_term").strip()
    if time_range not in TIME_RANGES:
        raise ValueError("TOP_TIME_RANGE must be one of: short_term, medium_term, long_term")

    interval = _int_env("FETCH_INTERVAL_MINUTES", 60)
    if interval < 1:
        raise ValueError("FETCH_INTERVAL_MINUTES must be at least 1")

    return Settings(
        client_id=os.getenv("SPOTIPY_CLIENT_ID") or "",
        client_secret=os.getenv("SPOTIPY_CLIENT_SECRET", ""),
        redirect_uri=os.getenv("SPOTIPY_REDIRECT_URI") or "http://localhost:8080/callback",
        flask_secret=os.getenv("FLASK_SECRET_KEY") or secrets.token_hex(16),
        api_base=os.getenv("SPOTIFY_API_BASE") or SPOTIFY_API_BASE,
        db_path=os.getenv("DB_PATH") or "spotify_data.db",
        fetch_interval_minutes=interval,
        http_timeout=float(os.getenv("HTTP_TIMEOUT") or 10),
        top_time_range=time_range,
        top_limit=max(1, min(50, _int_env("TOP_LIMIT", 20))),
        genre_window_days=_int_env("GENRE_WINDOW_DAYS", 7),
        host=os.getenv("HOST", "127.0.0.1"),
        port=_int_env("PORT", 8080),
    )
