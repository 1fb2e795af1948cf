from __future__ import annotations

import atexit
import logging
import secrets
import sys
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Optional

from flask import Flask, jsonify, redirect, render_template, request, session, url_for
from spotipy.oauth2 import SpotifyOAuth

from listentrack.jobs.fetch_cycle import FetchPipeline
from listentrack.jobs.scheduler import FetchScheduler
from listentrack.spotify.auth import authorize_url, build_oauth, make_refresher
from listentrack.spotify.client import SpotifyClient
from listentrack.utils.background import shutdown_background
from listentrack.utils.callback import callback
from listentrack.utils.db_utils import ListeningStore
from listentrack.utils.errors import AuthError, NetworkError, ParseError, PersistenceError, TrackerError
from listentrack.utils.session_utils import TokenStore
from listentrack.utils.settings import Settings, load_settings

MAX_WINDOW_DAYS = 3650


@dataclass
class Services:
    settings: Settings
    store: ListeningStore
    client: SpotifyClient
    oauth: SpotifyOAuth
    tokens: TokenStore
    pipeline: FetchPipeline
    scheduler: FetchScheduler


def _error_response(e: TrackerError):
    if isinstance(e, AuthError):
        status = 401
    elif isinstance(e, (NetworkError, ParseError)):
        status = 502
    else:
        status = 500
    return jsonify({"error": type(e).__name__, "message": str(e)}), status


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[ListeningStore] = None,
    client: Optional[SpotifyClient] = None,
    oauth: Optional[SpotifyOAuth] = None,
    tokens: Optional[TokenStore] = None,
    pipeline: Optional[FetchPipeline] = None,
    start_scheduler: bool = False,
    fetch_on_login: bool = True,
) -> Flask:
    settings = settings or load_settings()

    # ---- Collaborators (injected, or built from settings) ----
    store = store or ListeningStore(settings.db_path)
    client = client or SpotifyClient(
        api_base=settings.api_base,
        timeout=settings.http_timeout,
        time_range=settings.top_time_range,
        limit=settings.top_limit,
    )
    oauth = oauth or build_oauth(settings)
    tokens = tokens or TokenStore(refresher=make_refresher(oauth))
    pipeline = pipeline or FetchPipeline(client, store, tokens)
    scheduler = FetchScheduler(pipeline, tokens, interval_minutes=settings.fetch_interval_minutes)

    # ---- Flask ----
    app = Flask(__name__, template_folder="templates")
    app.secret_key = settings.flask_secret
    services = Services(settings, store, client, oauth, tokens, pipeline, scheduler)
    app.extensions["listentrack"] = services

    # Ensure the SQLite schema exists at startup
    store.init_db()
    app.logger.info("SQLite ready at %s", settings.db_path)

    def _session_user() -> Optional[str]:
        user_id = session.get("user_id")
        if user_id and tokens.get_tokens(user_id) is None:
            # process restarted or token dropped; tokens live in memory only
            session.pop("user_id", None)
            return None
        return user_id

    # ---- Routes ----
    @app.get("/")
    def index():
        user_id = _session_user()
        identity = tokens.get_identity(user_id) if user_id else None
        return render_template(
            "index.html",
            user=identity,
            interval=settings.fetch_interval_minutes,
            window_days=settings.genre_window_days,
        )

    @app.get("/login")
    def login():
        if not settings.client_id:
            return "Missing SPOTIPY_CLIENT_ID", 500
        # CSRF state
        state = secrets.token_urlsafe(24)
        session["oauth_state"] = state
        return redirect(authorize_url(oauth, state))

    @app.get("/callback")
    def spotify_callback():
        error = request.args.get("error")
        if error:
            return f"Authorization denied: {error}", 400

        expected_state = session.get("oauth_state")
        got_state = request.args.get("state")
        if not expected_state or got_state != expected_state:
            return "Invalid state", 400

        code = request.args.get("code")
        if not code:
            return "Code not provided", 400

        return callback(
            app, code,
            oauth=oauth, client=client, store=store, tokens=tokens, pipeline=pipeline,
            fetch_in_background=fetch_on_login,
        )

    @app.get("/logout")
    def logout():
        user_id = session.pop("user_id", None)
        if user_id:
            tokens.clear_tokens(user_id)
        return redirect(url_for("index"))

    @app.get("/top-artists")
    def top_artists():
        """On-demand fetch cycle for the logged-in user."""
        user_id = _session_user()
        if not user_id:
            return jsonify({"error": "AuthError", "message": "Log in first", "login": url_for("login")}), 401
        try:
            summary = pipeline.run_fetch_cycle(user_id)
        except TrackerError as e:
            app.logger.warning("On-demand fetch failed for %s: %s", user_id, e)
            return _error_response(e)
        return jsonify(summary.to_dict())

    @app.get("/fetch-data")
    def fetch_data():
        """Whatever was last committed: artists + all-time genre counts."""
        try:
            artists = store.list_stored_artists()
            genres = store.list_stored_genre_counts()
        except PersistenceError as e:
            return _error_response(e)
        return jsonify({"artists": [asdict(a) for a in artists], "genres": genres})

    @app.get("/analyze")
    def analyze():
        days = settings.genre_window_days
        raw_days = request.args.get("days")
        if raw_days is not None:
            try:
                days = int(raw_days)
            except ValueError:
                days = 0
            if not 1 <= days <= MAX_WINDOW_DAYS:
                return jsonify({"error": "BadRequest", "message": f"days must be an integer from 1 to {MAX_WINDOW_DAYS}"}), 400
        try:
            genres = store.aggregate_genres_since(timedelta(days=days))
        except PersistenceError as e:
            return _error_response(e)

        app.logger.info("Genres listened to in the last %d days:", days)
        for genre, count in genres.items():
            app.logger.info("  %s: %d", genre, count)
        return jsonify({"window_days": days, "genres": [{"name": g, "count": c} for g, c in genres.items()]})

    @app.get("/ranks")
    def ranks():
        user_id = _session_user()
        if not user_id:
            return jsonify({"error": "AuthError", "message": "Log in first", "login": url_for("login")}), 401
        try:
            rows = store.list_user_ranks(user_id)
        except PersistenceError as e:
            return _error_response(e)
        return jsonify({"user_id": user_id, "ranks": rows})

    if start_scheduler:
        scheduler.start()

    return app


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,  # or DEBUG to see raw Spotify responses
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("apscheduler").setLevel(logging.INFO)

    settings = load_settings()
    app = create_app(settings, start_scheduler=True)
    services: Services = app.extensions["listentrack"]
    atexit.register(services.scheduler.stop)
    atexit.register(shutdown_background)

    app.logger.info("Server is running at http://%s:%d", settings.host, settings.port)
    app.run(host=settings.host, port=settings.port, debug=False)


if __name__ == "__main__":
    main()
