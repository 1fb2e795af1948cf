from flask import Flask, redirect, session, url_for
from spotipy.oauth2 import SpotifyOAuth

from listentrack.jobs.fetch_cycle import FetchPipeline
from listentrack.spotify.auth import exchange_code
from listentrack.spotify.client import SpotifyClient
from listentrack.utils.background import submit_background
from listentrack.utils.db_utils import ListeningStore
from listentrack.utils.errors import AuthError, NetworkError, ParseError, PersistenceError
from listentrack.utils.session_utils import TokenStore


def _first_fetch(app: Flask, pipeline: FetchPipeline, user_id: str) -> None:
    try:
        pipeline.run_fetch_cycle(user_id)
    except Exception as e:
        app.logger.exception("Initial fetch failed for %s: %s", user_id, e)


def callback(
    app: Flask,
    code: str,
    *,
    oauth: SpotifyOAuth,
    client: SpotifyClient,
    store: ListeningStore,
    tokens: TokenStore,
    pipeline: FetchPipeline,
    fetch_in_background: bool = True,
):
    """Finish the authorization-code flow: tokens, profile, user row, first fetch."""
    session.pop("oauth_state", None)
    try:
        tb = exchange_code(oauth, code)
        identity = client.fetch_profile(tb.access_token)
    except AuthError as e:
        app.logger.warning("Login failed: %s", e)
        return f"Authentication failed: {e}", 401
    except (NetworkError, ParseError) as e:
        app.logger.warning("Login failed: %s", e)
        return f"Spotify unavailable: {e}", 502

    try:
        store.upsert_user(identity.user_id, identity.display_name)
    except PersistenceError as e:
        app.logger.exception("User save failed for %s: %s", identity.user_id, e)
        return "Failed to save user", 500

    tokens.set_tokens(identity, tb)
    session["user_id"] = identity.user_id
    app.logger.info("Authenticated Spotify user %s (%s)", identity.user_id, identity.display_name)

    if fetch_in_background:
        submit_background(_first_fetch, app, pipeline, identity.user_id)

    return redirect(url_for("index"))
