from __future__ import annotations

import time

import requests
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from listentrack.utils.errors import AuthError, NetworkError
from listentrack.utils.session_utils import TokenBundle
from listentrack.utils.settings import Settings


def build_oauth(settings: Settings) -> SpotifyOAuth:
    """Authorization-code manager; tokens stay in process memory."""
    return SpotifyOAuth(
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        redirect_uri=settings.redirect_uri,
        scope=" ".join(settings.scopes),
        cache_handler=MemoryCacheHandler(),
        open_browser=False,
        show_dialog=False,
    )


def _bundle(token_info: dict, previous_refresh: str | None = None) -> TokenBundle:
    expires_at = token_info.get("expires_at") or time.time() + token_info.get("expires_in", 3600)
    return TokenBundle(
        access_token=token_info["access_token"],
        refresh_token=token_info.get("refresh_token") or previous_refresh,  # may rotate
        expires_at=float(expires_at),
    )


def authorize_url(oauth: SpotifyOAuth, state: str) -> str:
    return oauth.get_authorize_url(state=state)


def exchange_code(oauth: SpotifyOAuth, code: str) -> TokenBundle:
    try:
        token_info = oauth.get_access_token(code, as_dict=True, check_cache=False)
    except SpotifyOauthError as e:
        raise AuthError(f"Token exchange failed: {e}") from e
    except requests.RequestException as e:
        raise NetworkError(f"Token endpoint unreachable: {e}") from e
    return _bundle(token_info)


def make_refresher(oauth: SpotifyOAuth):
    def refresh(tb: TokenBundle) -> TokenBundle:
        try:
            token_info = oauth.refresh_access_token(tb.refresh_token)
        except SpotifyOauthError as e:
            raise AuthError(f"Token refresh failed: {e}") from e
        except requests.RequestException as e:
            raise NetworkError(f"Token endpoint unreachable: {e}") from e
        return _bundle(token_info, previous_refresh=tb.refresh_token)

    return refresh
