from __future__ import annotations

import logging
from typing import Any, List, Optional

import requests
from pydantic import ValidationError

from listentrack.models.artists import ArtistRecord, ProfileModel, TopArtistsModel, UserIdentity
from listentrack.utils.errors import AuthError, NetworkError, ParseError
from listentrack.utils.settings import SPOTIFY_API_BASE

logger = logging.getLogger(__name__)


class SpotifyClient:
    """Bearer-token calls against the Spotify Web API. No retries here."""

    def __init__(
        self,
        api_base: str = SPOTIFY_API_BASE,
        timeout: float = 10.0,
        time_range: str = "medium_term",
        limit: int = 20,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.time_range = time_range
        self.limit = limit
        self.session = session or requests.Session()

    def _get(self, path: str, access_token: str, params: Optional[dict] = None) -> Any:
        url = f"{self.api_base}{path}"
        try:
            r = self.session.get(
                url,
                params=params,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise NetworkError(f"GET {path} failed: {e}") from e

        if r.status_code in (401, 403):
            raise AuthError(f"GET {path} rejected with {r.status_code}: {r.text}")
        if not 200 <= r.status_code < 300:
            raise NetworkError(f"GET {path} returned {r.status_code}: {r.text}")

        logger.debug("Spotify response for %s: %s", path, r.text)
        try:
            return r.json()
        except ValueError as e:
            raise ParseError(f"GET {path} returned a non-JSON body") from e

    def fetch_top_artists(self, access_token: str) -> List[ArtistRecord]:
        """
        Current user's top artists, most listened first.
        The order of `items` is the ranking and is returned untouched.
        """
        data = self._get(
            "/me/top/artists",
            access_token,
            params={"time_range": self.time_range, "limit": self.limit},
        )
        try:
            parsed = TopArtistsModel.model_validate(data)
        except ValidationError as e:
            raise ParseError(f"Unexpected top artists payload: {e}") from e
        return [item.to_record() for item in parsed.items]

    def fetch_profile(self, access_token: str) -> UserIdentity:
        data = self._get("/me", access_token)
        try:
            profile = ProfileModel.model_validate(data)
        except ValidationError as e:
            raise ParseError(f"Unexpected profile payload: {e}") from e
        return UserIdentity(user_id=profile.id, display_name=profile.display_name or profile.id)
