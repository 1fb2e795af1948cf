"""Test configuration and fixtures"""

import time
from typing import List, Union

import pytest

from listentrack.jobs.fetch_cycle import FetchPipeline
from listentrack.models.artists import ArtistRecord, UserIdentity
from listentrack.utils.db_utils import ListeningStore
from listentrack.utils.session_utils import TokenBundle, TokenStore
from listentrack.utils.settings import Settings


def make_artist(artist_id, name=None, popularity=50, followers=1000, genres=()):
    return ArtistRecord(
        id=artist_id,
        name=name or f"Artist {artist_id}",
        popularity=popularity,
        followers=followers,
        genres=list(genres),
    )


class FakeSpotifyClient:
    """Stands in for SpotifyClient; replays queued responses or raises queued errors."""

    def __init__(self, responses: List[Union[List[ArtistRecord], Exception]] = None):
        self.responses = list(responses or [])
        self.calls = []
        self.profile = UserIdentity(user_id="u1", display_name="User One")

    def queue(self, response):
        self.responses.append(response)

    def fetch_top_artists(self, access_token):
        self.calls.append(access_token)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def fetch_profile(self, access_token):
        return self.profile


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "listentrack.db")


@pytest.fixture
def store(db_path):
    """Initialized store with user u1 already registered"""
    s = ListeningStore(db_path)
    s.init_db()
    s.upsert_user("u1", "User One")
    return s


@pytest.fixture
def tokens():
    t = TokenStore()
    t.set_tokens(
        UserIdentity(user_id="u1", display_name="User One"),
        TokenBundle(access_token="token-u1", refresh_token="refresh-u1", expires_at=time.time() + 3600),
    )
    return t


@pytest.fixture
def fake_client():
    return FakeSpotifyClient()


@pytest.fixture
def pipeline(fake_client, store, tokens):
    return FetchPipeline(fake_client, store, tokens)


@pytest.fixture
def settings(db_path):
    return Settings(
        client_id="test-client-id",
        client_secret="test-client-secret",
        redirect_uri="http://localhost:8080/callback",
        flask_secret="test-secret",
        db_path=db_path,
        fetch_interval_minutes=1,
    )


@pytest.fixture
def sample_top_artists_payload():
    """Spotify /me/top/artists body, deliberately not sorted by popularity"""
    return {
        "items": [
            {
                "id": "a1",
                "name": "First",
                "popularity": 40,
                "followers": {"href": None, "total": 1200},
                "genres": ["rock", "pop"],
                "type": "artist",
            },
            {
                "id": "a2",
                "name": "Second",
                "popularity": 95,
                "followers": {"href": None, "total": 99000},
                "genres": ["pop"],
                "type": "artist",
            },
            {
                "id": "a3",
                "name": "Third",
                "popularity": 70,
                "followers": {"href": None, "total": 500},
                "genres": [],
                "type": "artist",
            },
        ],
        "total": 3,
        "limit": 20,
        "offset": 0,
    }
