"""Test the fetch pipeline and genre summary"""

import threading
import time

import pytest

from conftest import FakeSpotifyClient, make_artist
from listentrack.jobs.fetch_cycle import FetchPipeline, rank_artists, summarize_genres
from listentrack.models.artists import GenreCount, UserIdentity
from listentrack.utils.errors import AuthError, NetworkError, ParseError
from listentrack.utils.session_utils import TokenBundle, TokenStore


class TestSummarizeGenres:
    def test_ties_keep_first_seen_order(self):
        artists = [
            make_artist("1", genres=["rock", "pop"]),
            make_artist("2", genres=["pop"]),
            make_artist("3", genres=["rock"]),
        ]
        assert summarize_genres(artists) == [GenreCount("rock", 2), GenreCount("pop", 2)]

    def test_sorted_by_count_desc(self):
        artists = [
            make_artist("1", genres=["indie"]),
            make_artist("2", genres=["pop", "indie"]),
            make_artist("3", genres=["pop", "indie", "folk"]),
        ]
        assert [(g.name, g.count) for g in summarize_genres(artists)] == [
            ("indie", 3), ("pop", 2), ("folk", 1),
        ]

    def test_no_genres(self):
        assert summarize_genres([make_artist("1")]) == []
        assert summarize_genres([]) == []


class TestRankArtists:
    def test_dense_ranks_in_received_order(self):
        ranked = rank_artists([make_artist("z", popularity=1), make_artist("a", popularity=99)])
        assert [(r.rank, r.artist.id) for r in ranked] == [(1, "z"), (2, "a")]


class TestFetchPipeline:
    def test_end_to_end_two_fetches(self, pipeline, fake_client, store):
        fake_client.queue([make_artist("a1", name="X", popularity=80, followers=1000, genres=["rock"])])
        first = pipeline.run_fetch_cycle("u1")

        assert [(r["id"], r["rank"]) for r in store.list_user_ranks("u1")] == [("a1", 1)]
        assert store.list_stored_genre_counts() == {"rock": 1}
        assert [(g.name, g.count) for g in first.genres] == [("rock", 1)]

        fake_client.queue([
            make_artist("a2", name="Y", popularity=60, followers=10, genres=["pop"]),
            make_artist("a1", name="X", popularity=80, followers=1000, genres=["rock"]),
        ])
        second = pipeline.run_fetch_cycle("u1")

        assert [(r["id"], r["rank"]) for r in store.list_user_ranks("u1")] == [("a2", 1), ("a1", 2)]
        assert store.list_stored_genre_counts() == {"pop": 1, "rock": 1}
        assert [a.artist.id for a in second.artists] == ["a2", "a1"]
        assert [(g.name, g.count) for g in second.genres] == [("pop", 1), ("rock", 1)]

    def test_uses_stored_token(self, pipeline, fake_client):
        fake_client.queue([])
        pipeline.run_fetch_cycle("u1")
        assert fake_client.calls == ["token-u1"]

    @pytest.mark.parametrize("error", [NetworkError("down"), AuthError("expired"), ParseError("junk")])
    def test_provider_failure_writes_nothing(self, pipeline, fake_client, store, error):
        fake_client.queue([make_artist("a1", genres=["rock"])])
        pipeline.run_fetch_cycle("u1")

        fake_client.queue(error)
        with pytest.raises(type(error)):
            pipeline.run_fetch_cycle("u1")

        assert [a.id for a in store.list_stored_artists()] == ["a1"]
        assert [(r["id"], r["rank"]) for r in store.list_user_ranks("u1")] == [("a1", 1)]

    def test_unknown_user_is_auth_error(self, pipeline, fake_client):
        with pytest.raises(AuthError):
            pipeline.run_fetch_cycle("nobody")
        assert fake_client.calls == []

    def test_timestamp_comes_from_clock(self, fake_client, store, tokens):
        pipeline = FetchPipeline(fake_client, store, tokens, clock=lambda: 12345.0)
        fake_client.queue([make_artist("a1")])

        summary = pipeline.run_fetch_cycle("u1")

        assert summary.fetched_at == 12345.0
        assert store.list_user_ranks("u1")[0]["timestamp"] == 12345.0

    def test_cycles_do_not_overlap(self, store, tokens):
        active = []
        overlaps = []

        class SlowClient(FakeSpotifyClient):
            def fetch_top_artists(self, access_token):
                active.append(1)
                if len(active) > 1:
                    overlaps.append(True)
                time.sleep(0.05)
                active.pop()
                return [make_artist("a1")]

        pipeline = FetchPipeline(SlowClient(), store, tokens)
        threads = [threading.Thread(target=pipeline.run_fetch_cycle, args=("u1",)) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == []
        assert len(store.list_user_ranks("u1")) == 1


class TestTokenStore:
    def test_expired_token_is_refreshed(self):
        def refresher(tb):
            return TokenBundle("fresh", None, time.time() + 3600)

        store = TokenStore(refresher=refresher)
        store.set_tokens(UserIdentity("u1", "One"), TokenBundle("stale", "r1", time.time() - 10))

        assert store.access_token_for("u1") == "fresh"
        assert store.get_tokens("u1").access_token == "fresh"

    def test_expired_without_refresh_token_forces_login(self):
        store = TokenStore()
        store.set_tokens(UserIdentity("u1", "One"), TokenBundle("stale", None, time.time() - 10))

        with pytest.raises(AuthError):
            store.access_token_for("u1")
        assert store.current_user_id() is None
