# jobs/fetch_cycle.py
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List, Sequence

from listentrack.models.artists import ArtistRecord, FetchSummary, GenreCount, RankedArtist
from listentrack.spotify.client import SpotifyClient
from listentrack.utils.db_utils import ListeningStore
from listentrack.utils.session_utils import TokenStore

logger = logging.getLogger(__name__)


def rank_artists(artists: Sequence[ArtistRecord]) -> List[RankedArtist]:
    # provider order is the ranking; never re-sort
    return [RankedArtist(rank=i, artist=a) for i, a in enumerate(artists, start=1)]


def summarize_genres(artists: Sequence[ArtistRecord]) -> List[GenreCount]:
    """
    Count how many fetched artists carry each genre. Sorted by count desc;
    ties keep the order in which the genre was first seen.
    """
    counts: Dict[str, int] = {}
    for a in artists:
        for g in a.genres:
            counts[g] = counts.get(g, 0) + 1
    # dicts keep first-insertion order and sorted() is stable
    ordered = sorted(counts.items(), key=lambda kv: -kv[1])
    return [GenreCount(name=g, count=c) for g, c in ordered]


class FetchPipeline:
    """One fetch cycle: provider call -> ranks -> atomic upsert -> genre summary."""

    def __init__(
        self,
        client: SpotifyClient,
        store: ListeningStore,
        tokens: TokenStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.store = store
        self.tokens = tokens
        self.clock = clock
        self._lock = threading.Lock()

    def run_fetch_cycle(self, user_id: str) -> FetchSummary:
        # scheduler ticks and on-demand requests share this entry point
        with self._lock:
            access_token = self.tokens.access_token_for(user_id)
            artists = self.client.fetch_top_artists(access_token)

            ranked = rank_artists(artists)
            fetched_at = self.clock()
            self.store.upsert_cycle(user_id, ranked, observed_at=fetched_at)

            genres = summarize_genres(artists)
            logger.info("Stored fetch cycle for user %s: %d artists, %d genres",
                        user_id, len(ranked), len(genres))
            return FetchSummary(user_id=user_id, artists=ranked, genres=genres, fetched_at=fetched_at)
