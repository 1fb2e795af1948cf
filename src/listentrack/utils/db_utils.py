# utils/db_utils.py
from __future__ import annotations

import sqlite3
import time
from contextlib import contextmanager
from datetime import timedelta
from typing import Dict, Iterator, List, Optional, Sequence

from listentrack.models.artists import RankedArtist, StoredArtist
from listentrack.utils.errors import PersistenceError


class ListeningStore:
    """
    Owns the SQLite schema and every write to it. Each public operation runs
    in its own transaction; a failure rolls it back and surfaces as
    PersistenceError.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            with conn:  # commit on success, rollback on exception
                yield conn
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()

    def init_db(self) -> None:
        with self._transaction() as con:
            con.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id        TEXT PRIMARY KEY,
                username  TEXT
            );
            """)

            con.execute("""
            CREATE TABLE IF NOT EXISTS artists (
                id          TEXT PRIMARY KEY,
                name        TEXT NOT NULL,
                popularity  INTEGER NOT NULL,
                followers   INTEGER NOT NULL
            );
            """)

            con.execute("""
            CREATE TABLE IF NOT EXISTS genres (
                artist_id   TEXT NOT NULL,
                genre       TEXT NOT NULL,
                first_seen  REAL NOT NULL,      -- epoch seconds
                UNIQUE (artist_id, genre),
                FOREIGN KEY (artist_id) REFERENCES artists(id)
            );
            """)

            con.execute("""
            CREATE TABLE IF NOT EXISTS user_artists (
                user_id    TEXT NOT NULL,
                artist_id  TEXT NOT NULL,
                rank       INTEGER NOT NULL,    -- 1 = most listened
                timestamp  REAL NOT NULL,       -- epoch seconds the rank was observed
                PRIMARY KEY (user_id, artist_id),
                FOREIGN KEY (user_id) REFERENCES users(id),
                FOREIGN KEY (artist_id) REFERENCES artists(id)
            );
            """)

            con.execute("CREATE INDEX IF NOT EXISTS idx_user_artists_time ON user_artists(timestamp DESC);")

    # ---- writes ----
    def upsert_user(self, user_id: str, display_name: Optional[str]) -> None:
        """Insert the user, or refresh the display name; the id never changes."""
        with self._transaction() as con:
            con.execute("""
                INSERT INTO users (id, username) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET username = excluded.username
            """, (user_id, display_name))

    def upsert_cycle(
        self,
        user_id: str,
        ranked: Sequence[RankedArtist],
        observed_at: Optional[float] = None,
    ) -> None:
        """
        Write one fetch cycle atomically:
          1) artist rows, last write wins
          2) genre memberships, insert-or-ignore (old ones are never pruned)
          3) (user, artist) rank rows replaced with this cycle's rank + time
        """
        ts = observed_at if observed_at is not None else time.time()
        with self._transaction() as con:
            for entry in ranked:
                a = entry.artist
                con.execute("""
                    INSERT INTO artists (id, name, popularity, followers)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        name       = excluded.name,
                        popularity = excluded.popularity,
                        followers  = excluded.followers
                """, (a.id, a.name, a.popularity, a.followers))

                con.executemany("""
                    INSERT OR IGNORE INTO genres (artist_id, genre, first_seen)
                    VALUES (?, ?, ?)
                """, [(a.id, g, ts) for g in a.genres])

                con.execute("""
                    INSERT INTO user_artists (user_id, artist_id, rank, timestamp)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(user_id, artist_id) DO UPDATE SET
                        rank      = excluded.rank,
                        timestamp = excluded.timestamp
                """, (user_id, a.id, entry.rank, ts))

    # ---- reads ----
    def get_user(self, user_id: str) -> Optional[sqlite3.Row]:
        with self._transaction() as con:
            return con.execute("SELECT id, username FROM users WHERE id = ?", (user_id,)).fetchone()

    def aggregate_genres_since(
        self,
        window: timedelta = timedelta(days=7),
        now: Optional[float] = None,
    ) -> Dict[str, int]:
        """
        Genre -> number of artists carrying it, restricted to artists whose
        rank was observed inside the window. Highest count first.
        """
        cutoff = (now if now is not None else time.time()) - window.total_seconds()
        with self._transaction() as con:
            rows = con.execute("""
                SELECT g.genre, COUNT(*) AS count
                FROM genres g
                WHERE EXISTS (
                    SELECT 1 FROM user_artists ua
                    WHERE ua.artist_id = g.artist_id
                      AND ua.timestamp >= ?
                )
                GROUP BY g.genre
                ORDER BY count DESC, MIN(g.rowid)
            """, (cutoff,)).fetchall()
        return {r["genre"]: r["count"] for r in rows}

    def list_stored_artists(self) -> List[StoredArtist]:
        with self._transaction() as con:
            rows = con.execute("""
                SELECT id, name, popularity, followers
                FROM artists
                ORDER BY rowid
            """).fetchall()
        return [StoredArtist(r["id"], r["name"], r["popularity"], r["followers"]) for r in rows]

    def list_stored_genre_counts(self) -> Dict[str, int]:
        with self._transaction() as con:
            rows = con.execute("""
                SELECT genre, COUNT(*) AS count
                FROM genres
                GROUP BY genre
                ORDER BY count DESC, MIN(rowid)
            """).fetchall()
        return {r["genre"]: r["count"] for r in rows}

    def list_user_ranks(self, user_id: str) -> List[dict]:
        """Latest stored rank per artist for a user, rank 1 first."""
        with self._transaction() as con:
            rows = con.execute("""
                SELECT ua.rank, ua.timestamp, a.id, a.name, a.popularity, a.followers
                FROM user_artists ua
                JOIN artists a ON a.id = ua.artist_id
                WHERE ua.user_id = ?
                ORDER BY ua.rank
            """, (user_id,)).fetchall()
        return [dict(r) for r in rows]
