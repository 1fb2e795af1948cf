from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from listentrack.models.artists import UserIdentity
from listentrack.utils.errors import AuthError


@dataclass
class TokenBundle:
    access_token: str
    refresh_token: Optional[str]
    expires_at: float  # epoch seconds


Refresher = Callable[[TokenBundle], TokenBundle]


# ---- In-process token store (never persisted) ----
class TokenStore:
    """
    Tokens per user id, held in memory only. The most recently authenticated
    user is the "current" one the scheduler polls for.
    """

    def __init__(self, refresher: Optional[Refresher] = None) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[UserIdentity, TokenBundle]] = {}
        self._current: Optional[str] = None
        self.refresher = refresher

    def set_tokens(self, identity: UserIdentity, tb: TokenBundle) -> None:
        with self._lock:
            self._entries[identity.user_id] = (identity, tb)
            self._current = identity.user_id

    def get_tokens(self, user_id: str) -> Optional[TokenBundle]:
        with self._lock:
            entry = self._entries.get(user_id)
            return entry[1] if entry else None

    def get_identity(self, user_id: str) -> Optional[UserIdentity]:
        with self._lock:
            entry = self._entries.get(user_id)
            return entry[0] if entry else None

    def clear_tokens(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)
            if self._current == user_id:
                self._current = None

    def current_user_id(self) -> Optional[str]:
        with self._lock:
            return self._current

    def access_token_for(self, user_id: str) -> str:
        """Return a usable access token, refreshing it when close to expiry."""
        with self._lock:
            entry = self._entries.get(user_id)
        if entry is None:
            raise AuthError(f"No token for user {user_id}; log in first")
        identity, tb = entry

        if time.time() < tb.expires_at - 30:
            return tb.access_token  # still valid

        if not tb.refresh_token or self.refresher is None:
            # No way to refresh; force re-auth
            self.clear_tokens(user_id)
            raise AuthError(f"Token for user {user_id} expired")

        try:
            fresh = self.refresher(tb)
        except AuthError:
            self.clear_tokens(user_id)
            raise
        with self._lock:
            if user_id in self._entries:
                self._entries[user_id] = (identity, fresh)
        return fresh.access_token
