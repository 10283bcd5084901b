from __future__ import annotations

from typing import Iterable, List, Optional, Protocol

from lovesync.domain.entities import ApiResult, FavoritesPage, LocalArtist, LocalSong, ScrobbleAccount


class CancellationSignal(Protocol):
    """Anything exposing ``is_set()``, typically a ``threading.Event``."""

    def is_set(self) -> bool:
        """Return True once cancellation has been requested."""


class ProgressSink(Protocol):
    """Receives fractional progress on a 0-100 scale."""

    def __call__(self, value: float) -> None:
        ...


class AccountSource(Protocol):
    """Per-user configuration surface: session credential and sync toggles."""

    def list_accounts(self) -> List[ScrobbleAccount]:
        """Return every configured account."""


class FavoritesSource(Protocol):
    """Port for reading a user's loved tracks one page at a time."""

    def get_loved_tracks(self, account: ScrobbleAccount, page: int,
                         cancel_event: Optional[CancellationSignal] = None) -> ApiResult[FavoritesPage]:
        """Return the given 1-indexed page of loved tracks."""


class LibraryStore(Protocol):
    """Host catalog store."""

    def list_artists(self, user_id: str) -> Iterable[LocalArtist]:
        """Return the artists visible to the user."""

    def list_songs(self, artist: LocalArtist, user_id: str) -> Iterable[LocalSong]:
        """Return the songs tagged with the artist and visible to the user."""


class PreferenceStore(Protocol):
    """Host per-user preference store."""

    def is_favorite(self, user_id: str, song_id: str) -> bool:
        """Return the favorite flag of the (user, song) pair."""

    def set_favorite(self, user_id: str, song_id: str, value: bool) -> None:
        """Persist the favorite flag of the (user, song) pair."""
