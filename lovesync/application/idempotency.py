import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Set, Tuple

from lovesync.domain.ports import PreferenceStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FavoriteUpdate:
    """Request to flag one local song as favorite for one user."""

    user_id: str
    song_id: str
    song_name: str = ""
    matched_track: str = ""

    @property
    def key(self) -> Tuple[str, str]:
        return (self.user_id, self.song_id)


@dataclass
class UpdateSummary:
    """Outcome of applying a set of favorite updates."""

    written: int = 0
    unchanged: int = 0
    applied: List[FavoriteUpdate] = field(default_factory=list)


class FavoriteUpdateSet:
    """Ordered, de-duplicated collection of favorite updates.

    Adding the same (user, song) pair twice keeps only the first update.
    """

    def __init__(self, updates: Iterable[FavoriteUpdate] = ()):
        self._updates: List[FavoriteUpdate] = []
        self._keys: Set[Tuple[str, str]] = set()
        for update in updates:
            self.add(update)

    def add(self, update: FavoriteUpdate) -> bool:
        if update.key in self._keys:
            return False
        self._keys.add(update.key)
        self._updates.append(update)
        return True

    def __iter__(self):
        return iter(self._updates)

    def __len__(self) -> int:
        return len(self._updates)


def apply_favorite(store: PreferenceStore, update: FavoriteUpdate) -> bool:
    """Set the favorite flag unless it is already set.

    Returns:
        True if the store was written, False if the song was already a favorite
    """
    if store.is_favorite(update.user_id, update.song_id):
        return False
    store.set_favorite(update.user_id, update.song_id, True)
    return True


def apply_favorite_updates(store: PreferenceStore, updates: Iterable[FavoriteUpdate]) -> UpdateSummary:
    """Apply updates; applying the same set again performs no writes."""
    summary = UpdateSummary()
    for update in FavoriteUpdateSet(updates):
        if apply_favorite(store, update):
            summary.written += 1
            summary.applied.append(update)
            logger.debug(f"Found library match for {update.song_name} = {update.matched_track}")
        else:
            summary.unchanged += 1
    return summary
