import json
import logging
import os
from typing import Any, Dict, Iterable, List

from lovesync.domain.entities import MUSICBRAINZ_ARTIST, LocalArtist, LocalSong
from lovesync.domain.ports import LibraryStore, PreferenceStore

logger = logging.getLogger(__name__)


class JsonLibraryStore(LibraryStore, PreferenceStore):
    """File-backed library and preference store.

    Stands in for the host catalog when running from the CLI or HTTP surface.
    The file holds, per user, the visible artists with their songs and the ids
    of songs flagged as favorite::

        {"users": {"<user_id>": {"artists": [{"id": "...", "name": "...",
          "provider_ids": {"MusicBrainzArtist": "..."},
          "songs": [{"id": "...", "name": "..."}]}],
          "favorites": ["<song_id>"]}}}

    Favorite writes are persisted immediately.
    """

    def __init__(self, path: str):
        self.path = path
        self._data = self._load()

    def _load(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            raise FileNotFoundError(f"Library file not found: {self.path}")
        with open(self.path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        data.setdefault("users", {})
        return data

    def _save(self) -> None:
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(self._data, f, indent=2, ensure_ascii=False)

    def _user(self, user_id: str) -> Dict[str, Any]:
        return self._data["users"].get(user_id, {})

    def list_artists(self, user_id: str) -> Iterable[LocalArtist]:
        return [
            LocalArtist(
                id=str(raw["id"]),
                name=raw.get("name", ""),
                provider_ids=dict(raw.get("provider_ids") or {}),
            )
            for raw in self._user(user_id).get("artists", [])
        ]

    def list_songs(self, artist: LocalArtist, user_id: str) -> Iterable[LocalSong]:
        songs: List[LocalSong] = []
        for raw in self._user(user_id).get("artists", []):
            if str(raw["id"]) != artist.id:
                continue
            for song in raw.get("songs", []):
                songs.append(LocalSong(
                    id=str(song["id"]),
                    name=song.get("name", ""),
                    artist_identity=artist.provider_ids.get(MUSICBRAINZ_ARTIST),
                ))
        return songs

    def is_favorite(self, user_id: str, song_id: str) -> bool:
        return song_id in self._user(user_id).get("favorites", [])

    def set_favorite(self, user_id: str, song_id: str, value: bool) -> None:
        user = self._data["users"].setdefault(user_id, {})
        favorites = user.setdefault("favorites", [])
        if value and song_id not in favorites:
            favorites.append(song_id)
        elif not value and song_id in favorites:
            favorites.remove(song_id)
        else:
            return
        self._save()
        logger.debug(f"Saved favorite={value} for user {user_id}, song {song_id}")
