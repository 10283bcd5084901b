from typing import Dict, Iterable, List, Optional

from lovesync.domain.entities import MUSICBRAINZ_ARTIST, FavoriteTrack, LocalArtist, LocalSong
from lovesync.domain.normalization import is_like


ArtistGroup = Dict[str, List[FavoriteTrack]]


def group_by_artist(tracks: Iterable[FavoriteTrack]) -> ArtistGroup:
    """Group loved tracks by artist identity, keeping their order.

    Tracks without an artist identity are left out: they cannot be reached by
    an identity lookup.
    """
    groups: ArtistGroup = {}
    for track in tracks:
        if not track.artist_identity:
            continue
        groups.setdefault(track.artist_identity, []).append(track)
    return groups


def find_match(tracks: Iterable[FavoriteTrack], song: LocalSong) -> Optional[FavoriteTrack]:
    """Return the first track whose name is loosely equal to the song name."""
    for track in tracks:
        if is_like(song.name, track.name):
            return track
    return None


def resolve_artist_identity(artist: LocalArtist) -> Optional[str]:
    """Return the cross-service identity of a local artist, if it has one."""
    identity = (artist.provider_ids or {}).get(MUSICBRAINZ_ARTIST)
    if identity is None or not identity.strip():
        return None
    return identity.strip()


class FavoriteMatcher:
    """Resolves local songs against a user's loved tracks.

    The artist groups are built once per user and discarded with the matcher.
    """

    def __init__(self, tracks: Iterable[FavoriteTrack]):
        tracks = list(tracks)
        self.groups = group_by_artist(tracks)
        self.ungrouped_count = sum(1 for t in tracks if not t.artist_identity)

    def tracks_for(self, artist_identity: Optional[str]) -> List[FavoriteTrack]:
        if not artist_identity:
            return []
        return self.groups.get(artist_identity, [])

    def match(self, artist_identity: Optional[str], song: LocalSong) -> Optional[FavoriteTrack]:
        return find_match(self.tracks_for(artist_identity), song)
