from lovesync.application.matching import (
    FavoriteMatcher, find_match, group_by_artist, resolve_artist_identity
)
from lovesync.domain.entities import MUSICBRAINZ_ARTIST, FavoriteTrack, LocalArtist, LocalSong


QUEEN = "0383dadf-2a4e-4d10-a46a-e9e041da8eb3"
ABBA = "d87e52c5-bb8d-4da8-b941-9f4928627dc8"


def _tracks():
    return [
        FavoriteTrack(name="Don't Stop Me Now", artist_name="Queen", artist_identity=QUEEN),
        FavoriteTrack(name="Dancing Queen", artist_name="ABBA", artist_identity=ABBA),
        FavoriteTrack(name="Bohemian Rhapsody", artist_name="Queen", artist_identity=QUEEN),
        FavoriteTrack(name="Unknown Song", artist_name="Nobody"),
    ]


def test_group_by_artist_keeps_order_and_skips_missing_identity():
    groups = group_by_artist(_tracks())

    assert set(groups) == {QUEEN, ABBA}
    assert [t.name for t in groups[QUEEN]] == ["Don't Stop Me Now", "Bohemian Rhapsody"]
    assert [t.name for t in groups[ABBA]] == ["Dancing Queen"]


def test_group_by_artist_empty():
    assert group_by_artist([]) == {}


def test_find_match_returns_first_loose_match():
    tracks = [
        FavoriteTrack(name="Yellow", artist_identity=QUEEN),
        FavoriteTrack(name="yellow!", artist_identity=QUEEN),
    ]
    match = find_match(tracks, LocalSong(id="s1", name="YELLOW"))
    assert match is tracks[0]


def test_find_match_none():
    assert find_match(_tracks(), LocalSong(id="s1", name="Killer Queen")) is None


def test_resolve_artist_identity():
    artist = LocalArtist(id="a1", name="Queen", provider_ids={MUSICBRAINZ_ARTIST: f" {QUEEN} "})
    assert resolve_artist_identity(artist) == QUEEN


def test_resolve_artist_identity_missing_or_blank():
    assert resolve_artist_identity(LocalArtist(id="a1", name="Queen")) is None
    assert resolve_artist_identity(LocalArtist(id="a1", name="Queen", provider_ids={MUSICBRAINZ_ARTIST: " "})) is None


class TestFavoriteMatcher:
    """Tests for the per-user matcher."""

    def setup_method(self):
        self.matcher = FavoriteMatcher(_tracks())

    def test_counts_ungrouped_tracks(self):
        assert self.matcher.ungrouped_count == 1

    def test_tracks_for_unknown_identity(self):
        assert self.matcher.tracks_for("missing") == []
        assert self.matcher.tracks_for(None) == []

    def test_match_within_artist_only(self):
        song = LocalSong(id="s1", name="dancing queen", artist_identity=QUEEN)
        assert self.matcher.match(QUEEN, song) is None
        assert self.matcher.match(ABBA, song).name == "Dancing Queen"

    def test_match_loose_title(self):
        song = LocalSong(id="s1", name="Dont Stop Me Now", artist_identity=QUEEN)
        assert self.matcher.match(QUEEN, song).name == "Don't Stop Me Now"
