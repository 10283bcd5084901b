import threading
from unittest.mock import Mock

from lovesync.domain.entities import ApiResult, ScrobbleAccount
from lovesync.infrastructure.providers.lastfm import LastfmProvider
from lovesync.infrastructure.scrobble.messages import (
    LovedTracksRequest, TrackLoveRequest, TrackUnloveRequest, parse_loved_tracks, parse_status
)


class TestLastfmProvider:
    """Tests for the Last.fm favorites adapter."""

    def setup_method(self):
        self.client = Mock()
        self.client.get.return_value = ApiResult.ok("page")
        self.client.post.return_value = ApiResult.ok("status")
        self.provider = LastfmProvider(self.client, api_key="key", page_size=200, secure=False)
        self.account = ScrobbleAccount(user_id="u1", username="alice", session_key="sk-1")

    def test_get_loved_tracks_builds_request(self):
        cancel = threading.Event()

        result = self.provider.get_loved_tracks(self.account, 4, cancel_event=cancel)

        assert result.payload == "page"
        request, parse = self.client.get.call_args[0]
        assert isinstance(request, LovedTracksRequest)
        assert request.user == "alice"
        assert request.page == 4
        assert request.limit == 200
        assert request.session_key == "sk-1"
        assert request.secure is False
        assert parse is parse_loved_tracks
        assert self.client.get.call_args[1]["cancel_event"] is cancel

    def test_love_track_posts(self):
        self.provider.love_track(self.account, "Queen", "Innuendo")

        request, parse = self.client.post.call_args[0]
        assert type(request) is TrackLoveRequest
        assert (request.artist, request.track) == ("Queen", "Innuendo")
        assert parse is parse_status

    def test_unlove_track_posts(self):
        self.provider.unlove_track(self.account, "Queen", "Innuendo")

        request = self.client.post.call_args[0][0]
        assert isinstance(request, TrackUnloveRequest)
        assert request.to_params()["method"] == "track.unlove"

    def test_close_closes_client(self):
        self.provider.close()

        self.client.close.assert_called_once()

    def test_context_manager_closes_client(self):
        with self.provider as provider:
            assert provider is self.provider

        self.client.close.assert_called_once()
