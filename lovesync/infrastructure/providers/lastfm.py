import logging
from typing import Optional

from lovesync.domain.entities import ApiResult, FavoritesPage, ScrobbleAccount
from lovesync.domain.ports import CancellationSignal, FavoritesSource
from lovesync.infrastructure.scrobble.client import ScrobbleApiClient
from lovesync.infrastructure.scrobble.messages import (
    LovedTracksRequest,
    StatusResponse,
    TrackLoveRequest,
    TrackUnloveRequest,
    parse_loved_tracks,
    parse_status,
)

logger = logging.getLogger(__name__)


class LastfmProvider(FavoritesSource):
    """Last.fm adapter implementing the FavoritesSource port.

    Reads loved tracks page by page and can love or unlove a single track.
    """

    def __init__(self,
                 client: ScrobbleApiClient,
                 api_key: str,
                 page_size: int = 1000,
                 secure: bool = True):
        """Initialize the provider.

        Args:
            client: Signed API client
            api_key: Public API key sent with every request
            page_size: Number of loved tracks requested per page
            secure: Use HTTPS for requests
        """
        self._client = client
        self.api_key = api_key
        self.page_size = page_size
        self.secure = secure

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._client.close()

    def __enter__(self) -> "LastfmProvider":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def get_loved_tracks(self, account: ScrobbleAccount, page: int,
                         cancel_event: Optional[CancellationSignal] = None) -> ApiResult[FavoritesPage]:
        """Return one 1-indexed page of the account's loved tracks."""
        request = LovedTracksRequest(
            api_key=self.api_key,
            session_key=account.session_key,
            secure=self.secure,
            user=account.username,
            page=page,
            limit=self.page_size,
        )
        return self._client.get(request, parse_loved_tracks, cancel_event=cancel_event)

    def love_track(self, account: ScrobbleAccount, artist: str, track: str) -> ApiResult[StatusResponse]:
        """Mark a track as loved on the account."""
        logger.info(f"Loving '{track}' by '{artist}' for {account.username}")
        request = TrackLoveRequest(
            api_key=self.api_key,
            session_key=account.session_key,
            secure=self.secure,
            artist=artist,
            track=track,
        )
        return self._client.post(request, parse_status)

    def unlove_track(self, account: ScrobbleAccount, artist: str, track: str) -> ApiResult[StatusResponse]:
        """Remove the loved mark of a track on the account."""
        logger.info(f"Unloving '{track}' by '{artist}' for {account.username}")
        request = TrackUnloveRequest(
            api_key=self.api_key,
            session_key=account.session_key,
            secure=self.secure,
            artist=artist,
            track=track,
        )
        return self._client.post(request, parse_status)
