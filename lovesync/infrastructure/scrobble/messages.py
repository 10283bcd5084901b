"""Request and response shapes of the scrobble service methods in use."""

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Optional

from lovesync.domain.entities import FavoriteTrack, FavoritesPage, PageMetadata


@dataclass
class ApiRequest:
    """Base request. Subclasses set ``method`` and add their own parameters."""

    method: ClassVar[str] = ""

    api_key: str
    session_key: Optional[str] = None
    secure: bool = True

    def extra_params(self) -> Dict[str, Any]:
        return {}

    def to_params(self) -> Dict[str, str]:
        """Flatten the request into the unsigned parameter set."""
        params: Dict[str, str] = {
            "method": self.method,
            "api_key": self.api_key,
        }
        if self.session_key:
            params["sk"] = self.session_key
        for key, value in self.extra_params().items():
            if value is not None:
                params[key] = str(value)
        return params


@dataclass
class LovedTracksRequest(ApiRequest):
    method: ClassVar[str] = "user.getLovedTracks"

    user: str = ""
    page: int = 1
    limit: int = 1000

    def extra_params(self) -> Dict[str, Any]:
        return {"user": self.user, "page": self.page, "limit": self.limit}


@dataclass
class TrackLoveRequest(ApiRequest):
    method: ClassVar[str] = "track.love"

    artist: str = ""
    track: str = ""

    def extra_params(self) -> Dict[str, Any]:
        return {"artist": self.artist, "track": self.track}


@dataclass
class TrackUnloveRequest(TrackLoveRequest):
    method: ClassVar[str] = "track.unlove"


@dataclass(frozen=True)
class StatusResponse:
    """Response of write methods, which return an empty JSON object on success."""

    status: str = "ok"


def _to_int(value: Any, default: int) -> int:
    # numeric attributes arrive as strings
    if value is None or value == "":
        return default
    return int(value)


def _blank_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _require_object(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise TypeError(f"{what} is a {type(value).__name__}, expected an object")
    return value


def parse_track(item: Dict[str, Any]) -> FavoriteTrack:
    """Map one track object of a list response to a FavoriteTrack."""
    item = _require_object(item, "track")
    artist = item.get("artist") or {}
    if isinstance(artist, str):
        artist = {"name": artist}
    artist = _require_object(artist, "track artist")
    return FavoriteTrack(
        name=item["name"],
        artist_name=artist.get("name") or artist.get("#text") or "",
        artist_identity=_blank_to_none(artist.get("mbid")),
        track_identity=_blank_to_none(item.get("mbid")),
        url=_blank_to_none(item.get("url")),
    )


def parse_loved_tracks(data: Dict[str, Any]) -> FavoritesPage:
    """Parse a ``user.getLovedTracks`` body.

    ``totalPages`` is never less than 1, even when the service reports 0.

    Raises:
        KeyError, TypeError, ValueError: If the body does not have the expected shape
    """
    loved = _require_object(data["lovedtracks"], "lovedtracks")
    attributes = _require_object(loved.get("@attr") or {}, "lovedtracks @attr")
    raw_tracks = loved.get("track") or []
    if isinstance(raw_tracks, dict):
        raw_tracks = [raw_tracks]
    if not isinstance(raw_tracks, list):
        raise TypeError(f"lovedtracks track is a {type(raw_tracks).__name__}, expected a list")

    tracks: List[FavoriteTrack] = [parse_track(item) for item in raw_tracks]
    metadata = PageMetadata(
        page=_to_int(attributes.get("page"), 1),
        total_pages=max(1, _to_int(attributes.get("totalPages"), 1)),
        per_page=_to_int(attributes.get("perPage"), len(tracks)),
        total=_to_int(attributes.get("total"), len(tracks)),
    )
    return FavoritesPage(tracks=tracks, metadata=metadata)


def parse_status(data: Dict[str, Any]) -> StatusResponse:
    return StatusResponse(status=str(data.get("status", "ok")))
