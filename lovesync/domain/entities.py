from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Generic, List, Optional, TypeVar


T = TypeVar("T")

# Provider id key carrying the cross-service artist identity
MUSICBRAINZ_ARTIST = "MusicBrainzArtist"


@dataclass(frozen=True)
class ScrobbleAccount:
    """Per-user link to a scrobble service account."""

    user_id: str
    username: str
    session_key: Optional[str] = None
    sync_favorites: bool = True

    @property
    def has_credential(self) -> bool:
        return bool(self.session_key and self.session_key.strip())


@dataclass(frozen=True)
class FavoriteTrack:
    """A track the user has loved on the scrobble service."""

    name: str
    artist_name: str = ""
    artist_identity: Optional[str] = None
    track_identity: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class PageMetadata:
    """Paging attributes of a list response."""

    page: int = 1
    total_pages: int = 1
    per_page: int = 0
    total: int = 0

    def is_last_page(self) -> bool:
        return self.page >= self.total_pages


@dataclass(frozen=True)
class FavoritesPage:
    """One page of loved tracks."""

    tracks: List[FavoriteTrack] = field(default_factory=list)
    metadata: PageMetadata = field(default_factory=PageMetadata)

    def has_tracks(self) -> bool:
        return len(self.tracks) > 0


@dataclass(frozen=True)
class LocalArtist:
    """Artist entry of the host library."""

    id: str
    name: str
    provider_ids: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class LocalSong:
    """Song entry of the host library. Read-only for the sync."""

    id: str
    name: str
    artist_identity: Optional[str] = None


@dataclass(frozen=True)
class ApiError:
    """Error descriptor returned by the scrobble service."""

    code: int
    message: str


class ResultKind(str, Enum):
    """Outcome categories of a scrobble service call."""

    OK = "ok"
    SERVICE_ERROR = "service_error"
    TRANSPORT_FAILURE = "transport_failure"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class ApiResult(Generic[T]):
    """Result of a scrobble service call.

    ``payload`` is set only for OK results and ``error`` only for service
    errors. Transport failures and malformed bodies carry a ``detail`` text.
    """

    kind: ResultKind
    payload: Optional[T] = None
    error: Optional[ApiError] = None
    detail: str = ""

    @classmethod
    def ok(cls, payload: T) -> "ApiResult[T]":
        return cls(kind=ResultKind.OK, payload=payload)

    @classmethod
    def service_error(cls, error: ApiError) -> "ApiResult[T]":
        return cls(kind=ResultKind.SERVICE_ERROR, error=error, detail=error.message)

    @classmethod
    def transport_failure(cls, detail: str) -> "ApiResult[T]":
        return cls(kind=ResultKind.TRANSPORT_FAILURE, detail=detail)

    @classmethod
    def malformed(cls, detail: str) -> "ApiResult[T]":
        return cls(kind=ResultKind.MALFORMED, detail=detail)

    @property
    def is_ok(self) -> bool:
        return self.kind == ResultKind.OK
