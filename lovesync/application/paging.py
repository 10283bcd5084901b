import logging
from typing import List, Optional, Tuple

from lovesync.crosscutting.metrics import SyncMetrics
from lovesync.domain.entities import ApiResult, FavoritesPage, FavoriteTrack, ResultKind, ScrobbleAccount
from lovesync.domain.errors import OperationCancelled, TransportFailure
from lovesync.domain.ports import CancellationSignal, FavoritesSource, ProgressSink

logger = logging.getLogger(__name__)


class PagedFetcher:
    """Drains the paginated loved-tracks list of one account."""

    def __init__(self, source: FavoritesSource, metrics: Optional[SyncMetrics] = None):
        self.source = source
        self.metrics = metrics

    def fetch_all(self,
                  account: ScrobbleAccount,
                  progress: Optional[ProgressSink] = None,
                  progress_range: Tuple[float, float] = (0.0, 1.0),
                  cancel_event: Optional[CancellationSignal] = None) -> List[FavoriteTrack]:
        """Fetch every page of loved tracks for the account.

        Pagination stops on the last page, on an empty page, on any non-OK
        result or on cancellation. Tracks from completed pages are always
        returned; nothing is retried.

        Args:
            account: Account whose loved tracks are fetched
            progress: Sink receiving progress on a 0-100 scale
            progress_range: Fraction range (start, end) owned by this fetch
            cancel_event: Checked before each page request

        Returns:
            Loved tracks in page order
        """
        range_start, range_end = progress_range
        tracks: List[FavoriteTrack] = []
        page = 1

        while True:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Cancelled while fetching loved tracks for {account.username}; "
                            f"keeping {len(tracks)} tracks from completed pages")
                break

            result = self._fetch_page(account, page, cancel_event)
            if result is None:
                break

            if result.kind != ResultKind.OK:
                self._log_stop(account, page, result)
                break

            payload = result.payload
            if payload is None or not payload.has_tracks():
                logger.debug(f"Page {page} for {account.username} has no loved tracks")
                break

            tracks.extend(payload.tracks)
            metadata = payload.metadata
            if self.metrics:
                self.metrics.record_page(account.user_id, len(payload.tracks))

            current = (metadata.page / max(metadata.total_pages, 1)) * (range_end - range_start) + range_start
            logger.debug(f"Progress: {current * 100:.2f}")
            if progress is not None:
                progress(current * 100)

            if metadata.is_last_page():
                break
            page += 1

        logger.info(f"Retrieved {len(tracks)} loved tracks for user {account.username}")
        return tracks

    def _fetch_page(self, account: ScrobbleAccount, page: int,
                    cancel_event: Optional[CancellationSignal]) -> Optional[ApiResult[FavoritesPage]]:
        try:
            return self.source.get_loved_tracks(account, page, cancel_event=cancel_event)
        except OperationCancelled:
            logger.info(f"Cancelled before page {page} for {account.username}")
            return None
        except TransportFailure as e:
            return ApiResult.transport_failure(str(e))

    @staticmethod
    def _log_stop(account: ScrobbleAccount, page: int, result: ApiResult) -> None:
        if result.kind == ResultKind.SERVICE_ERROR:
            logger.warning(f"Stopping at page {page} for {account.username}: "
                           f"service error {result.error.code} ({result.error.message})")
        elif result.kind == ResultKind.TRANSPORT_FAILURE:
            logger.warning(f"Stopping at page {page} for {account.username}: {result.detail}")
        else:
            logger.debug(f"Stopping at page {page} for {account.username}: malformed response ({result.detail})")
