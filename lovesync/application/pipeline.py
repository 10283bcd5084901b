import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import List, Optional

from lovesync.application.idempotency import FavoriteUpdate, apply_favorite_updates
from lovesync.application.matching import FavoriteMatcher, resolve_artist_identity
from lovesync.application.paging import PagedFetcher
from lovesync.crosscutting.logging import (
    CorrelationContext,
    log_error,
    log_sync_complete,
    log_sync_start,
    log_user_complete,
    log_user_start,
)
from lovesync.crosscutting.metrics import SyncMetrics
from lovesync.domain.entities import ScrobbleAccount
from lovesync.domain.errors import OperationCancelled
from lovesync.domain.ports import AccountSource, CancellationSignal, LibraryStore, PreferenceStore, ProgressSink

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """Lifecycle of the orchestrator."""

    IDLE = "idle"
    RUNNING = "running"
    CANCELLED = "cancelled"


class SyncOutcome(str, Enum):
    """How a call to ``execute`` ended."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


@dataclass
class SyncStatus:
    """Snapshot of the orchestrator state for status surfaces."""

    state: SyncState = SyncState.IDLE
    current_user: Optional[str] = None
    progress: float = 0.0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    last_outcome: Optional[SyncOutcome] = None
    last_error: Optional[str] = None

    @property
    def is_syncing(self) -> bool:
        return self.state == SyncState.RUNNING

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "is_syncing": self.is_syncing,
            "current_user": self.current_user,
            "progress": self.progress,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "last_outcome": self.last_outcome.value if self.last_outcome else None,
            "last_error": self.last_error,
        }


@dataclass
class UserSyncResult:
    """Result of reconciling one user."""

    user_id: str
    username: str
    loved_tracks: int = 0
    matched_songs: int = 0
    favorites_written: int = 0
    skipped_reason: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SyncResult:
    """Result of one call to ``SyncOrchestrator.execute``."""

    outcome: SyncOutcome
    users: List[UserSyncResult] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def matched_songs(self) -> int:
        return sum(u.matched_songs for u in self.users)

    @property
    def favorites_written(self) -> int:
        return sum(u.favorites_written for u in self.users)


class SyncOrchestrator:
    """Reconciles every eligible user's loved tracks with their local library.

    Users, artists and songs are processed strictly sequentially. Only one
    pass runs at a time per orchestrator: a concurrent call to ``execute`` is
    rejected. The ``is_syncing`` flag exposed by ``status()`` is cleared on
    every exit path.
    """

    NAME = "Import Last.fm Loved Tracks"
    KEY = "ImportLastfmData"
    CATEGORY = "Last.fm"
    DESCRIPTION = "Import favourite tracks for each user with Last.fm account configured"

    def __init__(self,
                 accounts: AccountSource,
                 library: LibraryStore,
                 preferences: PreferenceStore,
                 fetcher: PagedFetcher,
                 metrics: Optional[SyncMetrics] = None):
        """Initialize the orchestrator.

        Args:
            accounts: Source of per-user credentials and sync toggles
            library: Host catalog store
            preferences: Host per-user preference store
            fetcher: Paged loved-tracks fetcher
            metrics: Optional metrics collector
        """
        self.accounts = accounts
        self.library = library
        self.preferences = preferences
        self.fetcher = fetcher
        self.metrics = metrics
        self._run_lock = threading.Lock()
        self._status_lock = threading.Lock()
        self._status = SyncStatus()

    def status(self) -> SyncStatus:
        """Return a copy of the current status."""
        with self._status_lock:
            return replace(self._status)

    @property
    def is_syncing(self) -> bool:
        return self.status().is_syncing

    def _update_status(self, **changes) -> None:
        with self._status_lock:
            self._status = replace(self._status, **changes)

    def execute(self,
                cancel_event: Optional[CancellationSignal] = None,
                progress: Optional[ProgressSink] = None,
                job_id: Optional[str] = None) -> SyncResult:
        """Run one reconciliation pass.

        Args:
            cancel_event: Cooperative cancellation signal
            progress: Sink receiving progress on a 0-100 scale
            job_id: Correlation id for logs and metrics

        Returns:
            SyncResult; ordinary "no data" conditions never raise
        """
        if not self._run_lock.acquire(blocking=False):
            logger.warning("A loved tracks sync is already running; rejecting new pass")
            return SyncResult(outcome=SyncOutcome.REJECTED)

        job_id = job_id or f"lovesync_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        started = datetime.now()
        self._update_status(state=SyncState.RUNNING, current_user=None, progress=0.0,
                            started_at=started, finished_at=None, last_error=None)
        if self.metrics:
            self.metrics.start_job()

        final_state = SyncState.IDLE
        outcome = SyncOutcome.COMPLETED
        results: List[UserSyncResult] = []
        try:
            with CorrelationContext(job_id=job_id):
                self._run(cancel_event, self._progress_sink(progress), job_id, results)
        except OperationCancelled:
            logger.info("Loved tracks sync cancelled")
            final_state = SyncState.CANCELLED
            outcome = SyncOutcome.CANCELLED
        except Exception as e:
            self._update_status(last_error=str(e))
            log_error(logger, "Loved tracks sync failed", e)
            raise
        finally:
            finished = datetime.now()
            self._update_status(state=final_state, current_user=None,
                                finished_at=finished, last_outcome=outcome)
            if self.metrics:
                self.metrics.end_job()
            self._run_lock.release()

        duration_ms = int((finished - started).total_seconds() * 1000)
        log_sync_complete(logger, job_id, outcome.value, len(results), duration_ms=duration_ms)
        return SyncResult(outcome=outcome, users=results, duration_ms=duration_ms)

    def _progress_sink(self, progress: Optional[ProgressSink]) -> ProgressSink:
        def report(value: float) -> None:
            self._update_status(progress=value)
            if progress is not None:
                progress(value)
        return report

    @staticmethod
    def _check_cancelled(cancel_event: Optional[CancellationSignal]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled("Sync cancellation requested")

    def eligible_accounts(self) -> List[ScrobbleAccount]:
        """Accounts with a session key. The sync toggle is checked per user."""
        return [a for a in self.accounts.list_accounts() if a.has_credential]

    def _run(self, cancel_event: Optional[CancellationSignal], progress: ProgressSink,
             job_id: str, results: List[UserSyncResult]) -> None:
        accounts = self.eligible_accounts()
        if not accounts:
            logger.info("No users found")
            return

        log_sync_start(logger, job_id, len(accounts))
        total = len(accounts)

        for index, account in enumerate(accounts):
            self._check_cancelled(cancel_event)

            progress_offset = index / total
            max_progress = (index + 1) / total
            self._update_status(current_user=account.username)

            with CorrelationContext(user=account.username):
                results.append(self._sync_user_safely(account, progress,
                                                      (progress_offset, max_progress), cancel_event))

    def _sync_user_safely(self, account: ScrobbleAccount, progress: ProgressSink,
                          progress_range, cancel_event) -> UserSyncResult:
        # A failing user never stops the remaining users; cancellation does.
        try:
            if self.metrics:
                with self.metrics.user_context(account.user_id, account.username):
                    return self.sync_user(account, progress, progress_range, cancel_event)
            return self.sync_user(account, progress, progress_range, cancel_event)
        except OperationCancelled:
            raise
        except Exception as e:
            log_error(logger, f"Loved tracks sync failed for {account.username}", e)
            return UserSyncResult(user_id=account.user_id, username=account.username, error=str(e))

    def _skip(self, account: ScrobbleAccount, reason: str) -> UserSyncResult:
        if self.metrics:
            self.metrics.record_skip(account.user_id, reason)
        return UserSyncResult(user_id=account.user_id, username=account.username, skipped_reason=reason)

    def sync_user(self,
                  account: ScrobbleAccount,
                  progress: Optional[ProgressSink] = None,
                  progress_range=(0.0, 1.0),
                  cancel_event: Optional[CancellationSignal] = None) -> UserSyncResult:
        """Reconcile one user's loved tracks with their library."""
        if not account.has_credential:
            logger.info(f"No session key for {account.username}; skipping")
            return self._skip(account, "no_credential")

        if not account.sync_favorites:
            logger.info(f"Favorite sync disabled for {account.username}; skipping")
            return self._skip(account, "sync_disabled")

        artists = list(self.library.list_artists(account.user_id))
        log_user_start(logger, account.username, len(artists))

        loved_tracks = self.fetcher.fetch_all(account, progress, progress_range, cancel_event)
        # fetch_all returns a partial list on cancellation instead of raising
        self._check_cancelled(cancel_event)
        if not loved_tracks:
            logger.info(f"User {account.username} has no loved tracks")
            return self._skip(account, "no_loved_tracks")

        matcher = FavoriteMatcher(loved_tracks)
        if matcher.ungrouped_count:
            logger.debug(f"{matcher.ungrouped_count} loved tracks have no artist identity and cannot be matched")

        result = UserSyncResult(user_id=account.user_id, username=account.username,
                                loved_tracks=len(loved_tracks))

        for artist in artists:
            self._check_cancelled(cancel_event)

            identity = resolve_artist_identity(artist)
            if identity is None:
                continue

            group = matcher.tracks_for(identity)
            if not group:
                continue

            logger.debug(f"Found {len(group)} loved tracks for {artist.name}")

            songs = list(self.library.list_songs(artist, account.user_id))
            if self.metrics:
                self.metrics.record_artist(account.user_id, len(songs))

            updates: List[FavoriteUpdate] = []
            for song in songs:
                matched = matcher.match(identity, song)
                if matched is None:
                    continue
                result.matched_songs += 1
                if self.metrics:
                    self.metrics.record_match(account.user_id)
                updates.append(FavoriteUpdate(
                    user_id=account.user_id,
                    song_id=song.id,
                    song_name=song.name,
                    matched_track=matched.name,
                ))

            if updates:
                summary = apply_favorite_updates(self.preferences, updates)
                result.favorites_written += summary.written
                if self.metrics:
                    self.metrics.record_writes(account.user_id, summary.written, summary.unchanged)

        log_user_complete(logger, account.username, result.matched_songs,
                          favorites_written=result.favorites_written)
        return result
