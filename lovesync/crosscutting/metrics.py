import json
import threading
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class UserMetrics:
    """Counters for one user within a reconciliation pass."""
    user_id: str
    username: str = ""
    pages_fetched: int = 0
    loved_tracks: int = 0
    artists_scanned: int = 0
    songs_scanned: int = 0
    matched_songs: int = 0
    favorites_written: int = 0
    already_favorite: int = 0
    skipped_reason: Optional[str] = None
    duration_ms: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def match_rate(self) -> float:
        """Share of scanned songs that matched a loved track."""
        if self.songs_scanned == 0:
            return 0.0
        return self.matched_songs / self.songs_scanned


@dataclass
class JobMetrics:
    """Aggregated metrics for a reconciliation pass."""
    job_id: str
    total_users: int = 0
    skipped_users: int = 0
    total_pages: int = 0
    total_loved_tracks: int = 0
    total_matched_songs: int = 0
    total_favorites_written: int = 0
    total_duration_ms: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    users: List[UserMetrics] = field(default_factory=list)


class SyncMetrics:
    """Collects metrics for a reconciliation pass."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        self.job_metrics = JobMetrics(job_id=job_id)
        self._users: Dict[str, UserMetrics] = {}
        self._lock = threading.Lock()

    def start_job(self) -> None:
        with self._lock:
            self.job_metrics.start_time = datetime.now()

    def end_job(self) -> None:
        with self._lock:
            self.job_metrics.end_time = datetime.now()
            if self.job_metrics.start_time:
                self.job_metrics.total_duration_ms = int(
                    (self.job_metrics.end_time - self.job_metrics.start_time).total_seconds() * 1000
                )

    def start_user(self, user_id: str, username: str = "") -> UserMetrics:
        with self._lock:
            user = UserMetrics(user_id=user_id, username=username, start_time=datetime.now())
            self._users[user_id] = user
            self.job_metrics.users.append(user)
            self.job_metrics.total_users += 1
            return user

    def end_user(self, user_id: str) -> None:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return
            user.end_time = datetime.now()
            if user.start_time:
                user.duration_ms = int((user.end_time - user.start_time).total_seconds() * 1000)
            self.job_metrics.total_loved_tracks += user.loved_tracks
            self.job_metrics.total_matched_songs += user.matched_songs
            self.job_metrics.total_favorites_written += user.favorites_written
            if user.skipped_reason:
                self.job_metrics.skipped_users += 1

    @contextmanager
    def user_context(self, user_id: str, username: str = ""):
        """Context manager wrapping the processing of one user."""
        user = self.start_user(user_id, username)
        try:
            yield user
        finally:
            self.end_user(user_id)

    def record_page(self, user_id: str, track_count: int) -> None:
        with self._lock:
            self.job_metrics.total_pages += 1
            user = self._users.get(user_id)
            if user:
                user.pages_fetched += 1
                user.loved_tracks += track_count

    def record_artist(self, user_id: str, song_count: int) -> None:
        with self._lock:
            user = self._users.get(user_id)
            if user:
                user.artists_scanned += 1
                user.songs_scanned += song_count

    def record_match(self, user_id: str) -> None:
        with self._lock:
            user = self._users.get(user_id)
            if user:
                user.matched_songs += 1

    def record_writes(self, user_id: str, written: int, unchanged: int) -> None:
        with self._lock:
            user = self._users.get(user_id)
            if user:
                user.favorites_written += written
                user.already_favorite += unchanged

    def record_skip(self, user_id: str, reason: str) -> None:
        with self._lock:
            user = self._users.get(user_id)
            if user:
                user.skipped_reason = reason

    def get_user_metrics(self, user_id: str) -> Optional[UserMetrics]:
        with self._lock:
            return self._users.get(user_id)

    def get_job_metrics(self) -> JobMetrics:
        with self._lock:
            return self.job_metrics

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary for JSON serialization."""
        with self._lock:
            job_dict = asdict(self.job_metrics)
        for key in ('start_time', 'end_time'):
            if job_dict[key]:
                job_dict[key] = job_dict[key].isoformat()
        for user in job_dict['users']:
            for key in ('start_time', 'end_time'):
                if user[key]:
                    user[key] = user[key].isoformat()
        return job_dict

    def save_to_file(self, file_path: str) -> None:
        with open(file_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

    def print_summary(self) -> None:
        """Print metrics summary to stdout."""
        metrics = self.get_job_metrics()

        print(f"\n=== Sync Summary for Job {self.job_id} ===")
        print(f"Users: {metrics.total_users} (skipped: {metrics.skipped_users})")
        print(f"Pages Fetched: {metrics.total_pages}")
        print(f"Loved Tracks: {metrics.total_loved_tracks}")
        print(f"Matched Songs: {metrics.total_matched_songs}")
        print(f"Favorites Written: {metrics.total_favorites_written}")
        print(f"Total Duration: {metrics.total_duration_ms}ms")

        for user in metrics.users:
            print(f"User {user.username or user.user_id}:")
            if user.skipped_reason:
                print(f"  Skipped: {user.skipped_reason}")
            print(f"  Pages: {user.pages_fetched}, Loved: {user.loved_tracks}")
            print(f"  Songs: {user.songs_scanned}, Matched: {user.matched_songs} ({user.match_rate:.2%})")
            print(f"  Written: {user.favorites_written}, Already favorite: {user.already_favorite}")
