import threading

import pytest

from lovesync.application.paging import PagedFetcher
from lovesync.application.pipeline import (
    SyncOrchestrator, SyncOutcome, SyncState, SyncStatus
)
from lovesync.crosscutting.metrics import SyncMetrics
from lovesync.domain.entities import (
    MUSICBRAINZ_ARTIST, ApiResult, FavoritesPage, FavoriteTrack, LocalArtist, LocalSong,
    PageMetadata, ScrobbleAccount
)


QUEEN = "0383dadf-2a4e-4d10-a46a-e9e041da8eb3"


class StaticAccounts:
    def __init__(self, accounts):
        self.accounts = accounts

    def list_accounts(self):
        return list(self.accounts)


class InMemoryLibrary:
    """Library and preference store backed by dictionaries."""

    def __init__(self, artists=None, songs=None, favorites=()):
        self.artists = artists or {}
        self.songs = songs or {}
        self.favorites = set(favorites)
        self.writes = []

    def list_artists(self, user_id):
        return self.artists.get(user_id, [])

    def list_songs(self, artist, user_id):
        return self.songs.get(artist.id, [])

    def is_favorite(self, user_id, song_id):
        return (user_id, song_id) in self.favorites

    def set_favorite(self, user_id, song_id, value):
        self.writes.append((user_id, song_id, value))
        self.favorites.add((user_id, song_id))


class PagedSource:
    """Serves loved tracks per username in pages."""

    def __init__(self, pages_by_user):
        self.pages_by_user = pages_by_user
        self.calls = []

    def get_loved_tracks(self, account, page, cancel_event=None):
        self.calls.append((account.username, page))
        pages = self.pages_by_user.get(account.username, [])
        if not pages:
            return ApiResult.ok(FavoritesPage(tracks=[], metadata=PageMetadata()))
        return ApiResult.ok(FavoritesPage(
            tracks=pages[page - 1],
            metadata=PageMetadata(page=page, total_pages=len(pages)),
        ))


def _queen_library(user_id="u1"):
    artist = LocalArtist(id="a1", name="Queen", provider_ids={MUSICBRAINZ_ARTIST: QUEEN})
    songs = [
        LocalSong(id="s1", name="Dont Stop Me Now", artist_identity=QUEEN),
        LocalSong(id="s2", name="Killer Queen", artist_identity=QUEEN),
    ]
    return InMemoryLibrary(artists={user_id: [artist]}, songs={"a1": songs})


def _queen_pages():
    return [
        [FavoriteTrack(name="Don't Stop Me Now", artist_name="Queen", artist_identity=QUEEN)],
        [FavoriteTrack(name="Bohemian Rhapsody", artist_name="Queen", artist_identity=QUEEN)],
    ]


def _orchestrator(accounts, library, source, metrics=None):
    return SyncOrchestrator(
        accounts=StaticAccounts(accounts),
        library=library,
        preferences=library,
        fetcher=PagedFetcher(source, metrics=metrics),
        metrics=metrics,
    )


ALICE = ScrobbleAccount(user_id="u1", username="alice", session_key="sk-alice")


class TestSyncOrchestrator:
    """Tests for the reconciliation pass."""

    def test_single_user_two_pages(self):
        library = _queen_library()
        source = PagedSource({"alice": _queen_pages()})
        orchestrator = _orchestrator([ALICE], library, source)
        progress = []

        result = orchestrator.execute(progress=progress.append)

        assert result.outcome == SyncOutcome.COMPLETED
        assert library.writes == [("u1", "s1", True)]
        assert progress == pytest.approx([50.0, 100.0])
        assert result.matched_songs == 1
        assert result.favorites_written == 1
        assert not orchestrator.is_syncing
        assert orchestrator.status().state == SyncState.IDLE
        assert orchestrator.status().last_outcome == SyncOutcome.COMPLETED

    def test_second_pass_writes_nothing(self):
        library = _queen_library()
        source = PagedSource({"alice": _queen_pages()})
        orchestrator = _orchestrator([ALICE], library, source)

        orchestrator.execute()
        result = orchestrator.execute()

        assert result.matched_songs == 1
        assert result.favorites_written == 0
        assert len(library.writes) == 1

    def test_no_eligible_users(self):
        orchestrator = _orchestrator(
            [ScrobbleAccount(user_id="u1", username="alice")],
            InMemoryLibrary(),
            PagedSource({}),
        )

        result = orchestrator.execute()

        assert result.outcome == SyncOutcome.COMPLETED
        assert result.users == []

    def test_sync_disabled_user_is_skipped(self):
        account = ScrobbleAccount(user_id="u1", username="alice", session_key="sk", sync_favorites=False)
        source = PagedSource({"alice": _queen_pages()})
        orchestrator = _orchestrator([account], _queen_library(), source)

        result = orchestrator.execute()

        assert result.users[0].skipped_reason == "sync_disabled"
        assert source.calls == []

    def test_user_without_loved_tracks_is_skipped(self):
        orchestrator = _orchestrator([ALICE], _queen_library(), PagedSource({}))

        result = orchestrator.execute()

        assert result.users[0].skipped_reason == "no_loved_tracks"

    def test_artist_without_identity_is_ignored(self):
        library = InMemoryLibrary(
            artists={"u1": [LocalArtist(id="a1", name="Queen")]},
            songs={"a1": [LocalSong(id="s1", name="Dont Stop Me Now")]},
        )
        orchestrator = _orchestrator([ALICE], library, PagedSource({"alice": _queen_pages()}))

        result = orchestrator.execute()

        assert library.writes == []
        assert result.matched_songs == 0

    def test_progress_split_between_users(self):
        bob = ScrobbleAccount(user_id="u2", username="bob", session_key="sk-bob")
        library = _queen_library()
        source = PagedSource({
            "alice": [[FavoriteTrack(name="x", artist_identity=QUEEN)]],
            "bob": _queen_pages(),
        })
        orchestrator = _orchestrator([ALICE, bob], library, source)
        progress = []

        orchestrator.execute(progress=progress.append)

        assert progress == pytest.approx([50.0, 75.0, 100.0])

    def test_failing_user_does_not_abort_others(self):
        bob = ScrobbleAccount(user_id="u2", username="bob", session_key="sk-bob")
        library = _queen_library(user_id="u2")
        original = library.list_artists

        def list_artists(user_id):
            if user_id == "u1":
                raise RuntimeError("library unavailable")
            return original(user_id)

        library.list_artists = list_artists
        source = PagedSource({"alice": _queen_pages(), "bob": _queen_pages()})
        orchestrator = _orchestrator([ALICE, bob], library, source)

        result = orchestrator.execute()

        assert result.outcome == SyncOutcome.COMPLETED
        assert result.users[0].error == "library unavailable"
        assert result.users[1].favorites_written == 1
        assert library.writes == [("u2", "s1", True)]

    def test_cancelled_before_start(self):
        cancel = threading.Event()
        cancel.set()
        library = _queen_library()
        source = PagedSource({"alice": _queen_pages()})
        orchestrator = _orchestrator([ALICE], library, source)

        result = orchestrator.execute(cancel_event=cancel)

        assert result.outcome == SyncOutcome.CANCELLED
        assert source.calls == []
        assert library.writes == []
        assert not orchestrator.is_syncing
        assert orchestrator.status().state == SyncState.CANCELLED

    def test_cancelled_during_fetch_without_artists(self):
        cancel = threading.Event()
        source = PagedSource({"alice": [
            [FavoriteTrack(name="a", artist_identity=QUEEN)],
            [FavoriteTrack(name="b", artist_identity=QUEEN)],
            [FavoriteTrack(name="c", artist_identity=QUEEN)],
        ]})
        orchestrator = _orchestrator([ALICE], InMemoryLibrary(), source)

        result = orchestrator.execute(cancel_event=cancel, progress=lambda value: cancel.set())

        assert result.outcome == SyncOutcome.CANCELLED
        assert source.calls == [("alice", 1)]
        status = orchestrator.status()
        assert status.state == SyncState.CANCELLED
        assert not status.is_syncing

    def test_cancelled_before_first_page_is_not_reported_as_empty(self):
        cancel = threading.Event()
        library = _queen_library()

        def list_artists(user_id):
            cancel.set()
            return library.artists.get(user_id, [])

        library.list_artists = list_artists
        source = PagedSource({"alice": _queen_pages()})
        orchestrator = _orchestrator([ALICE], library, source)

        result = orchestrator.execute(cancel_event=cancel)

        assert result.outcome == SyncOutcome.CANCELLED
        assert result.users == []
        assert source.calls == []
        assert orchestrator.status().state == SyncState.CANCELLED

    def test_cancelled_during_fetch_writes_nothing_further(self):
        cancel = threading.Event()
        library = _queen_library()
        source = PagedSource({"alice": _queen_pages()})
        orchestrator = _orchestrator([ALICE], library, source)

        def progress(value):
            cancel.set()

        result = orchestrator.execute(cancel_event=cancel, progress=progress)

        assert result.outcome == SyncOutcome.CANCELLED
        assert source.calls == [("alice", 1)]
        assert library.writes == []
        assert not orchestrator.is_syncing

    def test_concurrent_execute_is_rejected(self):
        started = threading.Event()
        release = threading.Event()

        class BlockingSource(PagedSource):
            def get_loved_tracks(self, account, page, cancel_event=None):
                started.set()
                release.wait(timeout=5)
                return super().get_loved_tracks(account, page, cancel_event)

        orchestrator = _orchestrator([ALICE], _queen_library(), BlockingSource({"alice": _queen_pages()}))
        results = []
        worker = threading.Thread(target=lambda: results.append(orchestrator.execute()))
        worker.start()
        try:
            assert started.wait(timeout=5)
            assert orchestrator.is_syncing

            rejected = orchestrator.execute()
            assert rejected.outcome == SyncOutcome.REJECTED
        finally:
            release.set()
            worker.join(timeout=5)

        assert results[0].outcome == SyncOutcome.COMPLETED
        assert not orchestrator.is_syncing

    def test_unexpected_error_clears_syncing_and_propagates(self):
        class BrokenAccounts:
            def list_accounts(self):
                raise RuntimeError("config unreadable")

        orchestrator = SyncOrchestrator(
            accounts=BrokenAccounts(),
            library=InMemoryLibrary(),
            preferences=InMemoryLibrary(),
            fetcher=PagedFetcher(PagedSource({})),
        )

        with pytest.raises(RuntimeError):
            orchestrator.execute()

        status = orchestrator.status()
        assert not status.is_syncing
        assert status.last_error == "config unreadable"

    def test_metrics_collected(self):
        metrics = SyncMetrics("job-1")
        orchestrator = _orchestrator([ALICE], _queen_library(), PagedSource({"alice": _queen_pages()}), metrics)

        orchestrator.execute(job_id="job-1")

        job = metrics.get_job_metrics()
        assert job.total_users == 1
        assert job.total_pages == 2
        assert job.total_loved_tracks == 2
        assert job.total_matched_songs == 1
        assert job.total_favorites_written == 1
        user = metrics.get_user_metrics("u1")
        assert user.songs_scanned == 2
        assert user.artists_scanned == 1


def test_status_to_dict_defaults():
    data = SyncStatus().to_dict()

    assert data['state'] == 'idle'
    assert data['is_syncing'] is False
    assert data['started_at'] is None
    assert data['last_outcome'] is None
