import json
import logging
import os
import shutil
import tempfile
from unittest.mock import Mock, patch

import pytest

from lovesync.crosscutting import config as config_module
from lovesync.domain.entities import (
    MUSICBRAINZ_ARTIST, ApiError, ApiResult, FavoritesPage, FavoriteTrack, PageMetadata
)
from lovesync.interfaces.cli import CLI, create_orchestrator, create_provider


QUEEN = "0383dadf-2a4e-4d10-a46a-e9e041da8eb3"

LIBRARY = {
    "users": {
        "u1": {
            "artists": [
                {"id": "a1", "name": "Queen", "provider_ids": {MUSICBRAINZ_ARTIST: QUEEN},
                 "songs": [{"id": "s1", "name": "Dont Stop Me Now"}, {"id": "s2", "name": "Innuendo"}]},
            ],
            "favorites": [],
        }
    }
}


class TestCLI:
    """Tests for the command line interface."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.library_path = os.path.join(self.temp_dir, 'library.json')
        with open(self.library_path, 'w', encoding='utf-8') as f:
            json.dump(LIBRARY, f)
        os.environ['LOVESYNC_API_KEY'] = 'key'
        os.environ['LOVESYNC_API_SECRET'] = 'secret'
        self.cli = CLI()

    def teardown_method(self):
        logger = logging.getLogger('lovesync')
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
        config_module.config_manager = None
        shutil.rmtree(self.temp_dir)

    def _run(self, *argv):
        return self.cli.run(['--config-dir', self.temp_dir] + list(argv))

    def _add_alice(self, *extra):
        return self._run('accounts', 'add', '--user-id', 'u1', '--username', 'alice', *extra)

    def test_no_command_prints_help(self, capsys):
        assert self.cli.run([]) == 1
        assert 'usage' in capsys.readouterr().out

    def test_accounts_add_and_list(self, capsys):
        assert self._add_alice('--session-key', 'sk-1') == 0

        assert self._run('accounts', 'list') == 0

        out = capsys.readouterr().out
        assert 'u1: alice [SESSION KEY] (sync on)' in out

    def test_accounts_add_requires_username(self):
        assert self._run('accounts', 'add', '--user-id', 'u1') == 1

    def test_accounts_remove(self):
        self._add_alice()

        assert self._run('accounts', 'remove', '--user-id', 'u1') == 0
        assert self._run('accounts', 'remove', '--user-id', 'u1') == 1

    def test_sync_writes_favorites(self):
        self._add_alice('--session-key', 'sk-1')
        provider = Mock()
        provider.get_loved_tracks.return_value = ApiResult.ok(FavoritesPage(
            tracks=[FavoriteTrack(name="Don't Stop Me Now", artist_name="Queen", artist_identity=QUEEN)],
            metadata=PageMetadata(page=1, total_pages=1),
        ))
        metrics_path = os.path.join(self.temp_dir, 'metrics.json')

        with patch('lovesync.interfaces.cli.create_provider', return_value=provider):
            code = self._run('sync', '--library', self.library_path, '--metrics-path', metrics_path,
                             '--job-id', 'job_test')

        assert code == 0
        provider.close.assert_called_once()
        with open(self.library_path, encoding='utf-8') as f:
            assert json.load(f)['users']['u1']['favorites'] == ['s1']
        with open(metrics_path) as f:
            assert json.load(f)['total_favorites_written'] == 1

    def test_sync_missing_library(self):
        self._add_alice('--session-key', 'sk-1')

        assert self._run('sync', '--library', os.path.join(self.temp_dir, 'missing.json')) == 1

    def test_sync_closes_provider_when_library_is_missing(self):
        provider = Mock()

        with patch('lovesync.interfaces.cli.create_provider', return_value=provider):
            code = self._run('sync', '--library', os.path.join(self.temp_dir, 'missing.json'))

        assert code == 1
        provider.close.assert_called_once()

    def test_create_orchestrator_uses_given_provider(self):
        provider = Mock()

        with patch('lovesync.interfaces.cli.create_provider') as factory:
            orchestrator = create_orchestrator(config_module.setup_config(self.temp_dir),
                                               self.library_path, provider=provider)

        assert orchestrator.fetcher.source is provider
        factory.assert_not_called()

    def test_sync_without_api_secret(self):
        os.environ.pop('LOVESYNC_API_SECRET')

        assert self._run('sync', '--library', self.library_path) == 1

    def test_love_requires_session_key(self):
        self._add_alice()

        assert self._run('love', '--user-id', 'u1', '--artist', 'Queen', '--track', 'Innuendo') == 1

    def test_love_success(self, capsys):
        self._add_alice('--session-key', 'sk-1')
        provider = Mock()
        provider.love_track.return_value = ApiResult.ok(None)

        with patch('lovesync.interfaces.cli.create_provider', return_value=provider):
            code = self._run('love', '--user-id', 'u1', '--artist', 'Queen', '--track', 'Innuendo')

        assert code == 0
        account = provider.love_track.call_args[0][0]
        assert account.session_key == 'sk-1'
        assert "love: 'Innuendo' by 'Queen' for alice" in capsys.readouterr().out

    def test_unlove_service_error(self):
        self._add_alice('--session-key', 'sk-1')
        provider = Mock()
        provider.unlove_track.return_value = ApiResult.service_error(ApiError(code=9, message="Invalid session key"))

        with patch('lovesync.interfaces.cli.create_provider', return_value=provider):
            code = self._run('unlove', '--user-id', 'u1', '--artist', 'Queen', '--track', 'Innuendo')

        assert code == 1
        provider.love_track.assert_not_called()
        provider.close.assert_called_once()

    def test_create_orchestrator_wires_configuration(self):
        manager = config_module.setup_config(self.temp_dir)

        orchestrator = create_orchestrator(manager, self.library_path)

        assert orchestrator.accounts is manager
        assert orchestrator.library is orchestrator.preferences
        assert orchestrator.fetcher.source.api_key == 'key'

    def test_create_provider_uses_settings(self):
        os.environ['LOVESYNC_PAGE_SIZE'] = '50'
        os.environ['LOVESYNC_SECURE'] = '0'

        provider = create_provider(config_module.setup_config(self.temp_dir))

        assert provider.page_size == 50
        assert provider.secure is False


def test_main_exit_code():
    with patch('lovesync.interfaces.cli.CLI.run', return_value=0), \
            patch('lovesync.interfaces.cli.load_dotenv'):
        from lovesync.interfaces.cli import main
        with pytest.raises(SystemExit) as exc:
            main()
    assert exc.value.code == 0
