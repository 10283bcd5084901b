import argparse
import logging
import signal
import sys
import threading
import time
from datetime import datetime
from typing import List, Optional

from dotenv import load_dotenv

from lovesync.application.paging import PagedFetcher
from lovesync.application.pipeline import SyncOrchestrator, SyncOutcome
from lovesync.crosscutting.config import ConfigError, ConfigManager, setup_config
from lovesync.crosscutting.logging import setup_logging
from lovesync.crosscutting.metrics import SyncMetrics
from lovesync.domain.entities import ScrobbleAccount
from lovesync.infrastructure.providers.lastfm import LastfmProvider
from lovesync.infrastructure.providers.library import JsonLibraryStore
from lovesync.infrastructure.scrobble.client import ScrobbleApiClient


def create_provider(config: ConfigManager) -> LastfmProvider:
    """Create the scrobble service provider from configuration."""
    settings = config.get_scrobble_settings()
    client = ScrobbleApiClient(
        api_secret=settings.api_secret,
        host=settings.host,
        version=settings.version,
        timeout=settings.timeout,
    )
    return LastfmProvider(client, settings.api_key, page_size=settings.page_size, secure=settings.secure)


def create_orchestrator(config: ConfigManager, library_path: str,
                        metrics: Optional[SyncMetrics] = None,
                        provider: Optional[LastfmProvider] = None) -> SyncOrchestrator:
    """Wire an orchestrator against the configured accounts and a library file.

    The caller owns ``provider`` and closes it; when omitted one is created
    from the configuration.
    """
    library = JsonLibraryStore(library_path)
    fetcher = PagedFetcher(provider or create_provider(config), metrics=metrics)
    return SyncOrchestrator(
        accounts=config,
        library=library,
        preferences=library,
        fetcher=fetcher,
        metrics=metrics,
    )


class CLI:
    """Command Line Interface for lovesync."""

    def __init__(self):
        """Initialize CLI."""
        # .env is loaded by main() only
        self.parser = self._create_parser()
        self._cancel_event = threading.Event()
        self._start_time = None

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        parser = argparse.ArgumentParser(
            prog='lovesync',
            description='Import loved tracks from the scrobble service as library favorites'
        )
        parser.add_argument(
            '--config-dir',
            default=None,
            help='Configuration directory (default: ~/.lovesync)'
        )

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        sync_parser = subparsers.add_parser('sync', help='Run one reconciliation pass')
        sync_parser.add_argument(
            '--library',
            required=True,
            help='Path to the library JSON file'
        )
        sync_parser.add_argument(
            '--metrics-path',
            default=None,
            help='Write pass metrics as JSON to this file'
        )
        sync_parser.add_argument(
            '--job-id',
            help='Unique job identifier for this pass'
        )

        love_parsers = []
        for name, help_text in (('love', 'Love a track'), ('unlove', 'Remove a loved mark')):
            love_parser = subparsers.add_parser(name, help=help_text)
            love_parsers.append(love_parser)
            love_parser.add_argument('--user-id', required=True, help='Configured user id')
            love_parser.add_argument('--artist', required=True, help='Artist name')
            love_parser.add_argument('--track', required=True, help='Track name')

        accounts_parser = subparsers.add_parser('accounts', help='Manage linked accounts')
        accounts_parser.add_argument(
            'action',
            choices=['list', 'add', 'remove'],
            help='Account action'
        )
        accounts_parser.add_argument('--user-id', help='Local user id')
        accounts_parser.add_argument('--username', help='Scrobble service username')
        accounts_parser.add_argument('--session-key', help='Scrobble service session key')
        accounts_parser.add_argument(
            '--no-sync-favorites',
            action='store_true',
            help='Link the account without importing loved tracks'
        )

        serve_parser = subparsers.add_parser('serve', help='Run the HTTP status server')
        serve_parser.add_argument('--library', required=True, help='Path to the library JSON file')
        serve_parser.add_argument('--host', default='localhost', help='Bind host')
        serve_parser.add_argument('--port', type=int, default=3000, help='Bind port')

        for sub in [sync_parser, accounts_parser, serve_parser] + love_parsers:
            sub.add_argument(
                '--log-level',
                choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                default='INFO',
                help='Set logging level'
            )

        return parser

    def _setup_signal_handlers(self) -> dict:
        """First SIGINT/SIGTERM requests cancellation, a second one exits.

        Returns:
            The previously installed handlers, keyed by signal number
        """
        def signal_handler(signum, frame):
            logger = logging.getLogger(__name__)
            if self._cancel_event.is_set():
                logger.warning(f"Received signal {signum} again, exiting")
                self._cleanup_resources()
                sys.exit(130)
            logger.warning(f"Received signal {signum}, cancelling after the current step...")
            self._cancel_event.set()

        return {
            signal.SIGINT: signal.signal(signal.SIGINT, signal_handler),
            signal.SIGTERM: signal.signal(signal.SIGTERM, signal_handler),
        }

    def _cleanup_resources(self) -> None:
        logger = logging.getLogger(__name__)
        if self._start_time:
            duration = time.time() - self._start_time
            logger.info(f"CLI execution time: {duration:.2f}s")

    def _create_job_id(self) -> str:
        return f"lovesync_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

    def _sync(self, args: argparse.Namespace, config: ConfigManager) -> int:
        """Run one reconciliation pass."""
        logger = logging.getLogger(__name__)

        job_id = args.job_id or self._create_job_id()
        metrics = SyncMetrics(job_id)
        provider = create_provider(config)

        def report(value: float) -> None:
            logger.info(f"Progress: {value:.1f}%")

        try:
            orchestrator = create_orchestrator(config, args.library, metrics=metrics, provider=provider)
            previous_handlers = self._setup_signal_handlers()
            try:
                result = orchestrator.execute(cancel_event=self._cancel_event, progress=report, job_id=job_id)
            finally:
                for signum, handler in previous_handlers.items():
                    signal.signal(signum, handler)
        finally:
            provider.close()

        if args.metrics_path:
            metrics.save_to_file(args.metrics_path)
            logger.info(f"Metrics saved to: {args.metrics_path}")
        metrics.print_summary()

        if result.outcome == SyncOutcome.CANCELLED:
            return 130
        if result.outcome == SyncOutcome.REJECTED:
            return 1
        return 0

    def _love(self, args: argparse.Namespace, config: ConfigManager) -> int:
        """Love or unlove one track for a configured account."""
        logger = logging.getLogger(__name__)

        account = config.get_account(args.user_id)
        if account is None or not account.has_credential:
            logger.error(f"No linked account with a session key for user {args.user_id}")
            return 1

        provider = create_provider(config)
        try:
            if args.command == 'love':
                result = provider.love_track(account, args.artist, args.track)
            else:
                result = provider.unlove_track(account, args.artist, args.track)
        finally:
            provider.close()

        if not result.is_ok:
            logger.error(f"{args.command} failed: {result.kind.value} {result.detail}")
            return 1
        print(f"{args.command}: '{args.track}' by '{args.artist}' for {account.username}")
        return 0

    def _accounts(self, args: argparse.Namespace, config: ConfigManager) -> int:
        """List, add or remove linked accounts."""
        if args.action == 'list':
            accounts = config.list_accounts()
            print("Linked accounts:")
            print("-" * 50)
            for account in accounts:
                key_indicator = "[SESSION KEY]" if account.has_credential else "[NO SESSION KEY]"
                sync_indicator = "sync on" if account.sync_favorites else "sync off"
                print(f"{account.user_id}: {account.username} {key_indicator} ({sync_indicator})")
            return 0

        if not args.user_id:
            raise ValueError("--user-id is required")

        if args.action == 'add':
            if not args.username:
                raise ValueError("--username is required")
            config.save_account(ScrobbleAccount(
                user_id=args.user_id,
                username=args.username,
                session_key=args.session_key,
                sync_favorites=not args.no_sync_favorites,
            ))
            print(f"Linked {args.user_id} to {args.username}")
            return 0

        if not config.remove_account(args.user_id):
            print(f"No linked account for {args.user_id}")
            return 1
        print(f"Removed {args.user_id}")
        return 0

    def _serve(self, args: argparse.Namespace, config: ConfigManager) -> int:
        from lovesync.interfaces.http import HTTPServer

        with create_provider(config) as provider:
            orchestrator = create_orchestrator(config, args.library, provider=provider)
            server = HTTPServer(orchestrator, host=args.host, port=args.port)
            server.run()
        return 0

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run the CLI and return the process exit code."""
        self._start_time = time.time()
        logger = logging.getLogger(__name__)

        args = self.parser.parse_args(argv)
        if not args.command:
            self.parser.print_help()
            return 1

        setup_logging(args.log_level)

        try:
            config = setup_config(args.config_dir)
            if args.command == 'sync':
                return self._sync(args, config)
            if args.command in ('love', 'unlove'):
                return self._love(args, config)
            if args.command == 'accounts':
                return self._accounts(args, config)
            if args.command == 'serve':
                return self._serve(args, config)
            self.parser.print_help()
            return 1
        except (ConfigError, ValueError, FileNotFoundError) as e:
            logger.error(f"CLI error: {e}")
            return 1
        except KeyboardInterrupt:
            logger.warning("Operation cancelled by user")
            return 130
        finally:
            self._cleanup_resources()


def main():
    """Main entry point."""
    load_dotenv()
    sys.exit(CLI().run())


if __name__ == '__main__':
    main()
