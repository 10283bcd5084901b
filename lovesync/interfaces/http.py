import logging
import os
import threading
from datetime import datetime
from typing import Optional

from flask import Flask, jsonify

from lovesync.application.pipeline import SyncOrchestrator
from lovesync.crosscutting.logging import log_error


class HTTPServer:
    """HTTP status surface for the loved tracks sync."""

    def __init__(self, orchestrator: SyncOrchestrator,
                 host: str = 'localhost', port: int = 3000, debug: bool = False):
        """Initialize HTTP server."""
        self.orchestrator = orchestrator
        self.host = host
        self.port = port
        self.debug = debug
        self.app = Flask(__name__)
        self.logger = logging.getLogger(__name__)

        self.version = "0.1.0"
        self.commit = os.getenv('GIT_COMMIT', 'unknown')

        self._cancel_event = threading.Event()
        self._worker: Optional[threading.Thread] = None

        self._setup_routes()

    def _run_pass(self) -> None:
        try:
            self.orchestrator.execute(cancel_event=self._cancel_event)
        except Exception as e:
            log_error(self.logger, "Background sync failed", e)

    def start_sync(self) -> bool:
        """Start a pass in a background thread. Returns False if one is running."""
        if self.orchestrator.is_syncing or (self._worker is not None and self._worker.is_alive()):
            return False
        self._cancel_event = threading.Event()
        self._worker = threading.Thread(target=self._run_pass, name='lovesync-sync', daemon=True)
        self._worker.start()
        return True

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.route('/health', methods=['GET'])
        def health_check():
            return jsonify({
                'status': 'healthy',
                'version': self.version,
                'commit': self.commit,
                'timestamp': datetime.now().isoformat()
            }), 200

        @self.app.route('/status', methods=['GET'])
        def sync_status():
            status = self.orchestrator.status().to_dict()
            status['task'] = {
                'name': SyncOrchestrator.NAME,
                'key': SyncOrchestrator.KEY,
                'category': SyncOrchestrator.CATEGORY,
                'description': SyncOrchestrator.DESCRIPTION,
            }
            return jsonify(status), 200

        @self.app.route('/sync', methods=['POST'])
        def trigger_sync():
            if not self.start_sync():
                return jsonify({'error': 'Sync already running'}), 409
            self.logger.info("Sync triggered over HTTP")
            return jsonify({'status': 'started'}), 202

        @self.app.route('/sync/cancel', methods=['POST'])
        def cancel_sync():
            if not self.orchestrator.is_syncing:
                return jsonify({'error': 'No sync running'}), 409
            self._cancel_event.set()
            self.logger.info("Sync cancellation requested over HTTP")
            return jsonify({'status': 'cancelling'}), 202

        @self.app.route('/', methods=['GET'])
        def root():
            return jsonify({
                'service': 'lovesync HTTP Interface',
                'version': self.version,
                'endpoints': {
                    'health': '/health',
                    'status': '/status',
                    'sync': '/sync',
                    'cancel': '/sync/cancel'
                }
            }), 200

    def run(self) -> None:
        """Run the HTTP server."""
        self.logger.info(f"Starting lovesync HTTP server on {self.host}:{self.port}")
        self.app.run(
            host=self.host,
            port=self.port,
            debug=self.debug
        )


def create_app(orchestrator: SyncOrchestrator) -> Flask:
    """Create Flask app for testing."""
    server = HTTPServer(orchestrator)
    return server.app
