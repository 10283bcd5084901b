#!/usr/bin/env python3
"""
lovesync HTTP status server runner

Usage:
  python3 http_server.py path/to/library.json
"""

import sys

from dotenv import load_dotenv

from lovesync.crosscutting.config import get_config_manager
from lovesync.crosscutting.logging import setup_logging
from lovesync.interfaces.cli import create_orchestrator, create_provider
from lovesync.interfaces.http import HTTPServer


def main():
    """Run the HTTP server."""
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(1)

    load_dotenv()
    setup_logging('INFO')
    config = get_config_manager()
    with create_provider(config) as provider:
        orchestrator = create_orchestrator(config, sys.argv[1], provider=provider)
        server = HTTPServer(
            orchestrator,
            host='localhost',
            port=3000,
            debug=False
        )
        server.run()


if __name__ == '__main__':
    main()
