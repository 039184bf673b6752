"""Main entry point for sshtrust."""

import sys
import argparse
import logging
from typing import List, Optional

from .config import Config
from .coordinator import KeyExchangeCoordinator
from .errors import ProvisionError
from .logging import setup_logging
from .models import ConnectionRequest


EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


class TrustMain:
    """Main application class for sshtrust."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """Initialize the sshtrust application."""
        self.logger = logger or setup_logging()

    def provision(self, request: ConnectionRequest) -> int:
        """Run the key exchange and map the outcome to an exit code."""
        try:
            Config.validate()
        except ValueError as e:
            self.logger.error(f"Configuration error: {e}")
            return EXIT_USAGE

        try:
            coordinator = KeyExchangeCoordinator()
            result = coordinator.run(request)

        except ProvisionError as e:
            self.logger.error(f"Provisioning failed: {e}")
            return e.exit_code
        except KeyboardInterrupt:
            self.logger.warning("Interrupted; remote changes made so far are not rolled back")
            return EXIT_INTERRUPTED
        except Exception as e:
            self.logger.exception(f"Unexpected error: {e}")
            return EXIT_UNEXPECTED

        for path in result.cleanup_failures:
            self.logger.warning(f"Scratch artifact left behind: {path}")

        self.logger.info(
            f"{request.client_token} now trusts and is trusted by "
            f"{request.server_user}@{request.server_address}"
        )
        return EXIT_OK


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="sshtrust",
        description="Establish SSH trust from a client account to a server account",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sshtrust rsyncusr clienthost1 serverhost1
  sshtrust rsyncusr clienthost1 serverhost1 servercluster
        """
    )
    parser.add_argument('user', help='Account name on both client and server')
    parser.add_argument('client', help='Client host address')
    parser.add_argument('server', help='Server host address')
    parser.add_argument('cluster', nargs='?', default=None,
                        help='Load-balanced cluster address in front of the server')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None):
    """Main function with command line argument parsing."""
    args = parse_arguments(argv)

    try:
        request = ConnectionRequest.from_arguments(
            args.user, args.client, args.server, args.cluster
        )
    except ValueError as e:
        print(f"sshtrust: error: {e}", file=sys.stderr)
        sys.exit(EXIT_USAGE)

    app = TrustMain()
    sys.exit(app.provision(request))


if __name__ == '__main__':
    main()
