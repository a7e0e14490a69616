"""
Main entry point of the X.509 signing service.
Loads configuration, wires the services together and handles shutdown.
"""

import os
import sys
import signal
import logging
from typing import Optional
from datetime import datetime

from .services.config_service import ConfigService
from .services.logging_service import LoggingService
from .services.signature_service import SignatureService
from .app import SignatureFlaskApp


class X509SignApplication:
    """Main application class of the signing service."""

    def __init__(self, config_path: Optional[str] = None, console_logging: bool = True):
        """
        Args:
            config_path: Path to configuration file; searched for if None
            console_logging: Also log to stdout
        """
        self.config_path = config_path or self._get_default_config_path()
        self.console_logging = console_logging
        self.logger = logging.getLogger(__name__)
        self.config_service = None
        self.config = None
        self.logging_service = None
        self.signature_service = None
        self.flask_app = None
        self._is_running = False
        self._started_at = None

    def _get_default_config_path(self) -> str:
        possible_paths = [
            "config/x509_sign.properties",
            "x509_sign.properties",
            os.path.expanduser("~/.x509_sign/config.properties"),
            "/etc/x509_sign/config.properties"
        ]

        for path in possible_paths:
            if os.path.exists(path):
                return path
        return possible_paths[0]

    def setup_signal_handlers(self):
        """Install SIGINT and SIGTERM handlers that stop the application."""
        def signal_handler(signum, frame):
            self.logger.info(f"Received {signal.Signals(signum).name} signal, shutting down...")
            self.shutdown()
            sys.exit(0)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def initialize(self) -> bool:
        """
        Initialize all application components.

        Returns:
            True if initialization successful, False otherwise
        """
        self.config_service = ConfigService()

        if not os.path.exists(self.config_path) and not os.environ.get("SIGNATURE_PRIVATE_KEY"):
            self.config_service.create_default_config_file(self.config_path)
            self.logger.error(
                f"Configuration file not found, a default one was created at {self.config_path}. "
                "Edit it and restart the service."
            )
            return False

        try:
            config_path = self.config_path if os.path.exists(self.config_path) else None
            self.config = self.config_service.load_config(config_path)
        except (ValueError, FileNotFoundError) as e:
            self.logger.error(f"Failed to load configuration: {e}")
            return False

        try:
            self.logging_service = LoggingService(self.config, console=self.console_logging)
        except OSError as e:
            self.logger.error(f"Failed to set up logging: {e}")
            return False

        try:
            self.signature_service = SignatureService.from_config(
                self.config, self.config_service, self.logging_service
            )
        except Exception as e:
            self.logger.error(f"Failed to initialize signature service: {e}")
            self.logging_service.shutdown()
            return False

        self.flask_app = SignatureFlaskApp(self.signature_service, self.logging_service, self.config)
        self._is_running = True
        self._started_at = datetime.now()
        self.logger.info("Signing service initialized successfully")
        return True

    def run(self, host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
        """Serve HTTP requests until interrupted."""
        if not self._is_running:
            self.logger.error("Application not initialized. Call initialize() first.")
            return

        try:
            self.flask_app.run(host=host, port=port, debug=debug)
        except KeyboardInterrupt:
            self.logger.info("Received keyboard interrupt")
        finally:
            self.shutdown()

    def shutdown(self):
        if not self._is_running:
            return

        self._is_running = False
        self.logger.info("Signing service stopped")
        if self.logging_service:
            self.logging_service.shutdown()

    def is_running(self) -> bool:
        return self._is_running

    def get_status(self) -> dict:
        return {
            'running': self._is_running,
            'config_path': self.config_path,
            'key_mode': self.signature_service.key_mode.value if self.signature_service else None,
            'extensions': len(self.signature_service.base_registry) if self.signature_service else 0,
            'issuer_dn': self.config.issuer_dn if self.config else None,
            'started_at': self._started_at.isoformat() if self._started_at else None
        }


def main(argv=None):
    """Main entry point for the application."""
    import argparse

    parser = argparse.ArgumentParser(description='X.509 certificate signing service')
    parser.add_argument('--config', '-c', help='Configuration file path')
    parser.add_argument('--host', help='Host to bind to (uses config if not specified)')
    parser.add_argument('--port', type=int, help='Port to bind to (uses config if not specified)')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode')
    parser.add_argument('--check-config', action='store_true', help='Check configuration and exit')
    parser.add_argument('--print-public-key', nargs='?', const='PKCS8', metavar='FORMAT',
                        help='Print the signing public key (PKCS8, PKCS1 or OpenSSH) and exit')

    args = parser.parse_args(argv)

    quiet = args.check_config or args.print_public_key is not None
    app = X509SignApplication(config_path=args.config, console_logging=not quiet)

    if not app.initialize():
        print("Failed to initialize application")
        sys.exit(1)

    if args.check_config:
        status = app.get_status()
        print("Configuration check passed")
        print(f"Config path: {status['config_path']}")
        print(f"Key mode: {status['key_mode']}")
        print(f"Extension declarations: {status['extensions']}")
        print(f"Issuer DN: {status['issuer_dn'] or '(from candidate)'}")
        app.shutdown()
        sys.exit(0)

    if args.print_public_key is not None:
        answer = app.signature_service.handle_request('publicKey', {'format': args.print_public_key})
        app.shutdown()
        if not answer['success']:
            print(f"Unable to export public key: {answer['error']}")
            sys.exit(1)
        print(answer['result'])
        sys.exit(0)

    app.setup_signal_handlers()
    app.run(host=args.host, port=args.port, debug=args.debug)


if __name__ == '__main__':
    main()
