"""
Flask application exposing the signing service over HTTP.
"""
from flask import Flask, request, jsonify
import logging
from typing import Optional
from datetime import datetime

from .security.exceptions import UnsupportedFormatError, KeyLoadFailure
from .services.signature_service import SignatureService


class SignatureFlaskApp:
    """Flask application serving the batch signing API."""

    def __init__(self, signature_service: SignatureService, logging_service=None, config=None):
        """
        Args:
            signature_service: Service answering signing requests
            logging_service: Optional LoggingService for monitoring endpoints
            config: Optional Config providing the default bind address
        """
        self.app = Flask(__name__)
        self.signature_service = signature_service
        self.logging_service = logging_service
        self.config = config
        self.logger = logging.getLogger(__name__)

        self._setup_routes()
        self._setup_error_handlers()
        self._setup_security_headers()

    def _setup_routes(self):
        """Set up API routes."""

        @self.app.route('/health', methods=['GET'])
        def health_check():
            health_status = {
                'status': 'healthy',
                'service': 'x509-sign',
                'key_mode': self.signature_service.key_mode.value,
                'request_types': self.signature_service.request_types,
                'timestamp': datetime.now().isoformat()
            }

            if self.logging_service:
                health_status['logging'] = self.logging_service.get_health_status()

            return jsonify(health_status)

        @self.app.route('/api/sign', methods=['POST'])
        def sign():
            """Answer a batch of signing sub-requests."""
            data = request.get_json(silent=True)
            if not isinstance(data, dict):
                return jsonify({
                    'error': 'Invalid request',
                    'message': 'Request body must be a JSON object'
                }), 400

            self.logger.info(f"Received signing batch: {', '.join(map(str, data)) or 'empty'}")
            return jsonify(self.signature_service.handle_requests(data))

        @self.app.route('/api/public-key', methods=['GET'])
        def get_public_key():
            output_format = request.args.get('format') or self.signature_service.public_key_format
            try:
                public_key = self.signature_service.get_public_key({'format': output_format})
            except UnsupportedFormatError as e:
                return jsonify({
                    'error': 'Unsupported format',
                    'message': str(e)
                }), 400
            except KeyLoadFailure as e:
                self.logger.error(f"Unable to read signing key: {e}")
                return jsonify({
                    'error': 'Internal server error',
                    'message': 'Signing key is unavailable'
                }), 500

            return jsonify({
                'publicKey': public_key,
                'mode': self.signature_service.get_public_key_mode(),
                'format': output_format
            })

        @self.app.route('/api/monitoring/metrics', methods=['GET'])
        def get_performance_metrics():
            if not self.logging_service:
                return jsonify({'error': 'Logging service not available'}), 503

            operation = request.args.get('operation')
            return jsonify({
                'metrics': self.logging_service.get_performance_stats(operation),
                'timestamp': datetime.now().isoformat()
            })

        @self.app.route('/api/monitoring/errors', methods=['GET'])
        def get_error_summary():
            if not self.logging_service:
                return jsonify({'error': 'Logging service not available'}), 503

            try:
                since_hours = int(request.args.get('since_hours', 24))
            except ValueError:
                return jsonify({
                    'error': 'Invalid request',
                    'message': 'since_hours must be an integer'
                }), 400

            return jsonify({
                'error_summary': self.logging_service.get_error_summary(since_hours),
                'since_hours': since_hours,
                'timestamp': datetime.now().isoformat()
            })

    def _setup_error_handlers(self):
        """Set up error handlers."""

        @self.app.errorhandler(404)
        def not_found(error):
            return jsonify({
                'error': 'Not found',
                'message': 'The requested endpoint does not exist'
            }), 404

        @self.app.errorhandler(405)
        def method_not_allowed(error):
            return jsonify({
                'error': 'Method not allowed',
                'message': 'The requested method is not allowed for this endpoint'
            }), 405

        @self.app.errorhandler(500)
        def internal_error(error):
            self.logger.error(f"Internal server error: {error}")
            return jsonify({
                'error': 'Internal server error',
                'message': 'An unexpected error occurred'
            }), 500

    def _setup_security_headers(self):
        """Set up security headers for all responses."""

        @self.app.after_request
        def add_security_headers(response):
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
            response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
            response.headers['X-Content-Type-Options'] = 'nosniff'
            response.headers['X-Frame-Options'] = 'DENY'
            response.headers['Cache-Control'] = 'no-store'
            response.headers['Referrer-Policy'] = 'no-referrer'
            response.headers.pop('Server', None)
            return response

    def run(self, host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
        """Run the development server."""
        if host is None:
            host = self.config.api_host if self.config else '0.0.0.0'
        if port is None:
            port = self.config.api_port if self.config else 5000

        self.logger.info(f"Starting signing service on http://{host}:{port}")
        self.app.run(host=host, port=port, debug=debug)

    def get_app(self) -> Flask:
        """Get the Flask application instance."""
        return self.app
