"""
Tests for the main application entry point.
"""

import os
import signal
import tempfile
from unittest.mock import Mock, patch

import pytest

from x509sign.main import X509SignApplication, main
from x509sign.services.config_service import ENVIRONMENT_OVERRIDES

from certificate_fixtures import generate_ec_key, private_key_pem


class TestX509SignApplication:
    """Test cases for X509SignApplication class."""

    def setup_method(self):
        """Setup test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = os.path.join(self.temp_dir, "x509_sign.properties")
        self.key_path = os.path.join(self.temp_dir, "signing.key")
        with open(self.key_path, "w") as f:
            f.write(private_key_pem(generate_ec_key()))

        with open(self.config_path, "w") as f:
            f.write(f"""
[signing]
private_key_path = {self.key_path}
issuer_dn = CN=Test Authority,O=Example

[extensions]
declarations = [["super", "1.3.6.1.4.1.55555.1", {{"type": "ANY"}}]]

[server]
host = 127.0.0.1
port = 5443

[app]
log_level = INFO
log_file_path = {self.temp_dir}/logs/x509_sign.log
""")

        # the service variables of the test runner must not leak in
        self.env_patch = patch.dict(os.environ)
        self.env_patch.start()
        for name in ENVIRONMENT_OVERRIDES:
            os.environ.pop(name, None)

        self.apps = []

    def teardown_method(self):
        """Clean up test fixtures."""
        for app in self.apps:
            app.shutdown()
        self.env_patch.stop()
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _app(self, config_path=None):
        app = X509SignApplication(config_path=config_path or self.config_path, console_logging=False)
        self.apps.append(app)
        return app

    def test_application_creation(self):
        """Test the state of a fresh application."""
        app = self._app()

        assert app.config_path == self.config_path
        assert not app.is_running()
        assert app.config_service is None
        assert app.signature_service is None

    def test_get_default_config_path(self):
        """Test default configuration path detection."""
        with patch('os.path.exists', return_value=False):
            app = X509SignApplication()

        assert app.config_path == "config/x509_sign.properties"

    def test_initialize_success(self):
        """Test that every component is wired up."""
        app = self._app()

        assert app.initialize() is True
        assert app.is_running()
        assert app.config.api_port == 5443
        assert app.signature_service.issuer_dn == "CN=Test Authority,O=Example"
        assert app.flask_app.signature_service is app.signature_service
        assert app.flask_app.logging_service is app.logging_service

        status = app.get_status()
        assert status['running'] is True
        assert status['key_mode'] == 'EC'
        assert status['extensions'] == 1
        assert status['issuer_dn'] == "CN=Test Authority,O=Example"
        assert status['started_at'] is not None

    def test_initialize_missing_config_creates_default(self):
        """Test that a template is written when no configuration exists."""
        missing_config_path = os.path.join(self.temp_dir, "config", "missing.properties")
        app = self._app(missing_config_path)

        assert app.initialize() is False
        assert os.path.exists(missing_config_path)
        assert not app.is_running()

    def test_initialize_from_environment_only(self):
        """Test that the key variable alone is enough to start."""
        os.environ["SIGNATURE_PRIVATE_KEY"] = private_key_pem(generate_ec_key())
        app = self._app(os.path.join(self.temp_dir, "missing.properties"))

        with patch('x509sign.main.LoggingService') as mock_logging_service:
            assert app.initialize() is True

        mock_logging_service.assert_called_once()
        assert app.signature_service.key_mode.value == 'EC'
        assert not os.path.exists(os.path.join(self.temp_dir, "missing.properties"))

    def test_initialize_invalid_config(self):
        with open(self.config_path, "a") as f:
            f.write("\n[signing]\n")
        app = self._app()

        assert app.initialize() is False

    def test_initialize_unreadable_key(self):
        """Test that a broken key stops the start-up."""
        with open(self.key_path, "w") as f:
            f.write("not a key")
        app = self._app()

        assert app.initialize() is False
        assert app.signature_service is None

    def test_run_without_initialize(self):
        app = self._app()
        app.flask_app = Mock()

        app.run()

        app.flask_app.run.assert_not_called()

    def test_run_and_shutdown(self):
        """Test that run hands over to Flask and shuts down afterwards."""
        app = self._app()
        assert app.initialize()
        app.flask_app = Mock()

        app.run(port=6000)

        app.flask_app.run.assert_called_once_with(host=None, port=6000, debug=False)
        assert not app.is_running()

    def test_setup_signal_handlers(self):
        app = self._app()

        with patch('x509sign.main.signal.signal') as mock_signal:
            app.setup_signal_handlers()

        registered = [call.args[0] for call in mock_signal.call_args_list]
        assert registered == [signal.SIGINT, signal.SIGTERM]

    def test_signal_handler_shuts_down(self):
        app = self._app()
        assert app.initialize()

        with patch('x509sign.main.signal.signal') as mock_signal:
            app.setup_signal_handlers()
        handler = mock_signal.call_args_list[0].args[1]

        with pytest.raises(SystemExit) as exc_info:
            handler(signal.SIGINT, None)
        assert exc_info.value.code == 0
        assert not app.is_running()


class TestMain:
    """Test cases for the command line entry point."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = os.path.join(self.temp_dir, "x509_sign.properties")
        with open(self.config_path, "w") as f:
            f.write(f"""[app]
log_file_path = {self.temp_dir}/logs/x509_sign.log
""")

        self.env_patch = patch.dict(os.environ)
        self.env_patch.start()
        for name in ENVIRONMENT_OVERRIDES:
            os.environ.pop(name, None)
        os.environ["SIGNATURE_PRIVATE_KEY"] = private_key_pem(generate_ec_key())

    def teardown_method(self):
        self.env_patch.stop()
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_check_config(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(['--config', self.config_path, '--check-config'])

        assert exc_info.value.code == 0
        output = capsys.readouterr().out
        assert "Configuration check passed" in output
        assert "Key mode: EC" in output
        assert "Issuer DN: (from candidate)" in output

    def test_print_public_key(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(['-c', self.config_path, '--print-public-key'])

        assert exc_info.value.code == 0
        assert capsys.readouterr().out.startswith("-----BEGIN PUBLIC KEY-----")

    def test_print_public_key_openssh(self, capsys):
        with pytest.raises(SystemExit):
            main(['-c', self.config_path, '--print-public-key', 'OpenSSH'])

        assert capsys.readouterr().out.startswith("ecdsa-sha2-nistp256 ")

    def test_print_public_key_unsupported_format(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(['-c', self.config_path, '--print-public-key', 'PKCS1'])

        assert exc_info.value.code == 1
        assert "Unable to export public key" in capsys.readouterr().out

    def test_initialization_failure(self, capsys):
        del os.environ["SIGNATURE_PRIVATE_KEY"]
        missing = os.path.join(self.temp_dir, "missing.properties")

        with pytest.raises(SystemExit) as exc_info:
            main(['--config', missing, '--check-config'])

        assert exc_info.value.code == 1
        assert "Failed to initialize application" in capsys.readouterr().out

    @patch('x509sign.main.X509SignApplication')
    def test_serve(self, mock_app_class):
        """Test that the server is started with the command line overrides."""
        mock_app = mock_app_class.return_value
        mock_app.initialize.return_value = True

        main(['--host', '127.0.0.1', '--port', '8080', '--debug'])

        mock_app_class.assert_called_once_with(config_path=None, console_logging=True)
        mock_app.setup_signal_handlers.assert_called_once()
        mock_app.run.assert_called_once_with(host='127.0.0.1', port=8080, debug=True)
