"""
Configuration service for loading and validating service settings.
"""
import os
import configparser
from typing import Optional, Dict, Any, List, Mapping
import logging

from cryptography import x509

from ..models.config import Config, ConfigValidationError, ConfigValidationResult
from ..security.exceptions import DeclarationError
from ..security.extension_registry import parse_declarations
from ..security.models import ExtensionDeclaration


# Environment variables understood by existing deployments
ENVIRONMENT_OVERRIDES = {
    "SIGNATURE_PRIVATE_KEY": "signing.private_key",
    "SIGNATURE_PRIVATE_KEY_PASSPHRASE": "signing.passphrase",
    "EXTENSIONS": "extensions.declarations",
}

SECRET_FIELDS = ("private_key", "private_key_passphrase")


class ConfigService:
    """Service for loading and validating service configuration."""

    def __init__(self, config_path: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self._config = None
        if config_path:
            self._config = self.load_config(config_path)

    def get_config(self) -> Config:
        """
        Get the loaded configuration.

        Raises:
            ValueError: If no configuration has been loaded
        """
        if self._config is None:
            raise ValueError("No configuration loaded. Call load_config() first.")
        return self._config

    def load_config(self, config_path: Optional[str] = None,
                    environ: Optional[Mapping[str, str]] = None) -> Config:
        """
        Load configuration from a property file and the environment.

        Args:
            config_path: Path to the configuration file; environment only if None
            environ: Environment mapping, os.environ by default

        Returns:
            Config object with loaded settings

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid or has validation errors
        """
        config_data: Dict[str, Any] = {}
        if config_path is not None:
            if not os.path.exists(config_path):
                raise FileNotFoundError(f"Configuration file not found: {config_path}")
            config_data = self._load_config_file(config_path)

        config_data.update(self._load_environment(os.environ if environ is None else environ))

        config = self._create_config_from_data(config_data)

        validation_result = self.validate_config(config)

        if validation_result.has_errors():
            error_summary = validation_result.get_error_summary()
            raise ValueError(f"Configuration validation failed:\n{error_summary}")

        if validation_result.has_warnings():
            warning_summary = validation_result.get_error_summary()
            self.logger.warning(f"Configuration warnings:\n{warning_summary}")

        self._config = config
        return config

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """Load configuration data from file."""
        # no interpolation: passphrases and JSON may contain '%'
        config_parser = configparser.ConfigParser(interpolation=None)

        try:
            config_parser.read(config_path)
        except configparser.Error as e:
            raise ValueError(f"Failed to parse configuration file: {e}")

        config_data = {}
        for section in config_parser.sections():
            for key, value in config_parser.items(section):
                config_data[f"{section}.{key}"] = value

        for key, value in config_parser.defaults().items():
            if key not in config_data:
                config_data[key] = value

        return config_data

    def _load_environment(self, environ: Mapping[str, str]) -> Dict[str, Any]:
        """Collect overrides from environment variables."""
        overrides = {}
        for variable, config_key in ENVIRONMENT_OVERRIDES.items():
            value = environ.get(variable)
            if value:
                overrides[config_key] = value
                self.logger.debug(f"Using {variable} from environment")
        return overrides

    def _create_config_from_data(self, config_data: Dict[str, Any]) -> Config:
        """Create Config object from configuration data."""
        config_mapping = {
            # Signing settings
            "signing.private_key_path": ("private_key_path", str),
            "private_key_path": ("private_key_path", str),
            "signing.private_key": ("private_key", str),
            "signing.passphrase": ("private_key_passphrase", str),
            "signing.issuer_dn": ("issuer_dn", str),
            "issuer_dn": ("issuer_dn", str),
            "signing.public_key_format": ("public_key_format", str),
            "public_key_format": ("public_key_format", str),

            # Extension settings
            "extensions.path": ("extensions_path", str),
            "extensions_path": ("extensions_path", str),
            "extensions.declarations": ("extensions", str),

            # Server settings
            "server.host": ("api_host", str),
            "api_host": ("api_host", str),
            "server.port": ("api_port", int),
            "api_port": ("api_port", int),

            # Application settings
            "app.log_level": ("log_level", str),
            "log_level": ("log_level", str),
            "app.log_file_path": ("log_file_path", str),
            "log_file_path": ("log_file_path", str),
        }

        config_kwargs = {}

        for config_key, raw_value in config_data.items():
            if config_key in config_mapping:
                field_name, field_type = config_mapping[config_key]
                try:
                    if field_type == int:
                        value = int(raw_value)
                    elif field_name in SECRET_FIELDS:
                        # keys and passphrases are used byte for byte
                        value = str(raw_value) if raw_value else None
                    else:
                        value = str(raw_value).strip() if raw_value is not None else None
                        if value == "":
                            value = None
                    if value is not None:
                        config_kwargs[field_name] = value
                except (ValueError, TypeError) as e:
                    raise ValueError(f"Invalid value for {config_key}: {raw_value} ({e})")

        if "log_level" in config_kwargs:
            config_kwargs["log_level"] = config_kwargs["log_level"].upper()

        return Config(**config_kwargs)

    def validate_config(self, config: Config) -> ConfigValidationResult:
        """
        Validate configuration settings.

        Args:
            config: Configuration object to validate

        Returns:
            ConfigValidationResult with validation results
        """
        errors = []
        warnings = []

        # Signing key
        if not config.private_key:
            if not config.private_key_path:
                errors.append(ConfigValidationError(
                    "private_key_path",
                    "A signing key file or SIGNATURE_PRIVATE_KEY is required"
                ))
            elif not os.path.exists(config.private_key_path):
                errors.append(ConfigValidationError(
                    "private_key_path",
                    f"Signing key file not found: {config.private_key_path}"
                ))

        # Issuer name override
        if config.issuer_dn:
            try:
                x509.Name.from_rfc4514_string(config.issuer_dn)
            except ValueError as e:
                errors.append(ConfigValidationError(
                    "issuer_dn",
                    f"Issuer DN is not a valid RFC 4514 name: {e}"
                ))

        # Extension declarations
        if config.extensions_path and not os.path.exists(config.extensions_path):
            errors.append(ConfigValidationError(
                "extensions_path",
                f"Extensions file not found: {config.extensions_path}"
            ))
        else:
            try:
                self.load_extension_declarations(config)
            except DeclarationError as e:
                errors.append(ConfigValidationError("extensions", str(e)))

        # Log file path
        if config.log_file_path:
            log_dir = os.path.dirname(config.log_file_path)
            if log_dir and not os.path.exists(log_dir):
                warnings.append(ConfigValidationError(
                    "log_file_path",
                    f"Log directory does not exist: {log_dir}",
                    "warning"
                ))

        all_issues = errors + warnings
        return ConfigValidationResult(
            is_valid=len(errors) == 0,
            errors=all_issues,
            warnings=[]
        )

    def load_extension_declarations(self, config: Config) -> List[ExtensionDeclaration]:
        """
        Read the declarations from the extensions file and the inline setting.

        Raises:
            DeclarationError: If any declaration is malformed
        """
        declarations = []
        if config.extensions_path:
            with open(config.extensions_path, 'r', encoding='utf-8') as f:
                declarations.extend(parse_declarations(f.read()))
        if config.extensions:
            declarations.extend(parse_declarations(config.extensions))
        return declarations

    def read_private_key(self, config: Config) -> bytes:
        """Return the signing key contents, inline value first."""
        if config.private_key:
            return config.private_key.encode('utf-8')
        with open(config.private_key_path, 'rb') as f:
            return f.read()

    def create_default_config_file(self, config_path: str) -> None:
        """
        Create a default configuration file with example settings.

        Args:
            config_path: Path where to create the config file
        """
        config_content = """# X.509 Signing Service Configuration File
# SIGNATURE_PRIVATE_KEY, SIGNATURE_PRIVATE_KEY_PASSPHRASE and EXTENSIONS
# environment variables override the matching settings below.

[signing]
private_key_path = keys/signing.key
passphrase =
# issuer_dn = CN=Signing Authority,O=Example
public_key_format = PKCS8

[extensions]
# JSON list of [name, oid, shape] declarations
path =
declarations = []

[server]
host = 0.0.0.0
port = 5000

[app]
log_level = INFO
log_file_path = logs/x509_sign.log
"""

        config_dir = os.path.dirname(config_path)
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)

        with open(config_path, 'w') as f:
            f.write(config_content)

        self.logger.info(f"Created default configuration file: {config_path}")
