"""
Configuration data models for the certificate signing service.
"""
from dataclasses import dataclass
from typing import Optional


PUBLIC_KEY_FORMATS = ["PKCS8", "PKCS1", "OPENSSH"]


@dataclass
class Config:
    """Main configuration class containing all service settings."""

    # Signing settings
    private_key_path: str = "keys/signing.key"
    private_key: Optional[str] = None
    private_key_passphrase: Optional[str] = None
    issuer_dn: Optional[str] = None
    public_key_format: str = "PKCS8"

    # Extension settings
    extensions_path: Optional[str] = None
    extensions: Optional[str] = None

    # Server settings
    api_host: str = "0.0.0.0"
    api_port: int = 5000

    # Application settings
    log_level: str = "INFO"
    log_file_path: str = "logs/x509_sign.log"

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate_types()

    def _validate_types(self):
        """Ensure all configuration values have correct types."""
        if not isinstance(self.api_port, int) or not (1 <= self.api_port <= 65535):
            raise ValueError("api_port must be an integer between 1 and 65535")

        if self.log_level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError("log_level must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")

        if str(self.public_key_format).upper() not in PUBLIC_KEY_FORMATS:
            raise ValueError("public_key_format must be one of: PKCS8, PKCS1, OpenSSH")


@dataclass
class ConfigValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    severity: str = "error"  # error, warning

    def __str__(self):
        return f"{self.severity.upper()}: {self.field} - {self.message}"


@dataclass
class ConfigValidationResult:
    """Result of configuration validation."""
    is_valid: bool
    errors: list[ConfigValidationError]
    warnings: list[ConfigValidationError]

    def __post_init__(self):
        """Separate errors and warnings."""
        all_issues = self.errors + self.warnings
        self.errors = [e for e in all_issues if e.severity == "error"]
        self.warnings = [e for e in all_issues if e.severity == "warning"]

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    def get_error_summary(self) -> str:
        """Get a formatted summary of all errors and warnings."""
        lines = []

        if self.errors:
            lines.append("Configuration Errors:")
            for error in self.errors:
                lines.append(f"  - {error}")

        if self.warnings:
            lines.append("Configuration Warnings:")
            for warning in self.warnings:
                lines.append(f"  - {warning}")

        return "\n".join(lines) if lines else "Configuration is valid"
