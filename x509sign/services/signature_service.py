"""
Batch request handling for the signing service.

A batch maps sub-request names to their data and every entry is answered
independently, so one failing entry never hides the results of the others.
"""
import logging
from contextlib import nullcontext
from typing import Any, Callable, Dict, Mapping, Optional, Union

from ..models.config import Config
from ..security.exceptions import X509SignError, CertificateDataError
from ..security.extension_registry import ExtensionRegistry
from ..security.key_modes import classify
from ..security.keys import PublicKeyExtractor, load_private_key
from ..security.reissuer import CertificateReissuer

PUBLIC_KEY = "publicKey"
PUBLIC_KEY_MODE = "publicKeyMode"
SIGNED_CERTIFICATE = "signedCertificate"

ISSUE_FAILED_MESSAGE = "Unable to issue the certificate."


class SignatureService:
    """Answers publicKey, publicKeyMode and signedCertificate sub-requests."""

    def __init__(self, private_key: Union[str, bytes], passphrase: Optional[str] = None,
                 declarations=None, issuer_dn: Optional[str] = None,
                 public_key_format: str = "PKCS8", logging_service=None):
        """
        Args:
            private_key: Issuer private key (PEM, DER or OpenSSH)
            passphrase: Passphrase of an encrypted key
            declarations: Extension declarations available to every request
            issuer_dn: Issuer name for re-issued certificates
            public_key_format: Default format of publicKey answers
            logging_service: Optional LoggingService collecting metrics

        Raises:
            KeyLoadFailure: If the key cannot be read with the passphrase
        """
        self.logger = logging.getLogger(__name__)
        self.logging_service = logging_service
        self._private_key_data = private_key
        self._passphrase = passphrase
        self.private_key = load_private_key(private_key, passphrase)
        self.key_mode = classify(self.private_key)
        # parsed once so a broken declaration fails at startup
        self.base_registry = ExtensionRegistry(declarations or [])
        self.issuer_dn = issuer_dn
        self.public_key_format = public_key_format
        self.extractor = PublicKeyExtractor()

        self._handlers: Dict[str, Callable[[Any], Any]] = {
            PUBLIC_KEY: self.get_public_key,
            PUBLIC_KEY_MODE: self.get_public_key_mode,
            SIGNED_CERTIFICATE: self.get_signed_certificate,
        }

        self.logger.info(
            f"Signature service ready with {self.key_mode.value} key and "
            f"{len(self.base_registry)} extension declaration(s)"
        )

    @classmethod
    def from_config(cls, config: Config, config_service=None, logging_service=None) -> "SignatureService":
        """Create the service from a loaded configuration."""
        if config_service is None:
            from .config_service import ConfigService
            config_service = ConfigService()

        return cls(
            private_key=config_service.read_private_key(config),
            passphrase=config.private_key_passphrase,
            declarations=config_service.load_extension_declarations(config),
            issuer_dn=config.issuer_dn,
            public_key_format=config.public_key_format,
            logging_service=logging_service,
        )

    @property
    def request_types(self):
        return list(self._handlers)

    def get_public_key(self, data=None) -> str:
        """Public key of the issuer key, in ``data['format']`` or the default format."""
        output_format = None
        if isinstance(data, Mapping):
            output_format = data.get("format")
        return self.extractor.extract(
            self._private_key_data,
            self._passphrase,
            output_format=output_format or self.public_key_format,
        )

    def get_public_key_mode(self, data=None) -> str:
        return self.key_mode.value

    def get_signed_certificate(self, data) -> Optional[str]:
        """Issue a certificate with a registry private to this request."""
        if not isinstance(data, Mapping):
            raise CertificateDataError("signedCertificate data must be an object")

        reissuer = CertificateReissuer(registry=self.base_registry.copy(), issuer_name=self.issuer_dn)
        return reissuer.issue(self.private_key, data)

    def handle_request(self, name: str, data: Any = None) -> Dict[str, Any]:
        """Run one sub-request and wrap its outcome in a success record."""
        handler = self._handlers.get(name)
        if handler is None:
            self.logger.warning(f"Unknown request type: {name}")
            return {"success": False, "error": f"Unknown request type: {name}"}

        try:
            with self._measure(name):
                result = handler(data)
        except X509SignError as e:
            self.logger.warning(f"{name} request failed: {e}")
            self._track(e, name)
            return {"success": False, "error": str(e)}
        except Exception as e:
            self.logger.exception(f"Unexpected error while handling {name}")
            self._track(e, name)
            return {"success": False, "error": f"Internal error while handling {name}"}

        if result is None:
            return {"success": False, "error": ISSUE_FAILED_MESSAGE}

        return {"success": True, "result": result}

    def handle_requests(self, requests: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
        """
        Answer every entry of a batch.

        Raises:
            TypeError: If the batch is not a mapping
        """
        if not isinstance(requests, Mapping):
            raise TypeError("Requests must be an object mapping request types to data")

        self.logger.debug(f"Handling batch of {len(requests)} request(s)")
        return {name: self.handle_request(name, data) for name, data in requests.items()}

    def _measure(self, name: str):
        if self.logging_service is None:
            return nullcontext()
        return self.logging_service.measure_performance(f"sign.{name}", {"request_type": name})

    def _track(self, error: Exception, name: str):
        if self.logging_service is not None:
            self.logging_service.track_error(error, {"request_type": name})
