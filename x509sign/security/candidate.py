"""
Client-side builder of self-issued candidate certificates.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from .exceptions import CertificateDataError
from .extension_registry import ExtensionRegistry
from .key_modes import family_for
from .keys import load_public_key
from .names import dict_to_name

DEFAULT_SERIAL_NUMBER = 42
DEFAULT_VALIDITY = timedelta(days=1)


class CandidateBuilder:
    """Builds candidate certificates signed with an application's own key."""

    def __init__(self, application_key, issuer_dn, registry: Optional[ExtensionRegistry] = None):
        self.application_key = application_key
        self.issuer_dn = issuer_dn
        self.registry = registry if registry is not None else ExtensionRegistry()
        self.logger = logging.getLogger(__name__)

    def build(self, subject_dn, subject_public_key, extensions: Optional[Mapping[str, Any]] = None,
              serial_number=DEFAULT_SERIAL_NUMBER, validity: timedelta = DEFAULT_VALIDITY) -> str:
        """
        Build a CA-flagged candidate certificate.

        Args:
            subject_dn: Friendly subject name mapping
            subject_public_key: Key object, or PEM/DER/OpenSSH public key
            extensions: Custom extension values keyed by registered name or OID
            serial_number: Serial number of the candidate
            validity: Lifetime counted from now

        Returns:
            PEM encoded candidate certificate
        """
        family = family_for(self.application_key)
        if family is None or not family.can_sign(self.application_key):
            raise CertificateDataError("Application key cannot sign certificates")

        if isinstance(subject_public_key, (str, bytes)):
            subject_public_key = load_public_key(subject_public_key)

        now = datetime.now(timezone.utc)
        builder = (
            x509.CertificateBuilder()
            .issuer_name(dict_to_name(self.issuer_dn))
            .subject_name(dict_to_name(subject_dn))
            .public_key(subject_public_key)
            .serial_number(int(serial_number))
            .not_valid_before(now - timedelta(seconds=1))
            .not_valid_after(now + validity)
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        )
        for identifier, value in (extensions or {}).items():
            builder = builder.add_extension(self.registry.to_extension(identifier, value), critical=False)

        certificate = builder.sign(self.application_key, family.signature_hash(self.application_key))
        self.logger.debug(f"Built candidate certificate for {certificate.subject.rfc4514_string()}")
        return certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")
