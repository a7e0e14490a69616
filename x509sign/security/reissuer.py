"""
Certificate issuance under the signing authority's key.

Two paths are supported:

* direct issuance, where the caller gives every field of the certificate
  (``certificateData``);
* re-issuance, where a candidate certificate self-issued by a client
  application is parsed and its subject and extensions are copied into a new
  certificate signed by the authority.

Both paths bind the certificate to the caller-supplied ``clientPublicKey``.
Parsing failures raise; a template that cannot be signed yields None.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, List, Mapping, Optional, Tuple

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import ExtensionOID

from .certificates import parse_certificate
from .exceptions import CertificateDataError
from .extension_registry import ExtensionRegistry
from .key_modes import KeyFamily, family_for
from .keys import load_public_key
from .models import ExtensionValue
from .names import dict_to_name

REISSUED_SERIAL_NUMBER = 42
REISSUED_VALIDITY = timedelta(hours=24)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def get_extensions_values(template) -> Iterator[Tuple[str, Any]]:
    """Yield (identifier, value) for each extension of a template, in order."""
    for extension in getattr(template, "extensions", None) or ():
        yield extension.identifier, extension.value


def _parse_time(value, field: str) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = datetime.fromtimestamp(value, timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise CertificateDataError(f"{field} is not an ISO 8601 timestamp: {value}")
    else:
        raise CertificateDataError(f"{field} is not a timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_serial(value) -> int:
    if isinstance(value, bool):
        raise CertificateDataError(f"Invalid serial number: {value!r}")
    try:
        serial = int(str(value).strip(), 10) if isinstance(value, str) else int(value)
    except (TypeError, ValueError):
        raise CertificateDataError(f"Invalid serial number: {value!r}")
    if serial <= 0:
        raise CertificateDataError("Serial number must be positive")
    return serial


class CertificateReissuer:
    """Issues certificates signed by the authority's private key."""

    def __init__(self, registry: Optional[ExtensionRegistry] = None, issuer_name=None, clock=None):
        """
        Args:
            registry: Extension declarations available to this request
            issuer_name: Issuer DN for re-issued certificates; the candidate's
                issuer DN is used when None
            clock: Callable returning the current UTC time
        """
        self.registry = registry if registry is not None else ExtensionRegistry()
        self.issuer_name = dict_to_name(issuer_name) if issuer_name else None
        self._clock = clock or _utcnow
        self.logger = logging.getLogger(__name__)

    def load_extensions(self, declarations) -> None:
        self.registry.register(declarations)

    def issue(self, issuer_key, payload: Mapping) -> Optional[str]:
        """
        Issue a certificate from a signing request payload.

        The payload holds ``clientPublicKey`` (and optional ``mode``), optional
        ``extensions`` declarations, and either ``certificateData`` or a
        candidate ``certificate``.

        Returns:
            PEM certificate, or None if signing could not complete

        Raises:
            CertificateParseFailure: If the candidate certificate is unreadable
            CertificateDataError: If required fields are missing or invalid
            KeyLoadFailure: If clientPublicKey cannot be read
            DeclarationError, ExtensionEncodeError: On bad extensions
        """
        if not isinstance(payload, Mapping):
            raise CertificateDataError("Signing request must be an object")

        if payload.get("extensions"):
            self.load_extensions(payload["extensions"])

        if not payload.get("clientPublicKey"):
            raise CertificateDataError("clientPublicKey is required")
        subject_public_key = load_public_key(payload["clientPublicKey"], payload.get("mode"))

        if payload.get("certificateData") is not None:
            return self.issue_certificate_data(issuer_key, payload["certificateData"], subject_public_key)
        if "certificate" in payload:
            return self.reissue_certificate(payload["certificate"], issuer_key, subject_public_key)

        raise CertificateDataError("Either certificate or certificateData is required")

    def issue_certificate_data(self, issuer_key, data: Mapping, subject_public_key) -> Optional[str]:
        """Build and sign a certificate from explicit fields."""
        if not isinstance(data, Mapping):
            raise CertificateDataError("certificateData must be an object")

        issuer = dict_to_name(self._required(data, "issuerDN"))
        subject = dict_to_name(self._required(data, "subjectDN"))
        serial_number = _parse_serial(self._required(data, "serialNumber"))
        not_before = _parse_time(self._required(data, "notBefore"), "notBefore")
        not_after = _parse_time(self._required(data, "notAfter"), "notAfter")
        if not_after <= not_before:
            raise CertificateDataError("notAfter must be later than notBefore")

        family = self._signing_family(issuer_key)
        if family is None:
            return None

        try:
            builder = (
                x509.CertificateBuilder()
                .issuer_name(issuer)
                .subject_name(subject)
                .public_key(subject_public_key)
                .serial_number(serial_number)
                .not_valid_before(not_before)
                .not_valid_after(not_after)
                .add_extension(x509.SubjectKeyIdentifier.from_public_key(subject_public_key), critical=False)
            )
        except (ValueError, TypeError) as e:
            raise CertificateDataError(f"Invalid certificate data: {e}")

        for extension in self._extension_values(data.get("extensions")):
            try:
                builder = builder.add_extension(
                    self.registry.to_extension(extension.identifier, extension.value),
                    critical=extension.critical,
                )
            except ValueError as e:
                raise CertificateDataError(f"Invalid extension {extension.identifier}: {e}")

        return self._sign(builder, issuer_key, family)

    def reissue_certificate(self, candidate, issuer_key, subject_public_key) -> Optional[str]:
        """
        Re-issue a candidate certificate under the issuer key.

        Subject DN and extensions come from the candidate. The candidate's own
        public key, serial number, validity and signature are discarded.

        Raises:
            CertificateParseFailure: If the candidate cannot be parsed
        """
        certificate = parse_certificate(candidate)

        family = self._signing_family(issuer_key)
        if family is None:
            return None

        now = self._clock()
        try:
            builder = (
                x509.CertificateBuilder()
                .issuer_name(self.issuer_name or certificate.issuer)
                .subject_name(certificate.subject)
                .public_key(subject_public_key)
                .serial_number(REISSUED_SERIAL_NUMBER)
                .not_valid_before(now)
                .not_valid_after(now + REISSUED_VALIDITY)
            )
            for extension in certificate.extensions:
                builder = builder.add_extension(
                    self._carried_over(extension, issuer_key, subject_public_key),
                    critical=extension.critical,
                )
        except (ValueError, TypeError) as e:
            self.logger.error(f"Unable to rebuild certificate for {certificate.subject.rfc4514_string()}: {e}")
            return None

        return self._sign(builder, issuer_key, family)

    def _carried_over(self, extension: x509.Extension, issuer_key, subject_public_key):
        # key identifiers follow the keys that replace the candidate's
        if extension.oid == ExtensionOID.SUBJECT_KEY_IDENTIFIER:
            return x509.SubjectKeyIdentifier.from_public_key(subject_public_key)
        if extension.oid == ExtensionOID.AUTHORITY_KEY_IDENTIFIER:
            return x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key())
        return extension.value

    def _signing_family(self, issuer_key) -> Optional[KeyFamily]:
        family = family_for(issuer_key)
        if family is None or not family.can_sign(issuer_key) or not hasattr(issuer_key, "sign"):
            self.logger.error(f"Issuer key of type {type(issuer_key).__name__} cannot sign certificates")
            return None
        return family

    def _sign(self, builder: x509.CertificateBuilder, issuer_key, family: KeyFamily) -> Optional[str]:
        try:
            certificate = builder.sign(issuer_key, family.signature_hash(issuer_key))
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            self.logger.error(f"Certificate signing failed: {e}")
            return None

        self.logger.info(
            f"Issued certificate {certificate.serial_number} for {certificate.subject.rfc4514_string()}"
        )
        return certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")

    @staticmethod
    def _required(data: Mapping, field: str):
        value = data.get(field)
        if value is None or value == "":
            raise CertificateDataError(f"certificateData.{field} is required")
        return value

    @staticmethod
    def _extension_values(raw) -> List[ExtensionValue]:
        if not raw:
            return []
        if isinstance(raw, Mapping):
            return [ExtensionValue(str(identifier), value) for identifier, value in raw.items()]
        if not isinstance(raw, (list, tuple)):
            raise CertificateDataError("certificateData.extensions must be an object or a list")

        values = []
        for item in raw:
            if not isinstance(item, Mapping):
                raise CertificateDataError(f"Invalid extension entry: {item!r}")
            identifier = item.get("id", item.get("extnId"))
            if not identifier:
                raise CertificateDataError(f"Extension entry is missing its identifier: {item!r}")
            value = item["value"] if "value" in item else item.get("extnValue")
            values.append(ExtensionValue(str(identifier), value, bool(item.get("critical", False))))
        return values
