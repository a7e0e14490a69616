"""
Certificate parsing, inspection and signature checks.
"""
import logging
from typing import Optional, Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm

from .exceptions import CertificateParseFailure, ExtensionDecodeError
from .extension_registry import ExtensionRegistry
from .key_modes import family_for
from .models import CertificateTemplate, ExtensionValue
from .names import name_to_dict

logger = logging.getLogger(__name__)


def parse_certificate(data: Union[str, bytes, x509.Certificate]) -> x509.Certificate:
    """
    Parse a PEM or DER certificate.

    Extensions are parsed eagerly so malformed ones surface here.

    Raises:
        CertificateParseFailure: If the data is not a certificate
    """
    if isinstance(data, x509.Certificate):
        return data
    if not isinstance(data, (str, bytes, bytearray)) or not data:
        raise CertificateParseFailure()

    raw = data.encode("utf-8") if isinstance(data, str) else bytes(data)
    for loader in (x509.load_pem_x509_certificate, x509.load_der_x509_certificate):
        try:
            certificate = loader(raw)
            certificate.extensions
            return certificate
        except ValueError:
            continue

    logger.warning("Candidate certificate could not be parsed")
    raise CertificateParseFailure()


def _extension_value(extension: x509.Extension, registry: Optional[ExtensionRegistry]) -> ExtensionValue:
    oid = extension.oid
    value = extension.value

    name = registry.name_for(oid) if registry is not None else None
    if name is not None:
        raw = value.value if isinstance(value, x509.UnrecognizedExtension) else value.public_bytes()
        try:
            decoded = registry.decode(oid, raw)
        except ExtensionDecodeError as e:
            logger.warning(f"Keeping raw value of extension {name}: {e}")
            decoded = raw
        return ExtensionValue(name, decoded, extension.critical, oid.dotted_string)

    if isinstance(value, x509.UnrecognizedExtension):
        return ExtensionValue(oid.dotted_string, value.value, extension.critical, oid.dotted_string)

    return ExtensionValue(oid._name, value, extension.critical, oid.dotted_string)


def load_template(certificate, registry: Optional[ExtensionRegistry] = None) -> CertificateTemplate:
    """Describe a certificate as a CertificateTemplate, decoding registered extensions."""
    cert = parse_certificate(certificate)

    try:
        public_key = cert.public_key()
    except (ValueError, UnsupportedAlgorithm) as e:
        logger.warning(f"Unsupported subject public key: {e}")
        public_key = None

    return CertificateTemplate(
        issuer=name_to_dict(cert.issuer),
        subject=name_to_dict(cert.subject),
        public_key=public_key,
        serial_number=str(cert.serial_number),
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        extensions=[_extension_value(extension, registry) for extension in cert.extensions],
    )


def verify_certificate_signature(certificate, public_key) -> bool:
    """Check whether a certificate was signed by the private half of public_key."""
    cert = parse_certificate(certificate)
    family = family_for(public_key)
    if family is None:
        return False
    try:
        hash_algorithm = cert.signature_hash_algorithm
    except UnsupportedAlgorithm:
        return False
    return family.verify(public_key, cert.signature, cert.tbs_certificate_bytes, hash_algorithm)
