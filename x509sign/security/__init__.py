"""
Security package for key handling and certificate issuance.
"""
from .models import (
    AlgorithmTag, PublicKeyFormat, ExtensionDeclaration, ExtensionValue, CertificateTemplate,
)
from .exceptions import (
    X509SignError, KeyLoadFailure, UnsupportedFormatError, DeclarationError,
    ExtensionEncodeError, ExtensionDecodeError, CertificateParseFailure, CertificateDataError,
)
from .key_modes import classify, family_for
from .keys import PublicKeyExtractor, load_private_key, load_public_key, serialize_public_key
from .extension_registry import ExtensionRegistry, parse_declarations
from .certificates import load_template, parse_certificate, verify_certificate_signature
from .reissuer import CertificateReissuer, get_extensions_values, REISSUED_SERIAL_NUMBER
from .candidate import CandidateBuilder

__all__ = [
    'AlgorithmTag',
    'PublicKeyFormat',
    'ExtensionDeclaration',
    'ExtensionValue',
    'CertificateTemplate',
    'X509SignError',
    'KeyLoadFailure',
    'UnsupportedFormatError',
    'DeclarationError',
    'ExtensionEncodeError',
    'ExtensionDecodeError',
    'CertificateParseFailure',
    'CertificateDataError',
    'classify',
    'family_for',
    'PublicKeyExtractor',
    'load_private_key',
    'load_public_key',
    'serialize_public_key',
    'ExtensionRegistry',
    'parse_declarations',
    'load_template',
    'parse_certificate',
    'verify_certificate_signature',
    'CertificateReissuer',
    'get_extensions_values',
    'REISSUED_SERIAL_NUMBER',
    'CandidateBuilder',
]
