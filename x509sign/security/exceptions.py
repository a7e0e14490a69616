"""
Exceptions raised by the certificate signing core.
"""


class X509SignError(Exception):
    """Base class for signing service errors."""


class KeyLoadFailure(X509SignError):
    """A key could not be read, or its passphrase is wrong."""


class UnsupportedFormatError(X509SignError):
    """A public key cannot be written in the requested format."""


class DeclarationError(X509SignError):
    """An extension declaration is malformed."""


class ExtensionEncodeError(X509SignError):
    """An extension value cannot be encoded."""


class ExtensionDecodeError(X509SignError):
    """An extension value cannot be decoded with its declared shape."""


class CertificateParseFailure(X509SignError):
    """A candidate certificate cannot be parsed."""

    def __init__(self, message: str = "Unable to sign the CSR."):
        super().__init__(message)


class CertificateDataError(X509SignError):
    """Explicit certificate fields are missing or invalid."""
