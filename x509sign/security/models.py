"""
Data models for keys, extensions and certificate templates.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import UnsupportedFormatError


class AlgorithmTag(str, Enum):
    """Family of an asymmetric key."""
    RSA = "RSA"
    EC = "EC"
    DSA = "DSA"
    DH = "DH"
    UNKNOWN = "unknown"

    @classmethod
    def from_value(cls, value) -> Optional["AlgorithmTag"]:
        """Look up a tag by name, returning None for empty or unknown values."""
        if value is None or value == "":
            return None
        if isinstance(value, cls):
            return value
        for tag in cls:
            if tag.value.lower() == str(value).lower():
                return tag
        return None


class PublicKeyFormat(str, Enum):
    """Output encodings for public keys."""
    PKCS8 = "PKCS8"
    PKCS1 = "PKCS1"
    OPENSSH = "OpenSSH"

    @classmethod
    def parse(cls, value) -> "PublicKeyFormat":
        """Parse a format name case-insensitively; None means PKCS8."""
        if value is None or value == "":
            return cls.PKCS8
        if isinstance(value, cls):
            return value
        for fmt in cls:
            if fmt.value.lower() == str(value).lower():
                return fmt
        raise UnsupportedFormatError(f"Unsupported public key format: {value}")


@dataclass(frozen=True)
class ExtensionDeclaration:
    """Friendly name, OID and value shape of a custom extension."""
    name: str
    oid: str
    shape: Dict[str, Any]


@dataclass
class ExtensionValue:
    """One extension of a certificate template."""
    identifier: str
    value: Any
    critical: bool = False
    oid: Optional[str] = None


@dataclass
class CertificateTemplate:
    """Logical content of a certificate, before signing or after parsing."""
    issuer: Dict[str, Any] = field(default_factory=dict)
    subject: Dict[str, Any] = field(default_factory=dict)
    public_key: Any = None
    serial_number: Optional[str] = None
    not_before: Optional[datetime] = None
    not_after: Optional[datetime] = None
    extensions: List[ExtensionValue] = field(default_factory=list)

    def get_extension(self, identifier: str) -> Optional[ExtensionValue]:
        """Return the first extension with the given identifier."""
        for extension in self.extensions:
            if extension.identifier == identifier or extension.oid == identifier:
                return extension
        return None
