"""
Key family detection and per-family signing capabilities.
"""
import logging
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import (
    dh, dsa, ec, ed448, ed25519, padding, rsa, x448, x25519,
)

from .models import AlgorithmTag

logger = logging.getLogger(__name__)


class KeyFamily:
    """Capabilities shared by the keys of one algorithm family."""

    tag = AlgorithmTag.UNKNOWN
    key_types: tuple = ()

    def matches(self, key) -> bool:
        return isinstance(key, self.key_types)

    def can_sign(self, private_key) -> bool:
        return True

    def signature_hash(self, private_key) -> Optional[hashes.HashAlgorithm]:
        return hashes.SHA256()

    def verify(self, public_key, signature: bytes, data: bytes,
               hash_algorithm: Optional[hashes.HashAlgorithm] = None) -> bool:
        raise NotImplementedError


class RsaFamily(KeyFamily):
    tag = AlgorithmTag.RSA
    key_types = (rsa.RSAPrivateKey, rsa.RSAPublicKey)

    def verify(self, public_key, signature, data, hash_algorithm=None) -> bool:
        try:
            public_key.verify(signature, data, padding.PKCS1v15(), hash_algorithm or hashes.SHA256())
        except InvalidSignature:
            return False
        return True


class EcFamily(KeyFamily):
    """ECDSA keys plus the Edwards and Montgomery curve keys."""

    tag = AlgorithmTag.EC
    key_types = (
        ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey,
        ed25519.Ed25519PrivateKey, ed25519.Ed25519PublicKey,
        ed448.Ed448PrivateKey, ed448.Ed448PublicKey,
        x25519.X25519PrivateKey, x25519.X25519PublicKey,
        x448.X448PrivateKey, x448.X448PublicKey,
    )
    edwards_types = (
        ed25519.Ed25519PrivateKey, ed25519.Ed25519PublicKey,
        ed448.Ed448PrivateKey, ed448.Ed448PublicKey,
    )

    def can_sign(self, private_key) -> bool:
        # X25519/X448 are key agreement only
        return isinstance(private_key, (ec.EllipticCurvePrivateKey,
                                        ed25519.Ed25519PrivateKey,
                                        ed448.Ed448PrivateKey))

    def signature_hash(self, private_key):
        if isinstance(private_key, self.edwards_types):
            return None
        if private_key.key_size > 500:
            return hashes.SHA512()
        if private_key.key_size > 300:
            return hashes.SHA384()
        return hashes.SHA256()

    def verify(self, public_key, signature, data, hash_algorithm=None) -> bool:
        try:
            if isinstance(public_key, self.edwards_types):
                public_key.verify(signature, data)
            elif isinstance(public_key, ec.EllipticCurvePublicKey):
                public_key.verify(signature, data, ec.ECDSA(hash_algorithm or hashes.SHA256()))
            else:
                return False
        except InvalidSignature:
            return False
        return True


class DsaFamily(KeyFamily):
    tag = AlgorithmTag.DSA
    key_types = (dsa.DSAPrivateKey, dsa.DSAPublicKey)

    def verify(self, public_key, signature, data, hash_algorithm=None) -> bool:
        try:
            public_key.verify(signature, data, hash_algorithm or hashes.SHA256())
        except InvalidSignature:
            return False
        return True


class DhFamily(KeyFamily):
    tag = AlgorithmTag.DH
    key_types = (dh.DHPrivateKey, dh.DHPublicKey)

    def can_sign(self, private_key) -> bool:
        return False

    def signature_hash(self, private_key):
        return None

    def verify(self, public_key, signature, data, hash_algorithm=None) -> bool:
        return False


KEY_FAMILIES = (RsaFamily(), EcFamily(), DsaFamily(), DhFamily())


def family_for(key) -> Optional[KeyFamily]:
    """Return the capability object for a key, or None if unsupported."""
    for family in KEY_FAMILIES:
        if family.matches(key):
            return family
    return None


def classify(key) -> AlgorithmTag:
    """Classify a loaded private or public key. Never raises."""
    family = family_for(key)
    if family is None:
        logger.debug(f"Unrecognized key type: {type(key).__name__}")
        return AlgorithmTag.UNKNOWN
    return family.tag
