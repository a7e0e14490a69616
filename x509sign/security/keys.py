"""
Key loading and public key extraction.
"""
import logging
from typing import Optional, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from .exceptions import KeyLoadFailure, UnsupportedFormatError
from .key_modes import classify
from .models import AlgorithmTag, PublicKeyFormat

logger = logging.getLogger(__name__)

_PRIVATE_KEY_LOADERS = (
    serialization.load_pem_private_key,
    serialization.load_der_private_key,
    serialization.load_ssh_private_key,
)

_PUBLIC_KEY_LOADERS = (
    serialization.load_pem_public_key,
    serialization.load_der_public_key,
    serialization.load_ssh_public_key,
)

_PUBLIC_FORMATS = {
    PublicKeyFormat.PKCS8: (serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo),
    PublicKeyFormat.PKCS1: (serialization.Encoding.PEM, serialization.PublicFormat.PKCS1),
    PublicKeyFormat.OPENSSH: (serialization.Encoding.OpenSSH, serialization.PublicFormat.OpenSSH),
}


def _as_bytes(data: Union[str, bytes]) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def load_private_key(data: Union[str, bytes], passphrase: Optional[str] = None):
    """
    Load a PEM, DER or OpenSSH private key.

    A passphrase given for an unencrypted key is ignored. A wrong passphrase,
    or a missing one for an encrypted key, is a KeyLoadFailure.

    Raises:
        KeyLoadFailure: If no loader can read the key
    """
    if data is None:
        raise KeyLoadFailure("Unable to read key")

    raw = _as_bytes(data)
    password = _as_bytes(passphrase) if passphrase else None

    for loader in _PRIVATE_KEY_LOADERS:
        try:
            return loader(raw, password=password)
        except TypeError:
            # raised when encryption and passphrase presence disagree
            if password is None:
                continue
            try:
                return loader(raw, password=None)
            except (ValueError, TypeError, UnsupportedAlgorithm):
                continue
        except (ValueError, UnsupportedAlgorithm):
            continue

    raise KeyLoadFailure("Unable to read key")


def load_public_key(data: Union[str, bytes], mode=None):
    """
    Load a PEM, DER or OpenSSH public key.

    The mode is a hint only: when it disagrees with the parsed key the
    mismatch is logged and the parsed key is returned.
    """
    if data is None:
        raise KeyLoadFailure("Unable to read public key")

    raw = _as_bytes(data)
    for loader in _PUBLIC_KEY_LOADERS:
        try:
            key = loader(raw)
            break
        except (ValueError, UnsupportedAlgorithm):
            continue
    else:
        raise KeyLoadFailure("Unable to read public key")

    hint = AlgorithmTag.from_value(mode)
    actual = classify(key)
    if hint is not None and hint is not actual:
        logger.warning(f"Public key mode hint {hint.value} does not match key family {actual.value}")
    return key


def serialize_public_key(public_key, output_format=None) -> str:
    """Encode a public key in the requested format."""
    fmt = PublicKeyFormat.parse(output_format)
    encoding, public_format = _PUBLIC_FORMATS[fmt]
    try:
        encoded = public_key.public_bytes(encoding, public_format)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise UnsupportedFormatError(
            f"{classify(public_key).value} public key cannot be written as {fmt.value}: {e}"
        )
    return encoded.decode("ascii")


class PublicKeyExtractor:
    """Derives the public key of a stored private key."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def extract(self, private_key: Union[str, bytes], passphrase: Optional[str] = None,
                algorithm_hint=None, output_format=None) -> str:
        """
        Load a private key and return its public key.

        Args:
            private_key: Private key bytes (PEM, DER or OpenSSH)
            passphrase: Passphrase for an encrypted key
            algorithm_hint: Expected key family; advisory only
            output_format: PublicKeyFormat or its name, PKCS8 by default

        Returns:
            The encoded public key

        Raises:
            KeyLoadFailure: If the key cannot be read or the passphrase is wrong
            UnsupportedFormatError: If the key cannot use the requested format
        """
        key = load_private_key(private_key, passphrase)

        hint = AlgorithmTag.from_value(algorithm_hint)
        actual = classify(key)
        if hint is not None and hint is not actual:
            self.logger.warning(f"Key mode hint {hint.value} ignored for {actual.value} key")

        return serialize_public_key(key.public_key(), output_format)


def extract_public_key(private_key, passphrase=None, algorithm_hint=None, output_format=None) -> str:
    return PublicKeyExtractor().extract(private_key, passphrase, algorithm_hint, output_format)
