"""
Services package for the X.509 signing service.
"""

from .config_service import ConfigService
from .logging_service import LoggingService
from .signature_service import SignatureService
from .client_service import SigningClient, SigningClientError

__all__ = [
    'ConfigService',
    'LoggingService',
    'SignatureService',
    'SigningClient',
    'SigningClientError'
]
