"""
HTTP client for applications talking to a signing service.
"""
import logging
from typing import Any, Dict, Mapping, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..security.exceptions import X509SignError
from ..security.key_modes import classify
from ..security.keys import load_public_key
from ..security.models import AlgorithmTag
from .signature_service import PUBLIC_KEY, PUBLIC_KEY_MODE, SIGNED_CERTIFICATE


class SigningClientError(X509SignError):
    """The signing service could not be reached or answered badly."""


class SigningClient:
    """Client of the ``/api/sign`` batch endpoint."""

    SIGN_PATH = "/api/sign"

    def __init__(self, base_url: str, timeout: int = 30, session: Optional[requests.Session] = None,
                 max_retries: int = 2):
        """
        Args:
            base_url: Root URL of the signing service
            timeout: Request timeout in seconds
            session: Preconfigured session; one with a GET retry policy is created if None
            max_retries: Retries of idempotent requests on the created session
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session if session is not None else self._create_session(max_retries)
        self.logger = logging.getLogger(__name__)
        self._public_key: Optional[Tuple[Any, AlgorithmTag]] = None

    @staticmethod
    def _create_session(max_retries: int) -> requests.Session:
        session = requests.Session()
        # signing requests are POSTs and are never retried
        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=0.5,
            status_forcelist=[502, 503, 504],
            allowed_methods=["GET"]
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"Accept": "application/json"})
        return session

    def post_requests(self, requests_data: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
        """
        Send a batch and return the per-entry records.

        Raises:
            SigningClientError: On transport errors or a malformed answer
        """
        url = f"{self.base_url}{self.SIGN_PATH}"
        try:
            response = self.session.post(url, json=dict(requests_data), timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Signing request to {url} failed: {e}")
            raise SigningClientError(f"Signing service request failed: {e}")
        except ValueError as e:
            raise SigningClientError(f"Signing service returned invalid JSON: {e}")

        if not isinstance(payload, dict):
            raise SigningClientError("Signing service returned an unexpected answer")
        return payload

    def get_public_key(self, refresh: bool = False) -> Tuple[Any, AlgorithmTag]:
        """
        Return the authority's public key and its algorithm tag.

        The answer is cached for the lifetime of the client.
        """
        if self._public_key is not None and not refresh:
            return self._public_key

        answers = self.post_requests({PUBLIC_KEY: {"format": "PKCS8"}, PUBLIC_KEY_MODE: None})
        key_answer = answers.get(PUBLIC_KEY) or {}
        if not key_answer.get("success"):
            raise SigningClientError(f"Unable to fetch public key: {key_answer.get('error', 'no answer')}")

        mode = (answers.get(PUBLIC_KEY_MODE) or {}).get("result")
        public_key = load_public_key(key_answer["result"], mode)
        self._public_key = (public_key, AlgorithmTag.from_value(mode) or classify(public_key))
        return self._public_key

    def get_signed_certificate(self, candidate: str, client_public_key: str,
                               mode: Optional[str] = None) -> Optional[str]:
        """Ask for a candidate to be re-issued; None when the service refuses it."""
        data = {"certificate": candidate, "clientPublicKey": client_public_key}
        if mode:
            data["mode"] = mode

        answer = self.post_requests({SIGNED_CERTIFICATE: data}).get(SIGNED_CERTIFICATE) or {}
        if not answer.get("success"):
            self.logger.warning(f"Certificate was not signed: {answer.get('error', 'no answer')}")
            return None
        return answer.get("result")

    def request_certificate(self, builder, subject_dn, client_public_key: str,
                            extensions: Optional[Mapping[str, Any]] = None) -> Optional[str]:
        """
        Build a candidate for ``subject_dn`` and have the authority sign it.

        Args:
            builder: CandidateBuilder holding the application key
            subject_dn: Subject of the certificate
            client_public_key: Public key the issued certificate is bound to
            extensions: Custom extension values for the candidate
        """
        authority_key, _ = self.get_public_key()
        candidate = builder.build(subject_dn, authority_key, extensions)
        return self.get_signed_certificate(candidate, client_public_key)
