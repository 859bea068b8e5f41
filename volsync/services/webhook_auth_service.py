"""
Inbound webhook authentication.

Two modes are supported:

* ``shared_secret_header``: a static secret sent in a header.
* ``hmac_signature``: an HMAC of the raw request body sent in a header,
  optionally prefixed with ``<algorithm>=``.

Verification always runs on the exact bytes received, before any JSON
decoding.
"""

import base64
import hashlib
import hmac
import logging
from typing import Any, Dict, Mapping, Optional

from volsync.config import WebhookAuthConfig
from volsync.schemas.webhook import AuthResult

logger = logging.getLogger(__name__)

SHARED_SECRET_MODE = "shared_secret_header"
HMAC_MODE = "hmac_signature"


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    # Starlette headers are case-insensitive; plain dicts are not
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return value


class WebhookAuthenticator:
    def __init__(self, config: WebhookAuthConfig):
        self.config = config

    @property
    def mode(self) -> str:
        return self.config.mode

    def header_present(self, headers: Mapping[str, str]) -> bool:
        value = _header(headers, self.config.expected_header_name)
        return bool(value and value.strip())

    def authenticate(self, headers: Mapping[str, str], raw_body: bytes) -> AuthResult:
        if self.config.mode == SHARED_SECRET_MODE:
            return self._verify_shared_secret(headers)
        if self.config.mode == HMAC_MODE:
            return self._verify_signature(headers, raw_body)
        return AuthResult(
            mode=self.config.mode,
            valid=False,
            error=f"Unsupported webhook auth mode: {self.config.mode}",
        )

    def _verify_shared_secret(self, headers: Mapping[str, str]) -> AuthResult:
        expected = (self.config.shared_secret_value or "").strip()
        received = (_header(headers, self.config.shared_secret_header_name) or "").strip()

        if not expected:
            return AuthResult(
                mode=SHARED_SECRET_MODE, valid=False, error="Shared secret not configured."
            )
        if not received:
            return AuthResult(
                mode=SHARED_SECRET_MODE, valid=False, error="Missing shared secret header."
            )
        valid = hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))
        return AuthResult(
            mode=SHARED_SECRET_MODE,
            valid=valid,
            error=None if valid else "Invalid shared secret.",
        )

    def _verify_signature(self, headers: Mapping[str, str], raw_body: bytes) -> AuthResult:
        secret = self.config.signing_secret or ""
        received_raw = (_header(headers, self.config.signature_header_name) or "").strip()

        if not secret:
            return AuthResult(mode=HMAC_MODE, valid=False, error="Signing secret not configured.")
        if not received_raw:
            return AuthResult(mode=HMAC_MODE, valid=False, error="Missing signature header.")

        algorithm = self.config.signature_algorithm.lower()
        if algorithm not in hashlib.algorithms_available:
            return AuthResult(
                mode=HMAC_MODE,
                valid=False,
                signature=received_raw,
                error=f"Unsupported signature algorithm: {algorithm}",
            )

        received = received_raw
        prefix = f"{algorithm}="
        if received.lower().startswith(prefix):
            received = received[len(prefix):]

        digest = hmac.new(secret.encode("utf-8"), raw_body, algorithm).digest()
        if self.config.signature_encoding == "base64":
            expected = base64.b64encode(digest).decode("ascii")
        else:
            expected = digest.hex()
            received = received.lower()

        valid = hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))
        return AuthResult(
            mode=HMAC_MODE,
            valid=valid,
            signature=received_raw,
            error=None if valid else "Invalid signature.",
        )

    def safe_header_snapshot(self, headers: Mapping[str, str]) -> Dict[str, Any]:
        """Header fields safe to persist with the ledger row."""
        if self.config.mode == SHARED_SECRET_MODE:
            return {"sharedSecretPresent": self.header_present(headers)}
        return {"signature": _header(headers, self.config.signature_header_name)}


def sign_body(raw_body: bytes, secret: str, algorithm: str = "sha256", encoding: str = "hex") -> str:
    """Produce the signature a sender would attach for ``raw_body``."""
    digest = hmac.new(secret.encode("utf-8"), raw_body, algorithm).digest()
    if encoding == "base64":
        return base64.b64encode(digest).decode("ascii")
    return digest.hex()
