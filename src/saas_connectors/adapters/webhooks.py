"""Webhook message verification for providers that sign deliveries with a shared secret."""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True, slots=True)
class SharedSecretVerifier:
    """
    Check a delivery header against a shared secret in constant time.

    Parameters
    ----------
    secret:
        Secret agreed with the provider.
    header:
        Header carrying the secret or the signature.
    sign_body:
        When set the header must hold the hex HMAC-SHA256 of the body keyed
        with ``secret`` instead of the secret itself.
    """

    secret: str
    header: str
    sign_body: bool = False

    def expected(self, body: bytes) -> str:
        if not self.sign_body:
            return self.secret
        return hmac.new(self.secret.encode("utf-8"), body, hashlib.sha256).hexdigest()

    def verify(self, headers: Mapping[str, str], body: bytes = b"") -> bool:
        received = _header_value(headers, self.header)
        if received is None:
            return False
        return hmac.compare_digest(received.encode("utf-8"), self.expected(body).encode("utf-8"))


def _header_value(headers: Mapping[str, str], name: str) -> Optional[str]:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None
