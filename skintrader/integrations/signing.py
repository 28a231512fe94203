"""
Ed25519 request signing for the DMarket trading API.
"""

import time
from typing import Callable, Dict

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from skintrader.integrations.errors import ConfigurationError

SIGNATURE_PREFIX = "dmar ed25519 "

HEADER_API_KEY = "X-Api-Key"
HEADER_REQUEST_SIGN = "X-Request-Sign"
HEADER_SIGN_DATE = "X-Sign-Date"


class RequestSigner:
    """
    Builds the authentication headers for one request.

    The signed message is ``method + path?query + body + timestamp`` where the
    timestamp is in unix seconds.
    """

    def __init__(self, api_key: str, secret_key: str, clock: Callable[[], float] = time.time):
        if not api_key or not secret_key:
            raise ConfigurationError("DMarket API key and secret key are required")

        try:
            raw = bytes.fromhex(secret_key.strip())
        except ValueError as e:
            raise ConfigurationError("DMarket secret key is not valid hex") from e

        # Exported keys are either the 32-byte seed or seed + public key
        if len(raw) not in (32, 64):
            raise ConfigurationError(
                f"DMarket secret key must be 32 or 64 bytes, got {len(raw)}"
            )

        self.api_key = api_key
        self._private_key = Ed25519PrivateKey.from_private_bytes(raw[:32])
        self._clock = clock

    def sign(self, message: str) -> str:
        """Return the prefixed hex signature of a message."""
        return SIGNATURE_PREFIX + self._private_key.sign(message.encode("utf-8")).hex()

    def headers(self, method: str, path_and_query: str, body: str = "") -> Dict[str, str]:
        timestamp = str(int(self._clock()))
        message = f"{method.upper()}{path_and_query}{body}{timestamp}"
        return {
            HEADER_API_KEY: self.api_key,
            HEADER_REQUEST_SIGN: self.sign(message),
            HEADER_SIGN_DATE: timestamp,
        }
