"""
Tests for Ed25519 request signing.
"""

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from skintrader.integrations.errors import ConfigurationError
from skintrader.integrations.signing import SIGNATURE_PREFIX, RequestSigner


def key_pair():
    private_key = Ed25519PrivateKey.generate()
    seed = private_key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())
    public = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
    return private_key.public_key(), seed, public


class TestRequestSigner:
    """Test cases for RequestSigner."""

    def test_headers_carry_verifiable_signature(self):
        public_key, seed, _ = key_pair()
        signer = RequestSigner("public-key", seed.hex(), clock=lambda: 1700000000.9)

        headers = signer.headers("get", "/account/v1/balance", "")

        assert headers["X-Api-Key"] == "public-key"
        assert headers["X-Sign-Date"] == "1700000000"
        signature = headers["X-Request-Sign"]
        assert signature.startswith(SIGNATURE_PREFIX)
        # Raises InvalidSignature on mismatch
        public_key.verify(
            bytes.fromhex(signature[len(SIGNATURE_PREFIX):]),
            b"GET/account/v1/balance1700000000",
        )

    def test_body_and_query_are_signed(self):
        public_key, seed, _ = key_pair()
        signer = RequestSigner("k", seed.hex(), clock=lambda: 42)

        headers = signer.headers("PATCH", "/exchange/v1/offers-buy?x=1", '{"offers":[]}')

        public_key.verify(
            bytes.fromhex(headers["X-Request-Sign"][len(SIGNATURE_PREFIX):]),
            b'PATCH/exchange/v1/offers-buy?x=1{"offers":[]}42',
        )

    def test_accepts_seed_plus_public_key(self):
        public_key, seed, public = key_pair()
        signer = RequestSigner("k", (seed + public).hex(), clock=lambda: 1)

        signature = signer.sign("message")

        public_key.verify(bytes.fromhex(signature[len(SIGNATURE_PREFIX):]), b"message")

    @pytest.mark.parametrize("secret", ["", "zz" * 32, "ab" * 16])
    def test_rejects_bad_secret(self, secret):
        with pytest.raises(ConfigurationError):
            RequestSigner("k", secret)

    def test_rejects_missing_api_key(self):
        _, seed, _ = key_pair()

        with pytest.raises(ConfigurationError):
            RequestSigner("", seed.hex())
