"""
Tests for TokenCodec
"""

import base64
import hashlib
import hmac
import json

import pytest

from cart_session.domain.errors import BadPayload, BadSignature, MalformedToken, TokenExpired
from cart_session.services.token_codec import TokenCodec, TokenConfig, b64url_decode, b64url_encode

from tests.conftest import T0, TTL


def _signed(payload: bytes, secret: bytes = b"test-secret") -> str:
    """Build a correctly signed token around an arbitrary claims segment."""
    h = b64url_encode(b'{"alg":"HS256","typ":"JWT"}')
    p = b64url_encode(payload)
    sig = hmac.new(secret, f"{h}.{p}".encode(), hashlib.sha256).digest()
    return f"{h}.{p}.{b64url_encode(sig)}"


class TestBase64Url:
    def test_no_padding_or_unsafe_chars(self):
        encoded = b64url_encode(b"\xfb\xff\xfe")
        assert "=" not in encoded
        assert "+" not in encoded and "/" not in encoded
        assert encoded == "-__-"

    def test_decode_restores_padding(self):
        assert b64url_decode(b64url_encode(b"ab")) == b"ab"


class TestIssue:
    def test_issue_then_verify(self, codec):
        token = codec.issue("ck_abc")
        claims = codec.verify(token)

        assert claims["cart_key"] == "ck_abc"
        assert claims["iss"] == "test-issuer"
        assert claims["iat"] == T0
        assert claims["exp"] == T0 + TTL

    def test_custom_ttl(self, codec):
        claims = codec.verify(codec.issue("ck_abc", ttl=60))
        assert claims["exp"] - claims["iat"] == 60

    def test_wire_format(self, codec):
        token = codec.issue("ck_abc")
        h, p, s = token.split(".")

        assert json.loads(b64url_decode(h)) == {"alg": "HS256", "typ": "JWT"}
        assert b64url_decode(h) == b'{"alg":"HS256","typ":"JWT"}'
        assert set(json.loads(b64url_decode(p))) == {"cart_key", "iat", "exp", "iss"}
        assert "=" not in token

        expected = hmac.new(b"test-secret", f"{h}.{p}".encode(), hashlib.sha256).digest()
        assert base64.urlsafe_b64decode(s + "=") == expected

    def test_tokens_for_different_keys_differ(self, codec):
        assert codec.issue("ck_a") != codec.issue("ck_b")


class TestVerify:
    @pytest.mark.parametrize("token", ["", "abc", "a.b", "a.b.c.d", "...."])
    def test_malformed(self, codec, token):
        with pytest.raises(MalformedToken):
            codec.verify(token)

    def test_every_signature_char_is_checked(self, codec):
        token = codec.issue("ck_abc")
        h, p, s = token.split(".")

        for i, ch in enumerate(s):
            replacement = "A" if ch != "A" else "B"
            tampered = f"{h}.{p}.{s[:i]}{replacement}{s[i + 1:]}"
            with pytest.raises(BadSignature):
                codec.verify(tampered)

    def test_non_ascii_signature(self, codec):
        h, p, _ = codec.issue("ck_abc").split(".")
        with pytest.raises(BadSignature):
            codec.verify(f"{h}.{p}.żółw")

    def test_tampered_claims(self, codec):
        token = codec.issue("ck_abc")
        h, _, s = token.split(".")
        forged = b64url_encode(json.dumps({"cart_key": "ck_other", "exp": T0 + TTL}).encode())

        with pytest.raises(BadSignature):
            codec.verify(f"{h}.{forged}.{s}")

    def test_other_secret(self, codec, clock):
        other = TokenCodec(TokenConfig(secret=b"rotated", issuer="test-issuer"), clock=clock)
        with pytest.raises(BadSignature):
            codec.verify(other.issue("ck_abc"))

    def test_already_expired(self, codec):
        with pytest.raises(TokenExpired):
            codec.verify(codec.issue("ck_abc", ttl=-1))

    def test_expired_at_exact_exp(self, codec):
        with pytest.raises(TokenExpired):
            codec.verify(codec.issue("ck_abc", ttl=0))

    def test_expires_as_time_passes(self, codec, clock):
        token = codec.issue("ck_abc", ttl=100)
        clock.advance(99)
        assert codec.verify(token)["cart_key"] == "ck_abc"

        clock.advance(1)
        with pytest.raises(TokenExpired):
            codec.verify(token)

    @pytest.mark.parametrize("payload", [
        b"not json",
        b"[1, 2]",
        b'{"exp": 9999999999}',
        b'{"cart_key": "", "exp": 9999999999}',
        b'{"cart_key": 5, "exp": 9999999999}',
        b'{"cart_key": "ck_abc"}',
        b'{"cart_key": "ck_abc", "exp": "9999999999"}',
        b'{"cart_key": "ck_abc", "exp": true}',
    ])
    def test_bad_payload(self, codec, payload):
        with pytest.raises(BadPayload):
            codec.verify(_signed(payload))
