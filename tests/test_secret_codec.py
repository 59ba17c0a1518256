"""Unit tests for SecretCodec."""

import base64
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../src"))

from taxbyte_identity.security.secret_codec import SecretCodec
from taxbyte_identity.utils.errors import ConfigurationError, DecryptError


class TestSecretCodec:
    """Tests for AES-256-GCM envelopes."""

    def setup_method(self):
        self.key = SecretCodec.generate_key()
        self.codec = SecretCodec(self.key)

    def test_roundtrip(self):
        envelope = self.codec.encrypt("ya29.access-token")
        assert envelope != "ya29.access-token"
        assert self.codec.decrypt(envelope) == "ya29.access-token"

    def test_roundtrip_bytes(self):
        envelope = self.codec.encrypt(b"\x00\x01binary")
        assert self.codec.decrypt_bytes(envelope) == b"\x00\x01binary"

    def test_fresh_nonce_per_call(self):
        assert self.codec.encrypt("same") != self.codec.encrypt("same")

    def test_envelope_layout(self):
        """nonce (12) + ciphertext + tag (16)."""
        raw = base64.b64decode(self.codec.encrypt("abcd"))
        assert len(raw) == 12 + 4 + 16

    def test_flipped_bit_fails(self):
        raw = bytearray(base64.b64decode(self.codec.encrypt("refresh-token")))
        raw[15] ^= 0x01
        with pytest.raises(DecryptError):
            self.codec.decrypt(base64.b64encode(bytes(raw)).decode("ascii"))

    def test_wrong_key_fails(self):
        envelope = self.codec.encrypt("refresh-token")
        other = SecretCodec(SecretCodec.generate_key())
        with pytest.raises(DecryptError):
            other.decrypt(envelope)

    def test_truncated_envelope_fails(self):
        short = base64.b64encode(b"\x00" * 20).decode("ascii")
        with pytest.raises(DecryptError):
            self.codec.decrypt(short)

    def test_bad_base64_fails(self):
        with pytest.raises(DecryptError):
            self.codec.decrypt("%%%not base64%%%")

    def test_non_utf8_plaintext_fails_text_decrypt(self):
        envelope = self.codec.encrypt(b"\xff\xfe")
        with pytest.raises(DecryptError):
            self.codec.decrypt(envelope)

    def test_rejects_short_key(self):
        with pytest.raises(ConfigurationError):
            SecretCodec(base64.b64encode(b"k" * 16).decode("ascii"))

    def test_rejects_invalid_key_encoding(self):
        with pytest.raises(ConfigurationError):
            SecretCodec("not a key!")

    def test_key_not_in_repr(self):
        assert self.key not in repr(self.codec)
