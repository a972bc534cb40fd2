"""Tests for the FieldEncryptor (Fernet encryption of intake notes)."""

from __future__ import annotations

import pytest
from cryptography.fernet import Fernet

from marutham.core.storage.encryption import EncryptionError, FieldEncryptor


@pytest.fixture
def key() -> str:
    return Fernet.generate_key().decode()


@pytest.fixture
def encryptor(key: str) -> FieldEncryptor:
    return FieldEncryptor(key)


class TestEncrypt:
    def test_token_is_prefixed_and_opaque(self, encryptor: FieldEncryptor):
        token = encryptor.encrypt("recurring headaches since May")
        assert token.startswith("enc:")
        assert "headaches" not in token
        assert encryptor.decrypt(token) == "recurring headaches since May"

    def test_empty_string_stays_empty(self, encryptor: FieldEncryptor):
        assert encryptor.encrypt("") == ""
        assert encryptor.decrypt("") == ""

    def test_plain_values_pass_through(self, encryptor: FieldEncryptor):
        """Rows written before a key was configured are still readable."""
        assert encryptor.decrypt("written in the clear") == "written in the clear"

    def test_unicode(self, encryptor: FieldEncryptor):
        assert encryptor.decrypt(encryptor.encrypt("தலைவலி")) == "தலைவலி"


class TestKeyValidation:
    def test_empty_key_raises(self):
        with pytest.raises(EncryptionError, match="must not be empty"):
            FieldEncryptor("")

    def test_whitespace_key_raises(self):
        with pytest.raises(EncryptionError, match="must not be empty"):
            FieldEncryptor("   ")

    def test_invalid_key_raises(self):
        with pytest.raises(EncryptionError, match="Invalid encryption key"):
            FieldEncryptor("not-a-valid-fernet-key")

    def test_generate_key_is_usable(self):
        FieldEncryptor(FieldEncryptor.generate_key())


class TestCorruptData:
    def test_wrong_key_cannot_decrypt(self, encryptor: FieldEncryptor):
        token = encryptor.encrypt("secret")
        other = FieldEncryptor(Fernet.generate_key().decode())
        with pytest.raises(EncryptionError, match="invalid token"):
            other.decrypt(token)

    def test_tampered_token_raises(self, encryptor: FieldEncryptor):
        token = encryptor.encrypt("secret")
        with pytest.raises(EncryptionError):
            encryptor.decrypt(token[:-5] + "XXXXX")
