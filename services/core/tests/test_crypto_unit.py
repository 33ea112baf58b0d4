"""Unit tests for the credential bundle encryption."""

import json

import pytest

from outreach_core.infrastructure.crypto import (
    CryptoService,
    DecryptionError,
    InvalidKeyError,
)


class TestCryptoService:
    """Tests for CryptoService."""

    def test_generate_key_returns_valid_fernet_key(self):
        """generate_key should return a valid Fernet key."""
        key = CryptoService.generate_key()
        # Fernet keys are 44 bytes base64 encoded
        assert len(key) == 44
        import base64
        assert len(base64.urlsafe_b64decode(key)) == 32

    def test_init_with_invalid_key_raises_error(self):
        with pytest.raises(InvalidKeyError):
            CryptoService("not-a-valid-key")

    def test_init_with_empty_key_raises_error(self):
        with pytest.raises(InvalidKeyError):
            CryptoService("")

    def test_ciphertext_differs_each_time(self):
        """Same plaintext should produce different ciphertexts (due to nonce)."""
        crypto = CryptoService(CryptoService.generate_key())
        assert crypto.encrypt("li_at=abc") != crypto.encrypt("li_at=abc")

    def test_cookie_bundle_survives_encryption(self):
        crypto = CryptoService(CryptoService.generate_key())
        cookies = [
            {"name": "li_at", "value": "AQEDAR", "domain": ".linkedin.com", "expires": -1},
            {"name": "JSESSIONID", "value": "ajax:123", "domain": ".www.linkedin.com"},
        ]

        encrypted = crypto.encrypt(json.dumps(cookies))

        assert "AQEDAR" not in encrypted
        assert json.loads(crypto.decrypt(encrypted)) == cookies

    def test_decrypt_with_wrong_key_raises_error(self):
        """Decrypting with wrong key should raise DecryptionError."""
        encrypted = CryptoService(CryptoService.generate_key()).encrypt("secret data")

        with pytest.raises(DecryptionError):
            CryptoService(CryptoService.generate_key()).decrypt(encrypted)

    def test_decrypt_corrupted_data_raises_error(self):
        crypto = CryptoService(CryptoService.generate_key())
        corrupted = crypto.encrypt("secret data")[:-5] + "XXXXX"

        with pytest.raises(DecryptionError):
            crypto.decrypt(corrupted)

    def test_decrypt_invalid_base64_raises_error(self):
        crypto = CryptoService(CryptoService.generate_key())

        with pytest.raises(DecryptionError):
            crypto.decrypt("not-valid-base64!!!")
