"""Encryption utilities for credential bundles at rest.

Uses Fernet symmetric encryption (AES-128-CBC with HMAC for authenticity).

Usage:
    key = CryptoService.generate_key()  # Store this securely in env
    crypto = CryptoService(key)

    encrypted = crypto.encrypt(json.dumps(cookies))
    cookies = json.loads(crypto.decrypt(encrypted))
"""

from cryptography.fernet import Fernet, InvalidToken


class InvalidKeyError(Exception):
    """Raised when an invalid encryption key is provided."""

    pass


class DecryptionError(Exception):
    """Raised when decryption fails."""

    pass


class CryptoService:
    """Encryption service using Fernet (symmetric encryption)."""

    def __init__(self, key: str):
        """Initialize with a Fernet key.

        Args:
            key: A valid Fernet key (base64-encoded 32-byte key).

        Raises:
            InvalidKeyError: If the key is invalid.
        """
        if not key:
            raise InvalidKeyError("Encryption key cannot be empty")

        try:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        except (ValueError, TypeError) as e:
            raise InvalidKeyError(f"Invalid encryption key: {e}")

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet key."""
        return Fernet.generate_key().decode()

    def encrypt(self, plaintext: str) -> str:
        """Encrypt plaintext string into a base64 token."""
        token = self._fernet.encrypt(plaintext.encode("utf-8"))
        return token.decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a token produced by :meth:`encrypt`.

        Raises:
            DecryptionError: If the token is corrupt or was produced
                with a different key.
        """
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken:
            raise DecryptionError("Failed to decrypt credential bundle: invalid token or wrong key")
        return plaintext.decode("utf-8")
