"""Encryption service for secrets stored at rest (TOTP shared secrets).

Key rotation:
  - Ciphertexts are stored with a version prefix: ``v{n}:<base64ciphertext>``
  - New writes always use ENCRYPTION_CURRENT_VERSION and MASTER_ENCRYPTION_KEY
  - Old rows (encrypted with a previous key) are decrypted via ENCRYPTION_KEY_V1
  - Rows with no prefix are decrypted with the current key

Rotation procedure:
  1. Generate a new Fernet key:
       python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
  2. Move current MASTER_ENCRYPTION_KEY → ENCRYPTION_KEY_V1
  3. Set MASTER_ENCRYPTION_KEY = <new key>
  4. Increment ENCRYPTION_CURRENT_VERSION (e.g. 1 → 2)
  5. Deploy. Old V1 rows still decrypt; new writes use the V2 prefix
"""

import base64

from cryptography.fernet import Fernet
from sqlalchemy import Text
from sqlalchemy.types import TypeDecorator

from leadflow.config import settings


class EncryptionService:
    """Versioned Fernet encryption for short secrets."""

    def __init__(self):
        """Initialize the encryption service and build the key map."""
        if not settings.MASTER_ENCRYPTION_KEY:
            raise ValueError("MASTER_ENCRYPTION_KEY must be set in environment")

        self._current_version = settings.ENCRYPTION_CURRENT_VERSION
        self._keys: dict[int, Fernet] = {}

        self._keys[self._current_version] = self._load_key(
            settings.MASTER_ENCRYPTION_KEY, "MASTER_ENCRYPTION_KEY"
        )

        # Previous key stays registered at V1 for decryption after rotation
        if settings.ENCRYPTION_KEY_V1 and self._current_version != 1:
            self._keys[1] = self._load_key(settings.ENCRYPTION_KEY_V1, "ENCRYPTION_KEY_V1")

    @staticmethod
    def _load_key(key: str, name: str) -> Fernet:
        raw = key.encode() if isinstance(key, str) else key
        try:
            return Fernet(raw)
        except Exception as e:
            raise ValueError(f"Invalid {name} format. Must be a valid Fernet key: {e}")

    @property
    def current_version(self) -> int:
        return self._current_version

    def encrypt_token(self, token: str) -> str:
        """
        Encrypt a secret and return a versioned, base64-encoded ciphertext string.

        Format: ``v{version}:<base64(fernet_ciphertext)>``

        Args:
            token: The plaintext secret to encrypt

        Returns:
            Versioned encrypted string suitable for TEXT columns
        """
        if not token:
            raise ValueError("Token cannot be empty")

        version = self.current_version
        encrypted_bytes = self._keys[version].encrypt(token.encode())
        ciphertext = base64.b64encode(encrypted_bytes).decode("utf-8")
        return f"v{version}:{ciphertext}"

    def decrypt_token(self, encrypted_token: str) -> str:
        """
        Decrypt a versioned encrypted string.

        Args:
            encrypted_token: ``v{n}:<ciphertext>`` or unprefixed ciphertext

        Returns:
            Decrypted plaintext

        Raises:
            ValueError: If the value is malformed, the version is unknown, or decryption fails
        """
        if not encrypted_token:
            raise ValueError("Encrypted token cannot be empty")

        if not isinstance(encrypted_token, str):
            raise ValueError(
                f"decrypt_token expects a str, got {type(encrypted_token).__name__}"
            )

        version = self._current_version
        ciphertext = encrypted_token
        if encrypted_token.startswith("v") and ":" in encrypted_token:
            prefix, rest = encrypted_token.split(":", 1)
            try:
                version = int(prefix[1:])
                ciphertext = rest
            except ValueError:
                version = self._current_version
                ciphertext = encrypted_token

        if version not in self._keys:
            raise ValueError(
                f"No decryption key configured for version {version}. "
                f"Check ENCRYPTION_KEY_V{version} in your environment."
            )

        try:
            fernet = self._keys[version]
            encrypted_bytes = base64.b64decode(ciphertext.encode("utf-8"))
            return fernet.decrypt(encrypted_bytes).decode()
        except Exception as e:
            raise ValueError(f"Failed to decrypt token (version {version}): {e}")


# Singleton instance
_encryption_service = None


def get_encryption_service() -> EncryptionService:
    """Get or create the encryption service singleton."""
    global _encryption_service
    if _encryption_service is None:
        _encryption_service = EncryptionService()
    return _encryption_service


class EncryptedString(TypeDecorator):
    """
    SQLAlchemy TypeDecorator that transparently encrypts/decrypts string fields.

    Stored as Text (versioned Fernet ciphertext). Unlike a display field, a
    secret that fails to decrypt is an error, never passed through as-is.

    Usage in models::

        from leadflow.services.encryption_service import EncryptedString

        secret = Column(EncryptedString, nullable=True)
    """

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        """Encrypt on write."""
        if value is None:
            return None
        return get_encryption_service().encrypt_token(value)

    def process_result_value(self, value, dialect):
        """Decrypt on read."""
        if value is None:
            return None
        return get_encryption_service().decrypt_token(value)
