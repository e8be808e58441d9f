"""Field-level encryption for free-text notes at rest."""

from __future__ import annotations

from cryptography.fernet import Fernet, InvalidToken

from absence_engine.config import get_settings

_ENCRYPTED_PREFIX = "enc:"


class FieldCodec:
    """Fernet codec for note fields.

    Ciphertext is stored with an ``enc:`` prefix so already-encrypted values
    pass through ``encrypt`` unchanged.
    """

    def __init__(self, key: str | bytes):
        if isinstance(key, str):
            key = key.encode()
        self._fernet = Fernet(key)

    @classmethod
    def from_settings(cls) -> FieldCodec:
        settings = get_settings()
        if not settings.field_encryption_key:
            raise RuntimeError(
                "FIELD_ENCRYPTION_KEY not configured. "
                "Generate one with: absence-engine generate-key"
            )
        return cls(settings.field_encryption_key)

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()

    def encrypt(self, value: str | None) -> str | None:
        """Encrypt a string value for storage."""
        if value is None:
            return None
        if value == "":
            return ""
        if value.startswith(_ENCRYPTED_PREFIX):
            return value
        token = self._fernet.encrypt(value.encode()).decode()
        return f"{_ENCRYPTED_PREFIX}{token}"

    def decrypt(self, value: str | None) -> str | None:
        """Decrypt a stored value."""
        if value is None:
            return None
        if value == "":
            return ""
        if not value.startswith(_ENCRYPTED_PREFIX):
            raise ValueError("Encrypted data is missing prefix")
        token = value[len(_ENCRYPTED_PREFIX) :]
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except InvalidToken:
            raise ValueError("Invalid or corrupted encrypted data")


_codec: FieldCodec | None = None


def get_field_codec() -> FieldCodec:
    """Get or create the process-wide codec."""
    global _codec
    if _codec is None:
        _codec = FieldCodec.from_settings()
    return _codec
