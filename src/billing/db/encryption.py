"""
Fernet-encrypted JSON column type for connector credentials.

Values are dicts in Python and Fernet ciphertext in the database, so the
rest of the code reads and writes plain mappings while only ciphertext is
ever persisted. Empty mappings are stored as NULL.

The key comes from ``CREDENTIAL_ENCRYPTION_KEY`` (url-safe base64, 32 bytes).
Generate one with:

    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""
import json
import logging
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.types import Text, TypeDecorator

from billing.config import get_settings

logger = logging.getLogger(__name__)


class MissingEncryptionKeyError(RuntimeError):
    """Raised when credentials are read or written without a configured key."""


_fernet: Optional[Fernet] = None


def get_fernet() -> Fernet:
    """Return the module-level Fernet instance, creating it on first call."""
    global _fernet
    if _fernet is None:
        key = get_settings().credential_encryption_key
        if not key:
            raise MissingEncryptionKeyError(
                "CREDENTIAL_ENCRYPTION_KEY is required to store connector credentials."
            )
        _fernet = Fernet(key.encode())
    return _fernet


def encrypt_mapping(data: Dict[str, Any]) -> str:
    return get_fernet().encrypt(json.dumps(data, sort_keys=True).encode()).decode()


def decrypt_mapping(token: str) -> Dict[str, Any]:
    try:
        plaintext = get_fernet().decrypt(token.encode())
    except InvalidToken:
        logger.error("Failed to decrypt connector credentials: invalid key or corrupted data")
        raise
    return json.loads(plaintext)


class EncryptedJSON(TypeDecorator):
    """Stores a JSON-serializable dict as Fernet ciphertext in a TEXT column."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if not value:
            return None
        return encrypt_mapping(dict(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return decrypt_mapping(value)
