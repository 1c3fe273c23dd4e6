"""
Fernet encryption for provider OAuth tokens stored at rest.

The Fernet key is derived from SECRET_KEY with HKDF-SHA256, so the same
SECRET_KEY always yields the same key and stored tokens stay readable across
restarts. Rotating SECRET_KEY makes every stored token undecryptable and each
organization has to reconnect its integrations.
"""
import base64
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from app.core.config import settings
from app.core.logging_config import log_error

_HKDF_INFO = b"trackline-integration-token-encryption"


@lru_cache(maxsize=1)
def _derive_fernet_key(secret_key: str) -> bytes:
    if not secret_key:
        raise ValueError(
            "SECRET_KEY must be set for encryption. "
            "Set it in your .env file or environment variables."
        )

    kdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=_HKDF_INFO,
    )
    return base64.urlsafe_b64encode(kdf.derive(secret_key.encode("utf-8")))


def _get_fernet() -> Fernet:
    return Fernet(_derive_fernet_key(settings.secret_key))


def encrypt_token(token: str) -> str:
    """Encrypt an access or refresh token for storage."""
    if not token or not token.strip():
        raise ValueError("Cannot encrypt empty token")

    try:
        return _get_fernet().encrypt(token.encode("utf-8")).decode("utf-8")
    except Exception as e:
        log_error(e, action="token_encryption")
        raise


def encrypt_optional_token(token: Optional[str]) -> Optional[str]:
    """Encrypt a token that providers may omit (refresh tokens)."""
    if not token:
        return None
    return encrypt_token(token)


def decrypt_token(encrypted_token: str) -> str:
    """
    Decrypt a token produced by encrypt_token.

    Raises:
        ValueError: if the ciphertext is corrupted or SECRET_KEY has changed
    """
    if not encrypted_token or not encrypted_token.strip():
        raise ValueError("Cannot decrypt empty token")

    try:
        return _get_fernet().decrypt(encrypted_token.encode("utf-8")).decode("utf-8")
    except InvalidToken as e:
        log_error(e, action="token_decryption")
        raise ValueError(
            "Failed to decrypt token. The stored credentials are corrupted or "
            "SECRET_KEY has changed; the integration must be reconnected."
        ) from e


def is_encrypted(value: Optional[str]) -> bool:
    """Heuristic check for Fernet ciphertext (version byte 0x80 encodes as 'gAAAAA')."""
    return bool(value) and value.startswith("gAAAAA")


def reset_key_cache() -> None:
    """Forget the derived key. Only needed when SECRET_KEY changes at runtime (tests)."""
    _derive_fernet_key.cache_clear()
