"""Fernet encryption for exchange credentials at rest."""

from cryptography.fernet import Fernet, InvalidToken

from backend.config import settings

_fernet: Fernet | None = None


def _get_fernet() -> Fernet:
    global _fernet
    if _fernet is None:
        key = settings.encryption_key
        if not key:
            raise RuntimeError(
                "MON_ENCRYPTION_KEY not set. Generate one with: "
                "python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
            )
        _fernet = Fernet(key.encode() if isinstance(key, str) else key)
    return _fernet


def encrypt(plaintext: str) -> str:
    """Encrypt a string; empty input stays empty so unset credentials remain detectable."""
    if not plaintext:
        return ""
    return _get_fernet().encrypt(plaintext.encode()).decode()


def decrypt(ciphertext: str) -> str:
    if not ciphertext:
        return ""
    return _get_fernet().decrypt(ciphertext.encode()).decode()


def try_decrypt(ciphertext: str) -> str | None:
    """Decrypt, returning None when the token was made with a different key."""
    try:
        return decrypt(ciphertext)
    except InvalidToken:
        return None
