from typing import Optional

from cryptography.fernet import Fernet

from config import settings

_fernet: Optional[Fernet] = None


def _get_fernet() -> Fernet:
    global _fernet
    if _fernet is None:
        if not settings.encryption_key:
            raise RuntimeError("ENCRYPTION_KEY is required to handle encrypted secrets")
        _fernet = Fernet(settings.encryption_key)
    return _fernet


def encrypt_secret(secret: str) -> str:
    return _get_fernet().encrypt(secret.encode("utf-8")).decode("utf-8")


def decrypt_secret(encrypted_value: str) -> str:
    return _get_fernet().decrypt(encrypted_value.encode("utf-8")).decode("utf-8")
