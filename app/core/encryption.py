import base64
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from .config import get_settings

settings = get_settings()


class EncryptionError(Exception):
    """Raised when stored credentials cannot be decrypted"""
    pass


def _get_encryption_key() -> bytes:
    """Derive the Fernet key from the application secret"""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=settings.encryption_salt.encode(),
        iterations=100000,
    )
    return base64.urlsafe_b64encode(kdf.derive(settings.secret_key.encode()))


def encrypt_data(data: str) -> str:
    """Encrypt a credential for storage"""
    if not data:
        return data

    f = Fernet(_get_encryption_key())
    return f.encrypt(data.encode()).decode()


def decrypt_data(encrypted_data: str) -> str:
    """Decrypt a stored credential.

    Key material is derived per call and never cached, so a decrypted
    token only lives for the duration of the task that asked for it.
    """
    if not encrypted_data:
        return encrypted_data

    try:
        f = Fernet(_get_encryption_key())
        return f.decrypt(encrypted_data.encode()).decode()
    except InvalidToken as e:
        raise EncryptionError("Stored credential could not be decrypted") from e
