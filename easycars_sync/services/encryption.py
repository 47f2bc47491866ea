"""Credentials encryption using Fernet (symmetric encryption)"""

from cryptography.fernet import Fernet, InvalidToken
from easycars_sync.config import get_settings
import logging

logger = logging.getLogger(__name__)
settings = get_settings()

try:
    cipher_suite = Fernet(settings.ENCRYPTION_KEY.encode())
except Exception as e:
    logger.error("Failed to initialize Fernet cipher: %s", e)
    logger.error("ENCRYPTION_KEY must be a valid Fernet key. Generate with: Fernet.generate_key().decode()")
    raise


def encrypt_credentials(data: str) -> str:
    """
    Encrypt one credential field (account number, secret, client id...).

    Returns:
        Fernet token as a string; the IV is embedded in the token.
    """
    if data is None:
        raise ValueError("Cannot encrypt an empty credential value")
    return cipher_suite.encrypt(data.encode()).decode()


def decrypt_credentials(encrypted_data: str) -> str:
    """
    Decrypt a value produced by encrypt_credentials.

    Raises:
        InvalidToken: wrong key or tampered ciphertext
    """
    try:
        return cipher_suite.decrypt(encrypted_data.encode()).decode()
    except InvalidToken:
        logger.error("Decryption failed: ciphertext does not match ENCRYPTION_KEY")
        raise


def generate_encryption_key() -> str:
    """
    Generate a new Fernet key for ENCRYPTION_KEY:
        python -c "from easycars_sync.services.encryption import generate_encryption_key; print(generate_encryption_key())"
    """
    return Fernet.generate_key().decode()
