"""
Symmetric envelope encryption for traffic with the banking provider.

Algorithm: Fernet (AES-128-CBC with HMAC-SHA256 authentication).
Key derivation: PBKDF2-HMAC-SHA256 over the environment secret.

Because Fernet tokens are authenticated, a wrong key or a tampered token
raises DecryptionError instead of yielding corrupt plaintext.
"""
import base64
import logging
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from services.config.config import BANKING_API, BANKING_KEY_SALT, BANKING_KEY_ITERATIONS
from services.errors import DecryptionError, ProviderError

logger = logging.getLogger(__name__)


@lru_cache(maxsize=16)
def derive_fernet_key(secret: str, salt: str = BANKING_KEY_SALT, iterations: int = BANKING_KEY_ITERATIONS) -> bytes:
    """
    Derive a Fernet key from an environment secret.

    Args:
        secret: Environment-scoped encryption secret
        salt: Salt string shared with the provider
        iterations: PBKDF2 rounds

    Returns:
        base64-encoded 32 byte key
    """
    if not secret:
        raise ProviderError("Encryption key is not configured for this environment")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt.encode(),
        iterations=iterations,
    )
    return base64.urlsafe_b64encode(kdf.derive(secret.encode()))


class SecureChannel:

    def __init__(self, key: str = None):
        self.key = key

    @classmethod
    def for_environment(cls, environment: str) -> "SecureChannel":
        return cls(BANKING_API[environment]["encryption_key"])

    def encrypt(self, plaintext: str, key: str = None) -> str:
        cipher = Fernet(derive_fernet_key(key or self.key))
        return cipher.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str, key: str = None) -> str:
        cipher = Fernet(derive_fernet_key(key or self.key))
        try:
            return cipher.decrypt(ciphertext.encode()).decode()
        except (InvalidToken, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Rejected banking envelope: {type(e).__name__}")
            raise DecryptionError("Envelope failed authentication (wrong key or tampered data)")
