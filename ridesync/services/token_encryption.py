"""
Token Encryption Service

Encrypts and decrypts cloud tokens using Fernet symmetric encryption.
Tokens are encrypted at rest in the credential slot.
"""

import os
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

KEY_FILENAME = 'credential.key'


class TokenEncryption:
    """Handles encryption/decryption of cloud tokens."""

    def __init__(self, encryption_key):
        if isinstance(encryption_key, str):
            encryption_key = encryption_key.encode()

        try:
            self.cipher = Fernet(encryption_key)
        except (ValueError, TypeError) as e:
            logger.error(f"Failed to initialize Fernet cipher: {e}")
            raise ValueError(f"Invalid encryption key format: {e}")

    def encrypt(self, plaintext: Optional[str]) -> Optional[str]:
        """Encrypt a plaintext token.

        Args:
            plaintext: Plain text token to encrypt

        Returns:
            Encrypted token (base64 encoded) or None if input is None
        """
        if plaintext is None:
            return None
        return self.cipher.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: Optional[str]) -> Optional[str]:
        """Decrypt an encrypted token.

        Returns None when the value cannot be decrypted, which happens after the
        key has been rotated; the caller then treats the token as missing.
        """
        if ciphertext is None:
            return None
        try:
            return self.cipher.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            logger.error("Failed to decrypt stored token (key mismatch or corrupted value)")
            return None


def load_encryption_key(config, instance_path):
    """Resolve the Fernet key from config, or from the instance key file.

    Production refuses to run without an explicit key.
    """
    key = config.get('CREDENTIAL_ENCRYPTION_KEY')
    if key:
        return key

    if config.get('ENV') == 'production' or os.environ.get('FLASK_ENV') == 'production':
        raise RuntimeError(
            "CREDENTIAL_ENCRYPTION_KEY must be set in production. "
            "Generate with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
        )

    key_path = os.path.join(instance_path, KEY_FILENAME)
    if os.path.exists(key_path):
        with open(key_path, 'r') as f:
            return f.read().strip()

    logger.warning("CREDENTIAL_ENCRYPTION_KEY not set. Generating a local key file")
    key = Fernet.generate_key().decode()
    os.makedirs(instance_path, exist_ok=True)
    with open(key_path, 'w') as f:
        f.write(key)
    os.chmod(key_path, 0o600)
    return key
