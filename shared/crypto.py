"""
Encryption of the store credentials kept in config.json.

The Fernet key is derived from the machine id and user name, so a copied
config file can't be decrypted on another host.
"""

import base64
import logging
import os
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

KEY_SALT = b'r2-music-server-salt-v1'
KEY_ITERATIONS = 100000


def machine_key() -> bytes:
    try:
        with open('/etc/machine-id', 'r') as f:
            machine_id = f.read().strip()
    except OSError:
        machine_id = os.getenv('HOSTNAME', 'default-machine')

    secret = f"{machine_id}-{os.getenv('USER', 'default-user')}"
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=KEY_SALT, iterations=KEY_ITERATIONS)
    return base64.urlsafe_b64encode(kdf.derive(secret.encode()))


def encrypt_secret(value: str, key: Optional[bytes] = None) -> str:
    """Fernet token (already URL-safe text) for a credential."""
    return Fernet(key or machine_key()).encrypt(value.encode()).decode()


def decrypt_secret(token: str, key: Optional[bytes] = None) -> Optional[str]:
    """Plain credential, or None when the token came from another key or is garbage."""
    try:
        return Fernet(key or machine_key()).decrypt(token.encode()).decode()
    except InvalidToken:
        logger.warning("Stored credential could not be decrypted with this machine's key")
        return None
