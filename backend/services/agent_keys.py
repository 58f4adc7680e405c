"""
Agent Key Management
Encryption and decryption of stored agent private keys
"""

import base64
import hashlib
import re
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from config.settings import Settings, get_settings

RAW_KEY_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


class AgentKeyError(Exception):
    """Stored agent key could not be decrypted"""


def _fernet(settings: Settings = None) -> Fernet:
    settings = settings or get_settings()
    if settings.agent_encryption_key:
        key = settings.agent_encryption_key.encode()
    else:
        # Derive a deterministic key from the secret (dev setups)
        key = base64.urlsafe_b64encode(hashlib.sha256(settings.secret_key.encode()).digest())
    return Fernet(key)


def encrypt_private_key(private_key: str, settings: Settings = None) -> str:
    """Encrypt a private key for storage; returns a Fernet token string"""
    return _fernet(settings).encrypt(private_key.encode()).decode()


def decrypt_private_key(encrypted_key: str, settings: Optional[Settings] = None) -> str:
    """
    Decrypt a stored private key.

    Older records hold the raw 0x-hex key; those are returned unchanged.
    """
    if RAW_KEY_RE.match(encrypted_key or ""):
        return encrypted_key
    try:
        return _fernet(settings).decrypt(encrypted_key.encode()).decode()
    except (InvalidToken, ValueError) as e:
        raise AgentKeyError("Unable to decrypt agent key") from e
