"""
Vault Configuration — Master key loading and derivation.

Reads the master key material from the environment:
    APP_ENC_KEY = <64 hex chars>  decoded directly as the 32-byte key
    APP_ENC_KEY = <any other text> SHA-256 of its UTF-8 bytes

Security Note:
    Never log key material. Only log which derivation path was taken.
"""
import os
import re
import hashlib
import secrets
import logging
from typing import Optional

from ..exceptions import ConfigurationError

logger = logging.getLogger("binance_vault.vault")

MASTER_KEY_ENV = "APP_ENC_KEY"
KEY_LENGTH = 32  # AES-256

_HEX_KEY_PATTERN = re.compile(r"[0-9a-fA-F]{64}")


def derive_master_key(raw: str) -> bytes:
    """Derive the 32-byte master key from its configured source string.

    Args:
        raw: Key material as read from the environment.

    Returns:
        Raw 32-byte key.

    Raises:
        ConfigurationError: If ``raw`` is empty or the result is not 32 bytes.
    """
    if not raw:
        raise ConfigurationError(f"{MASTER_KEY_ENV} is required")
    if _HEX_KEY_PATTERN.fullmatch(raw):
        key = bytes.fromhex(raw)
        logger.debug("Master key decoded from hex")
    else:
        key = hashlib.sha256(raw.encode("utf-8")).digest()
        logger.debug("Master key derived with SHA-256")
    if len(key) != KEY_LENGTH:
        raise ConfigurationError(
            f"{MASTER_KEY_ENV} must result in a {KEY_LENGTH} bytes key, "
            f"got {len(key)}"
        )
    return key


def load_master_key(environ: Optional[dict] = None) -> bytes:
    """Load and derive the master key from ``APP_ENC_KEY``.

    Args:
        environ: Mapping to read from; defaults to ``os.environ``.

    Returns:
        Raw 32-byte key.

    Raises:
        ConfigurationError: If the variable is absent or empty.
    """
    env = os.environ if environ is None else environ
    # used verbatim: surrounding whitespace is part of the key source
    raw = env.get(MASTER_KEY_ENV) or ""
    if not raw:
        raise ConfigurationError(
            f"{MASTER_KEY_ENV} is required. "
            f"Set {MASTER_KEY_ENV}=<64-hex-chars or passphrase>"
        )
    return derive_master_key(raw)


def generate_master_key() -> str:
    """Generate a random 32-byte master key and return it as 64 hex chars.

    This is a utility for operators to generate new keys.
    """
    return secrets.token_hex(KEY_LENGTH)
