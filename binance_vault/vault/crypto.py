"""
Vault Crypto Core — AES-256-GCM encryption of API secrets at rest.

Stored format (text column, base64url without padding):
    <nonce 12B>:<ciphertext>:<GCM tag 16B>

Security Note:
    Never log plaintext or ciphertext values.
    Nonces are random 96-bit; collision probability negligible under normal usage.
"""
import os
import base64
import binascii
import logging
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import (
    AuthenticationFailure,
    ConfigurationError,
    InvalidFormat,
)
from .config import KEY_LENGTH, load_master_key

logger = logging.getLogger("binance_vault.vault")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # 128-bit GCM tag
SEPARATOR = ":"


# ---------------------------------------------------------------------------
# base64url helpers
# ---------------------------------------------------------------------------

def b64url_encode(data: bytes) -> str:
    """Encode bytes as unpadded base64url text."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(text: str) -> bytes:
    """Decode base64url text, with or without ``=`` padding.

    Raises:
        InvalidFormat: If ``text`` holds characters outside the alphabet.
    """
    padded = text + "=" * (-len(text) % 4)
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as err:
        raise InvalidFormat("Invalid encrypted payload") from err


# ---------------------------------------------------------------------------
# Vault
# ---------------------------------------------------------------------------

class CredentialVault:
    """Encrypts and decrypts short secrets with a process-wide master key.

    The key is injected at construction and never changes afterwards, so a
    single instance is safe to share between concurrent requests.
    """

    def __init__(self, master_key: bytes):
        if not isinstance(master_key, (bytes, bytearray)) or len(master_key) != KEY_LENGTH:
            raise ConfigurationError(
                f"Vault master key must be exactly {KEY_LENGTH} bytes"
            )
        self._cipher = AESGCM(bytes(master_key))

    def __repr__(self) -> str:
        return "<CredentialVault aes-256-gcm>"

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "CredentialVault":
        """Create a vault keyed by ``APP_ENC_KEY``.

        Raises:
            ConfigurationError: If the key is absent or malformed.
        """
        return cls(load_master_key(environ))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string.

        Args:
            plaintext: Secret to protect.

        Returns:
            ``nonce:ciphertext:tag``, each part base64url encoded.
        """
        if not isinstance(plaintext, str):
            raise TypeError("Only strings can be encrypted")
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._cipher.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return SEPARATOR.join(
            (b64url_encode(nonce), b64url_encode(ciphertext), b64url_encode(tag))
        )

    def decrypt(self, payload: str) -> str:
        """Decrypt a value produced by :meth:`encrypt`.

        Raises:
            InvalidFormat: If the payload is not ``nonce:ciphertext:tag``.
            AuthenticationFailure: If the tag does not verify.
        """
        if not payload or not isinstance(payload, str):
            raise InvalidFormat("Invalid encrypted payload")
        parts = payload.split(SEPARATOR)
        if len(parts) != 3:
            raise InvalidFormat("Invalid encrypted payload")
        nonce, ciphertext, tag = (b64url_decode(part) for part in parts)
        if len(nonce) != NONCE_SIZE:
            raise InvalidFormat(
                f"Invalid nonce size: {len(nonce)} bytes (expected {NONCE_SIZE})"
            )
        if len(tag) != TAG_SIZE:
            raise AuthenticationFailure("Could not authenticate encrypted payload")
        try:
            plain = self._cipher.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as err:
            raise AuthenticationFailure(
                "Could not authenticate encrypted payload"
            ) from err
        return plain.decode("utf-8")

    # aliases used by the account layer
    encode = encrypt
    decode = decrypt
