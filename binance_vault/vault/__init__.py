"""Credential Vault — Encrypted storage of exchange API secrets.

Security Note (Threat Model):
    Decrypted secrets live in process memory only for the duration of a
    single signed request. A memory dump of the application process taken
    during that window could expose them. This is an accepted limitation;
    mitigation requires HSM/secure enclave integration which is out of scope.
"""

from .crypto import CredentialVault
from .key_rotation import rotate_encryption_key
from .config import derive_master_key, load_master_key, generate_master_key

__all__ = [
    "CredentialVault",
    "rotate_encryption_key",
    "derive_master_key",
    "load_master_key",
    "generate_master_key",
]
