"""
At-rest encryption for per-user model API keys.

Each ciphertext carries its own random salt and nonce:

    base64( salt[16] || nonce[12] || AES-256-GCM(ciphertext + tag) )

The key is derived from the server secret with PBKDF2-HMAC-SHA256.
"""

import base64
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from pdfdeck.errors import ConfigurationRequiredError, CredentialError

SALT_BYTES = 16
NONCE_BYTES = 12
KDF_ITERATIONS = 100000

SECRET_ENV_VAR = "PDFDECK_ENCRYPTION_KEY"


def derive_key(server_secret: str, salt: bytes) -> bytes:
    """
    Derive a 256-bit key from the server secret using PBKDF2.

    Args:
        server_secret: Secret configured on the server
        salt: Per-ciphertext random salt
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(server_secret.encode("utf-8"))


def server_secret_from_env() -> str:
    secret = os.getenv(SECRET_ENV_VAR)
    if not secret:
        raise ConfigurationRequiredError(f"{SECRET_ENV_VAR} is not set")
    return secret


def encrypt(plaintext: str, server_secret: Optional[str] = None) -> str:
    """Encrypt a credential. Two calls never produce the same ciphertext."""
    server_secret = server_secret or server_secret_from_env()
    salt = os.urandom(SALT_BYTES)
    nonce = os.urandom(NONCE_BYTES)
    sealed = AESGCM(derive_key(server_secret, salt)).encrypt(nonce, plaintext.encode("utf-8"), None)
    return base64.b64encode(salt + nonce + sealed).decode("ascii")


def decrypt(ciphertext: str, server_secret: Optional[str] = None) -> str:
    """
    Decrypt a credential produced by `encrypt`.

    Raises:
        CredentialError: wrong secret, truncated or tampered ciphertext
    """
    server_secret = server_secret or server_secret_from_env()
    try:
        raw = base64.b64decode(ciphertext.encode("ascii"), validate=True)
    except ValueError as e:
        raise CredentialError("Stored credential is not valid base64") from e

    if len(raw) <= SALT_BYTES + NONCE_BYTES:
        raise CredentialError("Stored credential is truncated")

    salt = raw[:SALT_BYTES]
    nonce = raw[SALT_BYTES:SALT_BYTES + NONCE_BYTES]
    sealed = raw[SALT_BYTES + NONCE_BYTES:]

    try:
        plaintext = AESGCM(derive_key(server_secret, salt)).decrypt(nonce, sealed, None)
    except InvalidTag as e:
        raise CredentialError("Stored credential could not be decrypted") from e
    return plaintext.decode("utf-8")
