"""Summary: Authenticated encryption for provider access tokens at rest.

Importance: Access tokens are written to shared storage and decrypted by another
service, so the byte layout and key derivation below are a frozen contract.
Alternatives: Use Fernet, which the other service cannot read.

Contract (do not change without re-encrypting every stored token):

* KDF: PBKDF2-HMAC-SHA256, UTF-8 master key, salt ``KDF_SALT``,
  ``KDF_ITERATIONS`` iterations, 32-byte output.
* Cipher: AES-256-GCM, 12-byte random IV, 16-byte tag, no associated data.
* Blob: ``base64(IV || ciphertext || tag)`` with the standard alphabet and padding.
"""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from shoplink.errors import DecryptionFailed


KDF_SALT = b"replyna-v2-salt"
KDF_ITERATIONS = 100_000
KEY_LENGTH = 32
IV_LENGTH = 12
TAG_LENGTH = 16


def derive_key(master_key: str) -> bytes:
    """Summary: Derive the 256-bit AES key from a master secret.

    Importance: Both runtimes must derive identical keys from the same secret.
    Alternatives: Store a raw random key instead of a passphrase.
    """

    if not master_key:
        raise ValueError("Encryption master key must not be empty")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=KDF_SALT,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(master_key.encode("utf-8"))


def encrypt_token(plaintext: str, master_key: str) -> str:
    """Encrypt ``plaintext`` under a key derived from ``master_key``."""

    return TokenCipher(master_key).encrypt(plaintext)


def decrypt_token(blob: str, master_key: str) -> str:
    """Decrypt a blob produced by :func:`encrypt_token`; raises DecryptionFailed."""

    return TokenCipher(master_key).decrypt(blob)


class TokenCipher:
    """Summary: AES-256-GCM cipher bound to one derived key.

    Importance: Derives the key once per process instead of per token.
    Alternatives: Call derive_key on every encrypt and decrypt.
    """

    def __init__(self, master_key: str) -> None:
        self._aead = AESGCM(derive_key(master_key))

    def __repr__(self) -> str:
        return "TokenCipher(algorithm='AES-256-GCM')"

    def encrypt(self, plaintext: str) -> str:
        """Summary: Encrypt a token string with a fresh random IV.

        Importance: A new IV per call keeps GCM safe under one long-lived key.
        Alternatives: Use a counter-based IV persisted alongside the key.
        """

        iv = os.urandom(IV_LENGTH)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        return base64.b64encode(iv + sealed).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """Summary: Decrypt and authenticate a stored blob.

        Importance: Fails closed with one opaque error for every kind of failure.
        Alternatives: Raise distinct errors for encoding, length and tag problems.
        """

        try:
            raw = base64.b64decode(blob.encode("ascii"), validate=True)
        except (binascii.Error, ValueError):
            raise DecryptionFailed() from None
        if len(raw) < IV_LENGTH + TAG_LENGTH:
            raise DecryptionFailed()
        iv, sealed = raw[:IV_LENGTH], raw[IV_LENGTH:]
        try:
            plaintext = self._aead.decrypt(iv, sealed, None)
        except InvalidTag:
            raise DecryptionFailed() from None
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptionFailed() from None


def looks_encrypted(value: str | None) -> bool:
    """Summary: Check whether a stored value has the shape of an encrypted blob.

    Importance: Lets operators spot rows that still hold legacy plaintext tokens.
    Alternatives: Add a separate column recording the storage format.
    """

    if not value:
        return False
    try:
        raw = base64.b64decode(value.encode("ascii"), validate=True)
    except (binascii.Error, ValueError):
        return False
    return len(raw) >= IV_LENGTH + TAG_LENGTH
