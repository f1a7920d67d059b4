"""Encryption of mail passwords stored at rest.

Stored values use the ``<iv hex>:<ciphertext hex>`` layout produced by the
settings screens: AES-256 in CBC mode with PKCS#7 padding and a random
16-byte IV per value.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .models import MailCredential

LOGGER = logging.getLogger(__name__)

IV_LENGTH = 16
_KEY_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


class CredentialError(RuntimeError):
    """Raised when a stored credential cannot be encrypted or decrypted."""


def generate_encryption_key() -> str:
    """Return a random 32-byte key as 64 hex characters."""
    return os.urandom(32).hex()


def is_valid_encryption_key(key: str) -> bool:
    """Return ``True`` when ``key`` is 64 hex characters."""
    return bool(_KEY_PATTERN.match(key))


class CredentialCipher:
    """Symmetric cipher for credential fields."""

    def __init__(self, key_hex: str | None) -> None:
        """Initialise the cipher from a hex encoded AES-256 key."""
        if not key_hex or not is_valid_encryption_key(key_hex[:64]):
            raise CredentialError(
                "Encryption key is not configured; set OFFICE_AGENT_SECURITY__ENCRYPTION_KEY"
            )
        self._key = bytes.fromhex(key_hex[:64])

    def encrypt(self, plaintext: str) -> str:
        """Encrypt ``plaintext`` into ``iv:ciphertext`` hex form."""
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, token: str) -> str:
        """Decrypt an ``iv:ciphertext`` value produced by :meth:`encrypt`."""
        iv_hex, _, data_hex = token.partition(":")
        if not iv_hex or not data_hex:
            raise CredentialError("Invalid encrypted text format")
        try:
            iv = bytes.fromhex(iv_hex)
            data = bytes.fromhex(data_hex)
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(data) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plain = unpadder.update(padded) + unpadder.finalize()
            return plain.decode("utf-8")
        except ValueError as exc:
            raise CredentialError("Failed to decrypt data") from exc

    @contextmanager
    def credential(
        self, row: Mapping[str, Any], *, prefix: str
    ) -> Iterator[MailCredential]:
        """Yield a decrypted credential built from a ``<prefix>_*`` settings row.

        The plaintext exists only inside the ``with`` block.
        """
        port = int(row[f"{prefix}_port"])
        use_ssl = row.get("use_ssl")
        if use_ssl is None:
            use_ssl = port in (465, 993)
        credential = MailCredential(
            host=str(row[f"{prefix}_host"]),
            port=port,
            username=str(row[f"{prefix}_user"]),
            password=self.decrypt(str(row[f"{prefix}_password"])),
            use_ssl=bool(use_ssl),
        )
        LOGGER.debug("Decrypted %s credential for %s", prefix, credential.username)
        yield credential


__all__ = [
    "CredentialCipher",
    "CredentialError",
    "generate_encryption_key",
    "is_valid_encryption_key",
]
