# insightboard/UAA/crypto.py
import os
from typing import Optional

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

logger = structlog.get_logger(__name__)

IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32

# Known weakness: one salt for every record, so every row shares a single derived key.
# Kept for compatibility with tokens already at rest.
KDF_SALT = b"salt"
SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1


def derive_key(passphrase: str, salt: bytes = KDF_SALT) -> bytes:
    kdf = Scrypt(salt=salt, length=KEY_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(passphrase.encode())


class TokenCipher:
    """
    AES-256-GCM encryption of provider access tokens.

    Blobs are hex encoded as iv (16 bytes) || tag (16 bytes) || ciphertext.
    decrypt() never raises: any malformed or tampered blob yields None.
    """

    def __init__(self, passphrase: str):
        if not passphrase:
            raise ValueError("passphrase must not be empty")
        self._aead = AESGCM(derive_key(passphrase))

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_LENGTH)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        # AESGCM appends the tag; the stored layout puts it before the ciphertext
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return (iv + tag + ciphertext).hex()

    def decrypt(self, blob: Optional[str]) -> Optional[str]:
        if not blob:
            return None
        try:
            data = bytes.fromhex(blob)
            if data.hex() != blob:
                raise ValueError("blob is not canonical lowercase hex")
            if len(data) < IV_LENGTH + TAG_LENGTH:
                raise ValueError("blob too short")
            iv = data[:IV_LENGTH]
            tag = data[IV_LENGTH:IV_LENGTH + TAG_LENGTH]
            ciphertext = data[IV_LENGTH + TAG_LENGTH:]
            return self._aead.decrypt(iv, ciphertext + tag, None).decode("utf-8")
        except (InvalidTag, ValueError, TypeError) as e:
            logger.warning("token_decrypt_failed", reason=type(e).__name__)
            return None
