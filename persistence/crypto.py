import os
import base64
from typing import Optional

from dotenv import load_dotenv
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

load_dotenv()

VERSION_HEADER = b"v1"
NONCE_SIZE = 12


class SessionCipher:
    """AES-256-GCM over session blobs: base64(b"v1" + nonce + ciphertext)."""

    def __init__(self, key: bytes):
        if len(key) != 32:
            raise RuntimeError(
                f"ENCRYPTION_KEY must decode to 32 bytes for AES-256. Got {len(key)} bytes."
            )
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_env(cls, var: str = "ENCRYPTION_KEY") -> "SessionCipher":
        key_b64: Optional[str] = os.getenv(var)
        if not key_b64:
            raise RuntimeError(f"{var} missing in .env")
        return cls(base64.b64decode(key_b64))

    @staticmethod
    def generate_key() -> bytes:
        return AESGCM.generate_key(bit_length=256)

    def encrypt_bytes(self, plaintext: bytes, aad: bytes) -> str:
        nonce = os.urandom(NONCE_SIZE)
        ct = self._aesgcm.encrypt(nonce, plaintext, aad)
        payload = VERSION_HEADER + nonce + ct
        return base64.b64encode(payload).decode("utf-8")

    def decrypt_bytes(self, payload_b64: str, aad: bytes) -> bytes:
        raw = base64.b64decode(payload_b64.encode("utf-8"))
        if raw[: len(VERSION_HEADER)] != VERSION_HEADER:
            raise ValueError("Not encrypted with expected format/version header")
        nonce = raw[len(VERSION_HEADER) : len(VERSION_HEADER) + NONCE_SIZE]
        ct = raw[len(VERSION_HEADER) + NONCE_SIZE :]
        return self._aesgcm.decrypt(nonce, ct, aad)
