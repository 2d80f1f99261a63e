from typing import Dict, Optional, Protocol

from persistence.crypto import SessionCipher


class BlobStorage(Protocol):
    """Durable key -> serialized-session store used by the session store."""

    def save(self, key: str, blob: str) -> None: ...

    def load(self, key: str) -> Optional[str]: ...

    def remove(self, key: str) -> None: ...


class InMemoryBlobStorage:
    def __init__(self):
        self._blobs: Dict[str, str] = {}

    def save(self, key: str, blob: str) -> None:
        self._blobs[key] = blob

    def load(self, key: str) -> Optional[str]:
        return self._blobs.get(key)

    def remove(self, key: str) -> None:
        self._blobs.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._blobs


class EncryptedBlobStorage:
    """
    Encrypts blobs before handing them to the wrapped storage. The storage
    key is the associated data, so a blob copied under another key will not
    decrypt.
    """

    def __init__(self, inner: BlobStorage, cipher: SessionCipher):
        self.inner = inner
        self.cipher = cipher

    def save(self, key: str, blob: str) -> None:
        enc = self.cipher.encrypt_bytes(blob.encode("utf-8"), key.encode("utf-8"))
        self.inner.save(key, enc)

    def load(self, key: str) -> Optional[str]:
        enc = self.inner.load(key)
        if enc is None:
            return None
        return self.cipher.decrypt_bytes(enc, key.encode("utf-8")).decode("utf-8")

    def remove(self, key: str) -> None:
        self.inner.remove(key)
