# tests/test_crypto.py

import base64

import pytest
from persistence.crypto import SessionCipher


@pytest.fixture
def cipher():
    return SessionCipher(SessionCipher.generate_key())


def test_encrypt_decrypt_roundtrip(cipher):
    aad = b"doctor_registration_session"
    plaintext = b'{"id": "reg_1"}'

    ct = cipher.encrypt_bytes(plaintext, aad)
    out = cipher.decrypt_bytes(ct, aad)

    assert out == plaintext


def test_decrypt_fails_with_wrong_aad(cipher):
    aad = b"correct"
    ct = cipher.encrypt_bytes(b"secret", aad)

    with pytest.raises(Exception):
        cipher.decrypt_bytes(ct, b"wrong")


def test_ciphertext_tamper_fails(cipher):
    aad = b"aad"
    raw = bytearray(base64.b64decode(cipher.encrypt_bytes(b"secret", aad)))

    # flip a bit in the ciphertext body, after header and nonce
    raw[-1] ^= 0x01
    tampered = base64.b64encode(bytes(raw)).decode("utf-8")

    with pytest.raises(Exception):
        cipher.decrypt_bytes(tampered, aad)


def test_missing_version_header_is_rejected(cipher):
    payload = base64.b64encode(b"v0" + b"\x00" * 28).decode("utf-8")

    with pytest.raises(ValueError):
        cipher.decrypt_bytes(payload, b"aad")


def test_key_must_be_32_bytes():
    with pytest.raises(RuntimeError):
        SessionCipher(b"short")


def test_from_env(monkeypatch):
    key = SessionCipher.generate_key()
    monkeypatch.setenv("ENCRYPTION_KEY", base64.b64encode(key).decode("utf-8"))

    cipher = SessionCipher.from_env()

    assert cipher.decrypt_bytes(cipher.encrypt_bytes(b"x", b"k"), b"k") == b"x"


def test_from_env_requires_key(monkeypatch):
    monkeypatch.delenv("ENCRYPTION_KEY", raising=False)

    with pytest.raises(RuntimeError):
        SessionCipher.from_env()
