"""
AES-256-GCM encryption for trading account passwords.

The key is 32 random bytes, base64-encoded in TRADING_ACCOUNT_ENC_KEY.
Stored format: base64(iv):base64(ciphertext + tag), with a fresh 12-byte IV
per encryption.
"""
import base64
import binascii
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from src.aurum.errors import CredentialError

ENC_KEY_ENV = "TRADING_ACCOUNT_ENC_KEY"
IV_BYTES = 12
KEY_BYTES = 32


def generate_key() -> str:
    """New base64 key suitable for TRADING_ACCOUNT_ENC_KEY."""
    return base64.b64encode(AESGCM.generate_key(bit_length=KEY_BYTES * 8)).decode("ascii")


def load_key(value: Optional[str] = None) -> bytes:
    raw = value if value is not None else os.getenv(ENC_KEY_ENV)
    if not raw:
        raise CredentialError(f"{ENC_KEY_ENV} is not set")
    try:
        key = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        raise CredentialError("Encryption key is not valid base64")
    if len(key) != KEY_BYTES:
        raise CredentialError(f"Encryption key must be {KEY_BYTES} bytes, got {len(key)}")
    return key


def encrypt_secret(plaintext: str, key: bytes) -> str:
    iv = os.urandom(IV_BYTES)
    ciphertext = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    return f"{base64.b64encode(iv).decode('ascii')}:{base64.b64encode(ciphertext).decode('ascii')}"


def decrypt_secret(token: str, key: bytes) -> str:
    try:
        iv_b64, ct_b64 = token.split(":")
        iv = base64.b64decode(iv_b64, validate=True)
        ciphertext = base64.b64decode(ct_b64, validate=True)
    except (AttributeError, ValueError, binascii.Error):
        raise CredentialError("Encrypted secret is malformed")
    if len(iv) != IV_BYTES:
        raise CredentialError("Encrypted secret has a bad IV")
    try:
        return AESGCM(key).decrypt(iv, ciphertext, None).decode("utf-8")
    except InvalidTag:
        raise CredentialError("Secret could not be decrypted with the configured key")
