"""AES-256-GCM helper for secrets kept in tenant settings.

Blob format: ``<nonce hex>:<tag hex>:<ciphertext hex>`` (lowercase hex, 12-byte
nonce, 16-byte tag). A fresh nonce is drawn for every call.
"""

from __future__ import annotations

import re
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from entitlement_engine.core.config import get_settings
from entitlement_engine.core.errors import (
    CiphertextFormatError,
    ConfigurationError,
    IntegrityError,
)

KEY_LENGTH_BYTES = 32
NONCE_LENGTH_BYTES = 12
TAG_LENGTH_BYTES = 16

_BLOB_PATTERN = re.compile(
    rf"^(?P<nonce>[0-9a-f]{{{NONCE_LENGTH_BYTES * 2}}})"
    rf":(?P<tag>[0-9a-f]{{{TAG_LENGTH_BYTES * 2}}})"
    r":(?P<ciphertext>(?:[0-9a-f]{2})*)$"
)
_HEX_KEY_PATTERN = re.compile(r"^[0-9a-fA-F]+$")


def load_encryption_key(key_hex: str | None = None) -> bytes:
    raw = get_settings().field_settings_encryption_key if key_hex is None else key_hex
    raw = (raw or "").strip()
    if not raw:
        raise ConfigurationError(
            "FIELD_SETTINGS_ENCRYPTION_KEY is not set; generate one with `openssl rand -hex 32`"
        )
    if len(raw) != KEY_LENGTH_BYTES * 2 or _HEX_KEY_PATTERN.match(raw) is None:
        raise ConfigurationError(
            "FIELD_SETTINGS_ENCRYPTION_KEY must be a 64-character hex string (32 bytes)"
        )
    return bytes.fromhex(raw)


def encrypt_secret(plaintext: str, *, key: bytes | None = None) -> str:
    cipher = AESGCM(key if key is not None else load_encryption_key())
    nonce = secrets.token_bytes(NONCE_LENGTH_BYTES)
    sealed = cipher.encrypt(nonce, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH_BYTES], sealed[-TAG_LENGTH_BYTES:]
    return ":".join((nonce.hex(), tag.hex(), ciphertext.hex()))


def decrypt_secret(blob: str, *, key: bytes | None = None) -> str:
    if blob.count(":") != 2:
        raise CiphertextFormatError("encrypted value must have the shape nonce:tag:ciphertext")
    match = _BLOB_PATTERN.match(blob)
    if match is None:
        raise CiphertextFormatError("encrypted value contains malformed hex fields")

    cipher = AESGCM(key if key is not None else load_encryption_key())
    nonce = bytes.fromhex(match.group("nonce"))
    tag = bytes.fromhex(match.group("tag"))
    ciphertext = bytes.fromhex(match.group("ciphertext"))
    try:
        plaintext = cipher.decrypt(nonce, ciphertext + tag, None)
    except InvalidTag as exc:
        raise IntegrityError("encrypted value failed authentication") from exc
    return plaintext.decode("utf-8")


def mask_secret(plaintext: str, *, visible: int = 4) -> str:
    if len(plaintext) <= visible:
        return "*" * len(plaintext)
    return "*" * (len(plaintext) - visible) + plaintext[-visible:]
