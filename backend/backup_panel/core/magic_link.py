"""Magic-link token codec.

A magic link carries ``{username, password, expiration}`` encrypted with
AES-256-CBC under a key derived from the database password:

    token = base64( iv[16] || AES-CBC(sha256(db_password), iv, json_payload) )

The token is only a transport for credentials. Decoding it proves nothing;
the recovered pair still goes through the credential verifier before a
session is issued.

Security:
- A fresh random IV per token (IV reuse under one key leaks plaintext
  structure in CBC mode).
- Every decoding failure raises the same MagicLinkDecodeError so callers
  cannot be used as a padding or parsing oracle.
- Expiration lives in the plaintext and is checked by the caller via
  MagicLinkPayload.is_expired().
"""

import base64
import binascii
import hashlib
import json
import os
import time
from dataclasses import dataclass
from datetime import timedelta

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

# Magic link lifetime: 1 hour
MAGIC_LINK_TTL = timedelta(hours=1)

_IV_LENGTH = 16
_BLOCK_SIZE_BITS = 128


class MagicLinkDecodeError(Exception):
    """Token could not be decoded.

    Deliberately carries no detail about which stage failed.
    """


@dataclass(frozen=True)
class MagicLinkPayload:
    """Decrypted magic-link content.

    Attributes:
        username: Username to verify.
        password: Password to verify.
        expiration: Expiry as epoch milliseconds.
    """

    username: str
    password: str
    expiration: int

    def is_expired(self, now_ms: int | None = None) -> bool:
        """Return True if the link's expiration is in the past."""
        current = _now_ms() if now_ms is None else now_ms
        return self.expiration < current


def _now_ms() -> int:
    return int(time.time() * 1000)


def derive_key(secret: str) -> bytes:
    """Derive a 256-bit AES key from the database password (SHA-256)."""
    return hashlib.sha256(secret.encode("utf-8")).digest()


class MagicLinkCodec:
    """Encrypts and decrypts magic-link tokens.

    The key is derived once at construction and never changes, so a codec
    instance is safe to share between concurrent requests.
    """

    def __init__(self, secret: str, *, ttl: timedelta = MAGIC_LINK_TTL) -> None:
        """Initialize the codec.

        Args:
            secret: Database password used as key material. Must be non-empty.
            ttl: Lifetime embedded into newly encoded tokens.

        Raises:
            ValueError: If secret is empty.
        """
        if not secret:
            raise ValueError("Magic-link key material must not be empty")
        self._key = derive_key(secret)
        self._ttl_ms = int(ttl.total_seconds() * 1000)

    def encode(self, username: str, password: str, *, now_ms: int | None = None) -> str:
        """Encrypt a credential pair into a URL-transportable token.

        Args:
            username: Username to embed.
            password: Password to embed.
            now_ms: Creation time in epoch milliseconds. Defaults to now.

        Returns:
            Standard base64 token. Callers must URL-encode it in query strings.
        """
        created = _now_ms() if now_ms is None else now_ms
        plaintext = json.dumps(
            {
                "username": username,
                "password": password,
                "expiration": created + self._ttl_ms,
            },
            separators=(",", ":"),
        ).encode("utf-8")

        iv = os.urandom(_IV_LENGTH)
        padder = padding.PKCS7(_BLOCK_SIZE_BITS).padder()
        padded = padder.update(plaintext) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        return base64.b64encode(iv + ciphertext).decode("ascii")

    def decode(self, token: str) -> MagicLinkPayload:
        """Decrypt and parse a token.

        Does not check expiration; see MagicLinkPayload.is_expired().

        Args:
            token: Base64 token as received.

        Returns:
            The decrypted payload.

        Raises:
            MagicLinkDecodeError: On any failure (bad base64, truncated token,
                wrong key, bad padding, non-UTF-8, malformed JSON, wrong types).
        """
        try:
            raw = base64.b64decode(token.replace(" ", "+"), validate=True)
            iv, ciphertext = raw[:_IV_LENGTH], raw[_IV_LENGTH:]
            if len(iv) != _IV_LENGTH or not ciphertext:
                raise ValueError("truncated token")

            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(_BLOCK_SIZE_BITS).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()

            data = json.loads(plaintext.decode("utf-8"))
            return _payload_from_dict(data)
        except (binascii.Error, ValueError, TypeError, KeyError) as exc:
            # UnicodeDecodeError and JSONDecodeError are ValueError subclasses;
            # cryptography reports bad padding and block size as ValueError.
            raise MagicLinkDecodeError("Invalid magic link") from exc


def _payload_from_dict(data: object) -> MagicLinkPayload:
    """Validate decrypted JSON structure."""
    if not isinstance(data, dict):
        raise TypeError("payload is not an object")

    username = data["username"]
    password = data["password"]
    expiration = data["expiration"]

    if not isinstance(username, str) or not isinstance(password, str):
        raise TypeError("credentials must be strings")
    # bool is an int subclass; reject it explicitly
    if isinstance(expiration, bool) or not isinstance(expiration, int | float):
        raise TypeError("expiration must be a number")

    return MagicLinkPayload(
        username=username, password=password, expiration=int(expiration)
    )
