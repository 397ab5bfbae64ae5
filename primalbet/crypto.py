"""
Core cryptographic functions: ed25519 keypairs, signatures, hashing and
conversion between raw keys and solders public keys.
"""
import hashlib
import json
from typing import Union

import nacl.signing
import nacl.exceptions
from solders.keypair import Keypair as SoldersKeypair
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM

from .errors import ConfigurationError, InvalidPrivateKeyLength
from .utils.encoding import b58decode, b58encode

PUBKEY_LENGTH = 32
SECRET_KEY_LENGTH = 64

SYSTEM_PROGRAM_ID = bytes(SYSTEM_PROGRAM)


def generate_hash(data: bytes) -> bytes:
    """Generates a SHA-256 hash."""
    return hashlib.sha256(data).digest()


def to_pubkey_bytes(value: Union[str, bytes, bytearray, Pubkey]) -> bytes:
    """Accepts a base58 string, raw bytes or a Pubkey and returns a 32-byte key."""
    if isinstance(value, str):
        try:
            raw = b58decode(value)
        except ValueError as e:
            raise ValueError(f"Invalid base58 public key {value!r}: {e}") from e
    else:
        raw = bytes(value)
    if len(raw) != PUBKEY_LENGTH:
        raise ValueError(f"Public key must be {PUBKEY_LENGTH} bytes, got {len(raw)}")
    return raw


def to_pubkey(value: Union[str, bytes, bytearray, Pubkey]) -> Pubkey:
    if isinstance(value, Pubkey):
        return value
    return Pubkey(to_pubkey_bytes(value))


def pubkey_to_str(key: bytes) -> str:
    return b58encode(bytes(key))


class Keypair:
    """An ed25519 signing identity in the 64-byte secret key layout."""

    def __init__(self, signing_key: nacl.signing.SigningKey):
        self._signing_key = signing_key

    @classmethod
    def generate(cls) -> 'Keypair':
        return cls(nacl.signing.SigningKey.generate())

    @classmethod
    def from_secret_key(cls, secret: Union[bytes, list]) -> 'Keypair':
        """
        Builds a keypair from 64 bytes: 32-byte seed then 32-byte public key.
        Raises InvalidPrivateKeyLength for any other length.
        """
        raw = bytes(secret)
        if len(raw) != SECRET_KEY_LENGTH:
            raise InvalidPrivateKeyLength(len(raw))
        keypair = cls(nacl.signing.SigningKey(raw[:32]))
        if keypair.public_key != raw[32:]:
            raise ConfigurationError("Secret key does not match its embedded public key")
        return keypair

    @classmethod
    def from_json(cls, text: str) -> 'Keypair':
        """Parses the JSON integer-array form, e.g. '[12, 200, ...]'."""
        try:
            values = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Secret key is not valid JSON: {e}") from e
        if not isinstance(values, list) or not all(isinstance(v, int) and 0 <= v < 256 for v in values):
            raise ConfigurationError("Secret key must be a JSON array of byte values")
        return cls.from_secret_key(values)

    @property
    def public_key(self) -> bytes:
        return bytes(self._signing_key.verify_key)

    @property
    def address(self) -> str:
        return pubkey_to_str(self.public_key)

    @property
    def secret_key(self) -> bytes:
        return bytes(self._signing_key) + self.public_key

    def to_json(self) -> str:
        return json.dumps(list(self.secret_key))

    @property
    def pubkey(self) -> Pubkey:
        return Pubkey(self.public_key)

    @property
    def signer(self) -> SoldersKeypair:
        """The same identity as a solders keypair, for signing transactions."""
        return SoldersKeypair.from_bytes(self.secret_key)

    def __repr__(self):
        return f"Keypair({self.address})"


def verify_signature(public_key: bytes, signature: bytes, data: bytes) -> bool:
    """Verifies a detached ed25519 signature."""
    try:
        nacl.signing.VerifyKey(public_key).verify(data, signature)
        return True
    except (nacl.exceptions.BadSignatureError, ValueError):
        return False
