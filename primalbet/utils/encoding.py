"""
Base58 text form of keys, signatures and blockhashes.
"""
import base58


def b58encode(b: bytes) -> str:
    """Encode raw bytes as a base58 string."""
    return base58.b58encode(b).decode('ascii')


def b58decode(s: str) -> bytes:
    """Decode a base58 string into raw bytes."""
    return base58.b58decode(s)
