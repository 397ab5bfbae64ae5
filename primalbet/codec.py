"""
Binary codec for the ledger program.

Instruction data is an 8-byte discriminator followed by positional
arguments; account data is an 8-byte header followed by fields at fixed
offsets. Both directions are driven by the same declarative Schema so the
read and write paths cannot drift apart.
"""
import struct
from dataclasses import dataclass
from typing import Any, Optional

from .crypto import PUBKEY_LENGTH, generate_hash

HEADER_SIZE = 8
DISCRIMINATOR_SIZE = 8
DEFAULT_NAMESPACE = "global"

U64_MAX = 2 ** 64 - 1
I64_MIN = -(2 ** 63)
I64_MAX = 2 ** 63 - 1


def instruction_discriminator(method_name: str, namespace: str = DEFAULT_NAMESPACE) -> bytes:
    """First 8 bytes of sha256("<namespace>:<method_name>")."""
    preimage = f"{namespace}:{method_name}".encode('ascii')
    return generate_hash(preimage)[:DISCRIMINATOR_SIZE]


def account_discriminator(account_name: str) -> bytes:
    """Header the serving program writes in front of an account payload."""
    return instruction_discriminator(account_name, namespace="account")


# --- Primitive encoders ---

def encode_u8(value: int) -> bytes:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"u8 out of range: {value}")
    return struct.pack('<B', value)


def encode_u32(value: int) -> bytes:
    if not 0 <= value <= 0xFFFFFFFF:
        raise ValueError(f"u32 out of range: {value}")
    return struct.pack('<I', value)


def encode_u64(value: int) -> bytes:
    if not 0 <= value <= U64_MAX:
        raise ValueError(f"u64 out of range: {value}")
    return struct.pack('<Q', value)


def encode_i64(value: int) -> bytes:
    if not I64_MIN <= value <= I64_MAX:
        raise ValueError(f"i64 out of range: {value}")
    return struct.pack('<q', value)


def encode_pubkey(value: bytes) -> bytes:
    if len(value) != PUBKEY_LENGTH:
        raise ValueError(f"Public key must be {PUBKEY_LENGTH} bytes, got {len(value)}")
    return bytes(value)


def encode_bytes(value: bytes) -> bytes:
    """u32 little-endian length prefix followed by the raw bytes."""
    return encode_u32(len(value)) + bytes(value)


# --- Field kinds ---

class FieldKind:
    """A fixed or length-prefixed value that knows how to pack itself."""
    name = "abstract"

    def encode(self, value) -> bytes:
        raise NotImplementedError

    def decode(self, data: bytes, offset: int) -> tuple[Any, int]:
        """Returns (value, bytes_consumed)."""
        raise NotImplementedError

    def default(self):
        raise NotImplementedError

    @property
    def min_size(self) -> int:
        raise NotImplementedError


class _Struct(FieldKind):
    def __init__(self, name: str, fmt: str, encoder, zero):
        self.name = name
        self._fmt = fmt
        self._size = struct.calcsize(fmt)
        self._encoder = encoder
        self._zero = zero

    def encode(self, value) -> bytes:
        return self._encoder(value)

    def decode(self, data: bytes, offset: int) -> tuple[Any, int]:
        if offset + self._size > len(data):
            raise ValueError(f"{self.name} at offset {offset} overruns {len(data)}-byte buffer")
        return struct.unpack_from(self._fmt, data, offset)[0], self._size

    def default(self):
        return self._zero

    @property
    def min_size(self) -> int:
        return self._size


class _Pubkey(FieldKind):
    name = "pubkey"

    def encode(self, value) -> bytes:
        return encode_pubkey(value)

    def decode(self, data: bytes, offset: int) -> tuple[Any, int]:
        end = offset + PUBKEY_LENGTH
        if end > len(data):
            raise ValueError(f"pubkey at offset {offset} overruns {len(data)}-byte buffer")
        return bytes(data[offset:end]), PUBKEY_LENGTH

    def default(self):
        return bytes(PUBKEY_LENGTH)

    @property
    def min_size(self) -> int:
        return PUBKEY_LENGTH


class _Bytes(FieldKind):
    name = "bytes"

    def encode(self, value) -> bytes:
        if isinstance(value, str):
            value = value.encode('utf-8')
        return encode_bytes(value)

    def decode(self, data: bytes, offset: int) -> tuple[Any, int]:
        length, _ = U32.decode(data, offset)
        start = offset + 4
        if start + length > len(data):
            raise ValueError(f"bytes of length {length} overrun {len(data)}-byte buffer")
        return bytes(data[start:start + length]), 4 + length

    def default(self):
        return b""

    @property
    def min_size(self) -> int:
        return 4


class Option(FieldKind):
    """One tag byte (0 = absent, 1 = present) followed by the inner schema."""

    def __init__(self, inner: 'Schema'):
        self.inner = inner
        self.name = f"option<{inner.name}>"

    def encode(self, value) -> bytes:
        if value is None:
            return b"\x00"
        return b"\x01" + self.inner.encode(value)

    def decode(self, data: bytes, offset: int) -> tuple[Any, int]:
        tag, _ = U8.decode(data, offset)
        if tag == 0:
            return None, 1
        if tag != 1:
            raise ValueError(f"Invalid option tag {tag} at offset {offset}")
        value, consumed = self.inner.decode_from(data, offset + 1)
        return value, 1 + consumed

    def default(self):
        return None

    @property
    def min_size(self) -> int:
        return 1


U8 = _Struct("u8", '<B', encode_u8, 0)
U32 = _Struct("u32", '<I', encode_u32, 0)
U64 = _Struct("u64", '<Q', encode_u64, 0)
I64 = _Struct("i64", '<q', encode_i64, 0)
PUBKEY = _Pubkey()
BYTES = _Bytes()


@dataclass(frozen=True)
class Field:
    name: str
    kind: FieldKind
    # Trailing fields marked optional may be missing from older layouts
    optional: bool = False


class Schema:
    """An ordered field list consumed by one generic encode/decode routine."""

    def __init__(self, name: str, fields: list[Field]):
        self.name = name
        self.fields = list(fields)
        seen_optional = False
        for f in self.fields:
            if seen_optional and not f.optional:
                raise ValueError(f"{name}: required field {f.name!r} follows an optional one")
            seen_optional = seen_optional or f.optional

    @property
    def min_size(self) -> int:
        """Bytes needed for every required field at its smallest encoding."""
        return sum(f.kind.min_size for f in self.fields if not f.optional)

    def default(self) -> dict:
        return {f.name: f.kind.default() for f in self.fields}

    def encode(self, values: dict) -> bytes:
        out = bytearray()
        for f in self.fields:
            if f.name not in values:
                raise ValueError(f"{self.name}: missing field {f.name!r}")
            out += f.kind.encode(values[f.name])
        return bytes(out)

    def decode_from(self, data: bytes, offset: int = 0) -> tuple[dict, int]:
        """Decodes fields in declaration order. Returns (values, bytes_consumed)."""
        values = {}
        cursor = offset
        for f in self.fields:
            if f.optional and cursor + f.kind.min_size > len(data):
                values[f.name] = f.kind.default()
                continue
            value, consumed = f.kind.decode(data, cursor)
            values[f.name] = value
            cursor += consumed
        return values, cursor - offset

    def decode(self, data: bytes) -> dict:
        return self.decode_from(data, 0)[0]


class AccountLayout:
    """An account schema behind the fixed 8-byte header."""

    def __init__(self, account_name: str, schema: Schema):
        self.account_name = account_name
        self.schema = schema
        self.header = account_discriminator(account_name)

    @property
    def min_length(self) -> int:
        return HEADER_SIZE + self.schema.min_size

    def encode(self, values: dict, header: Optional[bytes] = None) -> bytes:
        return (header or self.header) + self.schema.encode(values)

    def decode(self, data: Optional[bytes]) -> Optional[dict]:
        """
        Returns the decoded fields, or None when the account is absent or
        too short to hold the layout. Never raises for a missing account.
        """
        if data is None or len(data) < self.min_length:
            return None
        try:
            return self.schema.decode(data[HEADER_SIZE:])
        except ValueError:
            return None


class InstructionLayout:
    """Discriminator plus positional argument schema for one instruction."""

    def __init__(self, method_name: str, args: list[Field], namespace: str = DEFAULT_NAMESPACE):
        self.method_name = method_name
        self.args = Schema(method_name, args)
        self.discriminator = instruction_discriminator(method_name, namespace)

    def encode(self, **values) -> bytes:
        return self.discriminator + self.args.encode(values)

    def decode(self, data: bytes) -> dict:
        if data[:DISCRIMINATOR_SIZE] != self.discriminator:
            raise ValueError(f"Data is not a {self.method_name} instruction")
        return self.args.decode(data[DISCRIMINATOR_SIZE:])


# --- Ledger program layouts ---

PLAYER_ACCOUNT = AccountLayout("PlayerAccount", Schema("PlayerAccount", [
    Field("wallet", PUBKEY),
    Field("balance", U64),
    Field("total_combats", U64),
    Field("victories", U64),
    Field("total_winnings", U64),
    Field("last_combat", I64),
    Field("last_payment_method", U8, optional=True),
]))

LAST_WINNER = Schema("LastWinner", [
    Field("wallet", PUBKEY),
    Field("amount", U64),
    Field("timestamp", I64),
])

GAME_STATE = AccountLayout("GameState", Schema("GameState", [
    Field("current_pot", U64),
    Field("total_entries", U64),
    Field("last_winner", Option(LAST_WINNER)),
]))

ENTER_COMBAT = InstructionLayout("enter_combat", [])
ENTER_COMBAT_WITH_PDA = InstructionLayout("enter_combat_with_pda", [])
ENTER_COMBAT_FOR_PLAYER = InstructionLayout("enter_combat_for_player", [
    Field("player", PUBKEY),
])
DEPOSIT_TO_PDA = InstructionLayout("deposit_to_pda", [
    Field("amount", U64),
])
WITHDRAW_FROM_PDA = InstructionLayout("withdraw_from_pda", [
    Field("amount", U64),
])
CLAIM_PRIZE_BACKEND = InstructionLayout("claim_prize_backend", [
    Field("winner", PUBKEY),
    Field("vrf_proof", BYTES),
])
