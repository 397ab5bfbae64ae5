"""
Program-derived addresses.

Derivation is pure: the same seeds and program id always give the same
address and bump. The bump is the highest value in 255..0 whose address
falls off the ed25519 curve.
"""
from functools import lru_cache
from typing import Sequence

from solders.pubkey import Pubkey

from .crypto import to_pubkey_bytes, pubkey_to_str
from .errors import SeedError

MAX_SEED_LENGTH = 32
MAX_SEEDS = 16

PLAYER_SEED = b"player"
GAME_STATE_SEED = b"game_state"
POT_VAULT_SEED = b"pot_vault"


@lru_cache(maxsize=4096)
def _find(seeds: tuple[bytes, ...], program_id: bytes) -> tuple[bytes, int]:
    # The bump occupies one seed slot
    if len(seeds) >= MAX_SEEDS:
        raise SeedError(f"At most {MAX_SEEDS - 1} seeds allowed before the bump, got {len(seeds)}")
    for seed in seeds:
        if len(seed) > MAX_SEED_LENGTH:
            raise SeedError(f"Seed longer than {MAX_SEED_LENGTH} bytes: {len(seed)}")
    address, bump = Pubkey.find_program_address(list(seeds), Pubkey(program_id))
    return bytes(address), bump


def find_program_address(seeds: Sequence[bytes], program_id) -> tuple[bytes, int]:
    """Returns (address, bump) for the first off-curve bump counting down from 255."""
    return _find(tuple(bytes(s) for s in seeds), to_pubkey_bytes(program_id))


def player_ledger_address(player, program_id) -> tuple[bytes, int]:
    return find_program_address([PLAYER_SEED, to_pubkey_bytes(player)], program_id)


def game_state_address(program_id) -> tuple[bytes, int]:
    return find_program_address([GAME_STATE_SEED], program_id)


def pot_vault_address(program_id) -> tuple[bytes, int]:
    return find_program_address([POT_VAULT_SEED], program_id)


def describe_addresses(program_id, player=None) -> dict:
    """Base58 view of the derived addresses, for tooling and logs."""
    out = {
        "game_state": pubkey_to_str(game_state_address(program_id)[0]),
        "pot_vault": pubkey_to_str(pot_vault_address(program_id)[0]),
    }
    if player is not None:
        out["player"] = pubkey_to_str(player_ledger_address(player, program_id)[0])
    return out
