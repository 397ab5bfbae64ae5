"""
Combat sessions correlate a victory with the vault attempt that follows it.

Sessions are not stored server-side. The id travels with the request and
is checked for shape only; the monster type declared alongside it is what
the crack chance is looked up from.
"""
import random
import re
import string
import time
from dataclasses import dataclass, field
from typing import Optional

from .crypto import to_pubkey_bytes
from .errors import InvalidSession

SESSION_PREFIX = "combat"
SESSION_ID_PATTERN = re.compile(r"^combat_\d{10,16}_[0-9a-z]{9}$")
_ALPHABET = string.digits + string.ascii_lowercase


def new_session_id(now_ms: Optional[int] = None, rng: Optional[random.Random] = None) -> str:
    """combat_<epoch millis>_<9 base36 chars>"""
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    rng = rng or random.SystemRandom()
    suffix = "".join(rng.choice(_ALPHABET) for _ in range(9))
    return f"{SESSION_PREFIX}_{now_ms}_{suffix}"


def validate_session_id(session_id) -> str:
    if not isinstance(session_id, str) or not SESSION_ID_PATTERN.match(session_id):
        raise InvalidSession(f"Malformed combat session id: {session_id!r}")
    return session_id


@dataclass(frozen=True)
class CombatSession:
    wallet: str
    monster_type: str
    session_id: str = field(default_factory=new_session_id)
    started_at: float = field(default_factory=time.time)

    def __post_init__(self):
        try:
            to_pubkey_bytes(self.wallet)
        except ValueError as e:
            raise InvalidSession(f"Invalid wallet for combat session: {e}") from e
        validate_session_id(self.session_id)
        if not self.monster_type:
            raise InvalidSession("Combat session needs a monster type")

    def to_dict(self) -> dict:
        return {
            "walletAddress": self.wallet,
            "monsterType": self.monster_type,
            "sessionId": self.session_id,
            "startTime": int(self.started_at * 1000),
        }
