"""
Monster tiers selected by pot size.

Bands are half-open [min_pot, max_pot) in native units and partition
[0, inf). Evolution-only tiers never match a pot and are reachable solely
by name, which is how the vault orchestrator looks up crack chances.
"""
import math
from dataclasses import dataclass, asdict
from typing import Iterable, Optional, Sequence

from .config import LAMPORTS_PER_SOL
from .errors import InvalidMonsterType


@dataclass(frozen=True)
class MonsterTier:
    tier: int
    name: str
    min_pot: float
    max_pot: float
    hp: int
    attack_power: int
    defense_multiplier: float
    crack_chance: int  # percent, 0-100; used only by the vault roll
    sprite: str

    def contains(self, pot: float) -> bool:
        return self.min_pot <= pot < self.max_pot

    def to_dict(self) -> dict:
        """Camel-cased view served to front-end collaborators."""
        d = asdict(self)
        return {
            "tier": d["tier"],
            "name": d["name"],
            "minPot": d["min_pot"] if math.isfinite(d["min_pot"]) else None,
            "maxPot": d["max_pot"] if math.isfinite(d["max_pot"]) else None,
            "hp": d["hp"],
            "attackPower": d["attack_power"],
            "defenseMultiplier": d["defense_multiplier"],
            "vaultCrackChance": d["crack_chance"],
            "sprite": d["sprite"],
        }


# Deployed table. Werebear is evolution-only: reached by defeating both
# Werewolf phases, never spawned by pot size.
MONSTER_TIERS = (
    MonsterTier(1, "Orc", 0.0, 0.01, 80, 15, 0.9, 1, "orc"),
    MonsterTier(2, "Armored Orc", 0.01, 0.02, 100, 18, 0.9, 11, "armored_orc"),
    MonsterTier(3, "Elite Orc", 0.02, 0.03, 130, 28, 0.8, 1, "elite_orc"),
    MonsterTier(4, "Orc Rider", 0.03, 0.04, 170, 35, 0.75, 1, "orc_rider"),
    MonsterTier(5, "Werewolf", 0.04, math.inf, 100, 45, 0.7, 0, "werewolf"),
)

EVOLUTION_TIERS = (
    MonsterTier(6, "Werebear", math.inf, math.inf, 100, 55, 0.65, 95, "werebear"),
)


class TierResolver:
    """
    Pure lookup over a static ordered table. The result depends only on
    the input value, never on call time, caller or prior calls.
    """

    def __init__(self, bands: Sequence[MonsterTier] = MONSTER_TIERS,
                 evolution: Iterable[MonsterTier] = EVOLUTION_TIERS):
        self.bands = tuple(bands)
        self.evolution = tuple(evolution)
        self._validate()
        self._by_name = {t.name: t for t in self.bands + self.evolution}

    def _validate(self):
        if not self.bands:
            raise ValueError("Tier table must contain at least one band")
        if self.bands[0].min_pot != 0:
            raise ValueError("First band must start at 0")
        if not math.isinf(self.bands[-1].max_pot):
            raise ValueError("Last band must be open-ended")
        for lower, upper in zip(self.bands, self.bands[1:]):
            if lower.max_pot != upper.min_pot:
                raise ValueError(f"Gap or overlap between {lower.name} and {upper.name}")
        names = [t.name for t in self.bands + self.evolution]
        if len(names) != len(set(names)):
            raise ValueError("Monster names must be unique")
        for t in self.bands + self.evolution:
            if not 0 <= t.crack_chance <= 100:
                raise ValueError(f"{t.name}: crack chance {t.crack_chance} outside 0-100")
            if t.min_pot > t.max_pot:
                raise ValueError(f"{t.name}: min_pot exceeds max_pot")

    def resolve(self, pot: float) -> MonsterTier:
        """Monster for a pot in native units."""
        if math.isnan(pot) or pot < 0:
            raise ValueError(f"Pot must be a non-negative number, got {pot}")
        for band in self.bands:
            if band.contains(pot):
                return band
        return self.bands[-1]

    def resolve_lamports(self, lamports: int) -> MonsterTier:
        return self.resolve(lamports / LAMPORTS_PER_SOL)

    def by_name(self, name: str) -> MonsterTier:
        tier = self._by_name.get(name)
        if tier is None:
            raise InvalidMonsterType(name)
        return tier

    def crack_chance_for(self, name: str) -> int:
        return self.by_name(name).crack_chance

    def find(self, name: str) -> Optional[MonsterTier]:
        return self._by_name.get(name)


default_resolver = TierResolver()


def get_monster_by_pot_size(pot_in_sol: float) -> MonsterTier:
    return default_resolver.resolve(pot_in_sol)
