# primalbet/test_monsters.py
import math

import pytest
from hypothesis import given, strategies as st

from primalbet.errors import InvalidMonsterType
from primalbet.monsters import (
    LAMPORTS_PER_SOL,
    MONSTER_TIERS,
    MonsterTier,
    TierResolver,
    default_resolver,
    get_monster_by_pot_size,
)


def tier(n, name, lo, hi, crack):
    return MonsterTier(n, name, lo, hi, 100, 10, 1.0, crack, name.lower())


@pytest.fixture
def custom_resolver():
    return TierResolver([
        tier(1, "Skeleton", 0.0, 0.3, 10),
        tier(2, "Goblin", 0.3, 0.8, 30),
        tier(3, "Dragon", 0.8, math.inf, 5),
    ], evolution=[])


class TestResolution:

    def test_scenario_band_hit(self, custom_resolver):
        monster = custom_resolver.resolve(0.5)
        assert monster.name == "Goblin"
        assert monster.crack_chance == 30

    def test_upper_bound_goes_to_next_band(self, custom_resolver):
        assert custom_resolver.resolve(0.3).name == "Goblin"
        assert custom_resolver.resolve(0.8).name == "Dragon"

    def test_lower_bound_inclusive(self, custom_resolver):
        assert custom_resolver.resolve(0.0).name == "Skeleton"

    def test_huge_pot_uses_open_band(self, custom_resolver):
        assert custom_resolver.resolve(1e12).name == "Dragon"

    def test_deployed_table(self):
        assert get_monster_by_pot_size(0.0).name == "Orc"
        assert get_monster_by_pot_size(0.015).name == "Armored Orc"
        assert get_monster_by_pot_size(0.04).name == "Werewolf"

    def test_lamports(self):
        assert default_resolver.resolve_lamports(LAMPORTS_PER_SOL // 100).name == "Armored Orc"

    @pytest.mark.parametrize("pot", [-0.1, float("nan")])
    def test_invalid_pot(self, pot):
        with pytest.raises(ValueError):
            default_resolver.resolve(pot)


@given(st.floats(min_value=0, max_value=1e9, allow_nan=False))
def test_bands_partition_pot_space(pot):
    matches = [b for b in MONSTER_TIERS if b.contains(pot)]
    assert len(matches) == 1
    assert default_resolver.resolve(pot) == matches[0]
    # Same input, same answer
    assert default_resolver.resolve(pot) == default_resolver.resolve(pot)


class TestLookupByName:

    def test_crack_chance_by_name(self):
        assert default_resolver.crack_chance_for("Armored Orc") == 11

    def test_evolution_only_tier(self):
        werebear = default_resolver.by_name("Werebear")
        assert werebear.crack_chance == 95
        # never selected by pot size
        assert all(default_resolver.resolve(p).name != "Werebear" for p in (0, 0.05, 1e6))

    def test_unknown_name(self):
        with pytest.raises(InvalidMonsterType):
            default_resolver.by_name("Dragon Lord")

    def test_find_returns_none(self):
        assert default_resolver.find("nobody") is None

    def test_to_dict_hides_infinite_bounds(self):
        d = default_resolver.by_name("Werewolf").to_dict()
        assert d["maxPot"] is None
        assert d["vaultCrackChance"] == 0


class TestTableValidation:

    def test_gap_rejected(self):
        with pytest.raises(ValueError):
            TierResolver([tier(1, "A", 0, 1, 1), tier(2, "B", 2, math.inf, 1)], [])

    def test_must_start_at_zero(self):
        with pytest.raises(ValueError):
            TierResolver([tier(1, "A", 0.1, math.inf, 1)], [])

    def test_must_be_open_ended(self):
        with pytest.raises(ValueError):
            TierResolver([tier(1, "A", 0, 1, 1)], [])

    def test_crack_chance_range(self):
        with pytest.raises(ValueError):
            TierResolver([tier(1, "A", 0, math.inf, 101)], [])

    def test_duplicate_names(self):
        with pytest.raises(ValueError):
            TierResolver([tier(1, "A", 0, 1, 1), tier(2, "A", 1, math.inf, 1)], [])
