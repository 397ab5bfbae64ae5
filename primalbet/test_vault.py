# primalbet/test_vault.py
import math

import pytest
from unittest.mock import AsyncMock, MagicMock

from primalbet.crypto import Keypair
from primalbet.economy import EconomyClient
from primalbet.errors import InvalidMonsterType, InvalidSession, OracleUnavailable, TransportError
from primalbet.monsters import LAMPORTS_PER_SOL, MonsterTier, TierResolver
from primalbet.oracle import FairnessOracle, OracleRoll
from primalbet.session import CombatSession, new_session_id, validate_session_id
from primalbet.vault import VaultCrackOrchestrator

PROOF = {"txHash": "0xfeed", "vrfSeed": "s"}


def tier(n, name, lo, hi, crack):
    return MonsterTier(n, name, lo, hi, 100, 10, 1.0, crack, name.lower())


@pytest.fixture
def resolver():
    return TierResolver([
        tier(1, "Skeleton", 0.0, 0.3, 30),
        tier(2, "Goblin", 0.3, 0.8, 10),
        tier(3, "Dragon Lord", 0.8, math.inf, 1),
    ], evolution=[])


@pytest.fixture
def economy():
    economy = MagicMock(spec=EconomyClient)
    economy.get_pot = AsyncMock(return_value=int(0.2 * LAMPORTS_PER_SOL))
    economy.claim_prize = AsyncMock(return_value="claimSig")
    return economy


@pytest.fixture
def oracle():
    oracle = MagicMock(spec=FairnessOracle)
    oracle.roll = AsyncMock(return_value=OracleRoll(roll=10, proof=PROOF))
    return oracle


@pytest.fixture
def monitor():
    return MagicMock()


@pytest.fixture
def vault(economy, oracle, resolver, monitor):
    return VaultCrackOrchestrator(economy, oracle, resolver, monitor=monitor)


@pytest.fixture
def wallet():
    return Keypair.generate().address


@pytest.fixture
def session_id():
    return new_session_id()


class TestScenarios:

    @pytest.mark.asyncio
    async def test_winning_roll_claims_captured_pot(self, vault, economy, oracle, wallet, session_id, monitor):
        captured = int(0.2 * LAMPORTS_PER_SOL)
        result = await vault.attempt(wallet, session_id, "Skeleton")

        assert result.success is True
        assert result.roll == 10
        assert result.crack_chance == 30
        assert result.prize_amount == captured
        assert result.claim_reference == "claimSig"
        economy.claim_prize.assert_awaited_once_with(wallet, PROOF)
        oracle.roll.assert_awaited_once()
        assert oracle.roll.call_args.args[:2] == (0, 100)
        monitor.record_vault_attempt.assert_called_once_with("win")

    @pytest.mark.asyncio
    async def test_losing_roll_never_claims(self, vault, economy, oracle, wallet, session_id):
        oracle.roll.return_value = OracleRoll(roll=75, proof=PROOF)
        result = await vault.attempt(wallet, session_id, "Skeleton")

        assert result.success is False
        assert result.prize_amount is None
        assert "prizeAmount" not in result.to_dict()
        assert result.to_dict()["vrfProof"] == PROOF
        economy.claim_prize.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_roll_equal_to_chance_loses(self, vault, oracle, wallet, session_id):
        oracle.roll.return_value = OracleRoll(roll=30, proof=PROOF)
        assert (await vault.attempt(wallet, session_id, "Skeleton")).success is False

    @pytest.mark.asyncio
    async def test_failed_claim_is_still_a_win(self, vault, economy, wallet, session_id, monitor):
        economy.claim_prize.side_effect = TransportError("rpc down")
        result = await vault.attempt(wallet, session_id, "Skeleton")

        assert result.success is True
        assert result.settlement_failed is True
        assert "claim failed" in result.message
        body = result.to_dict()
        assert body["success"] is True
        assert body["settlementFailed"] is True
        assert body["vrfProof"] == PROOF
        monitor.record_vault_attempt.assert_called_once_with("settlement_failed")

    @pytest.mark.asyncio
    async def test_unexpected_claim_error_is_still_a_win(self, vault, economy, wallet, session_id, monitor):
        economy.claim_prize.side_effect = RuntimeError("signer exploded")
        result = await vault.attempt(wallet, session_id, "Skeleton")

        assert result.success is True
        assert result.settlement_failed is True
        assert result.error == "signer exploded"
        assert result.to_dict()["vrfProof"] == PROOF
        monitor.record_vault_attempt.assert_called_once_with("settlement_failed")

    @pytest.mark.asyncio
    async def test_string_proof_reaches_claim_and_result(self, vault, economy, oracle, wallet, session_id):
        oracle.roll.return_value = OracleRoll(roll=1, proof="vrf-proof-bytes-abc")
        result = await vault.attempt(wallet, session_id, "Skeleton")
        economy.claim_prize.assert_awaited_once_with(wallet, "vrf-proof-bytes-abc")
        assert result.to_dict()["vrfProof"] == "vrf-proof-bytes-abc"


class TestFairness:

    @pytest.mark.asyncio
    async def test_declared_monster_wins_over_grown_pot(self, vault, economy, oracle, resolver, wallet, session_id):
        # Fought a Skeleton while the pot was small
        combat = CombatSession(wallet, resolver.resolve(0.1).name, session_id)
        assert combat.monster_type == "Skeleton"

        # Others entered meanwhile; the live tier is now Dragon Lord
        economy.get_pot.return_value = 5 * LAMPORTS_PER_SOL
        assert resolver.resolve_lamports(economy.get_pot.return_value).name == "Dragon Lord"

        oracle.roll.return_value = OracleRoll(roll=20, proof=PROOF)
        result = await vault.attempt(combat.wallet, combat.session_id, combat.monster_type)
        assert result.crack_chance == 30
        assert result.success is True

        second = await vault.attempt(combat.wallet, new_session_id(), "Skeleton")
        assert second.crack_chance == 30

    @pytest.mark.asyncio
    async def test_pot_read_once_before_roll(self, vault, economy, oracle, wallet, session_id):
        calls = []
        economy.get_pot.side_effect = lambda: calls.append("pot") or 1000

        async def roll(*args, **kwargs):
            calls.append("roll")
            economy.get_pot.side_effect = lambda: 999999
            return OracleRoll(roll=0, proof=PROOF)

        oracle.roll.side_effect = roll
        result = await vault.attempt(wallet, session_id, "Goblin")
        assert calls == ["pot", "roll"]
        assert result.prize_amount == 1000


class TestFailures:

    @pytest.mark.asyncio
    async def test_unknown_monster(self, vault, oracle, wallet, session_id):
        with pytest.raises(InvalidMonsterType):
            await vault.attempt(wallet, session_id, "Werebear")
        oracle.roll.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_oracle_unavailable_is_not_a_loss(self, vault, economy, oracle, wallet, session_id, monitor):
        oracle.roll.side_effect = OracleUnavailable("down")
        with pytest.raises(OracleUnavailable):
            await vault.attempt(wallet, session_id, "Skeleton")
        economy.claim_prize.assert_not_awaited()
        monitor.record_vault_attempt.assert_called_once_with("oracle_error")

    @pytest.mark.asyncio
    async def test_malformed_session(self, vault, wallet):
        with pytest.raises(InvalidSession):
            await vault.attempt(wallet, "session-1", "Skeleton")

    @pytest.mark.asyncio
    async def test_bad_wallet(self, vault, session_id):
        with pytest.raises(ValueError):
            await vault.attempt("bogus!", session_id, "Skeleton")


class TestSessions:

    def test_session_id_shape(self):
        sid = new_session_id(now_ms=1700000000000)
        assert sid.startswith("combat_1700000000000_")
        assert validate_session_id(sid) == sid

    @pytest.mark.parametrize("sid", [None, "", "combat_x_abc", "combat_1700000000000_ABCDEFGHI", "fight_1700000000000_abcdefghi"])
    def test_rejected_ids(self, sid):
        with pytest.raises(InvalidSession):
            validate_session_id(sid)

    def test_session_needs_monster(self, wallet):
        with pytest.raises(InvalidSession):
            CombatSession(wallet, "")

    def test_session_to_dict(self, wallet):
        d = CombatSession(wallet, "Orc").to_dict()
        assert d["walletAddress"] == wallet
        assert d["monsterType"] == "Orc"
