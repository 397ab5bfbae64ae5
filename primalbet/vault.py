"""
Vault crack orchestration.

One attempt reads the pot once, looks up the crack chance of the monster
the player declares they fought, asks the fairness oracle for a roll in
[0, 100) and claims the pot only when roll < crack chance. The crack
chance never follows the live pot: a pot that grew since the fight does
not change the odds of the fight already won.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .config import LAMPORTS_PER_SOL
from .crypto import to_pubkey_bytes
from .economy import EconomyClient
from .errors import OracleUnavailable, PrimalBetError, SettlementMismatch
from .monsters import TierResolver, default_resolver
from .oracle import FairnessOracle
from .session import validate_session_id

logger = logging.getLogger(__name__)

ROLL_MIN = 0
ROLL_MAX = 100


@dataclass
class VaultAttemptResult:
    success: bool
    roll: int
    crack_chance: int
    message: str
    proof: Any = field(default_factory=dict)
    prize_amount: Optional[int] = None
    claim_reference: Optional[str] = None
    prize_destination: Optional[dict] = None
    settlement_failed: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        d = {
            "success": self.success,
            "roll": self.roll,
            "crackChance": self.crack_chance,
            "message": self.message,
            "vrfProof": self.proof,
        }
        if self.prize_amount is not None:
            d["prizeAmount"] = self.prize_amount
        if self.claim_reference is not None:
            d["claimTx"] = self.claim_reference
        if self.prize_destination is not None:
            d["prizeDestination"] = self.prize_destination
        if self.settlement_failed:
            d["settlementFailed"] = True
            d["error"] = self.error or "Claim transaction failed"
        return d


class VaultCrackOrchestrator:
    def __init__(self, economy: EconomyClient, oracle: FairnessOracle,
                 resolver: TierResolver = default_resolver,
                 router=None, monitor=None):
        self.economy = economy
        self.oracle = oracle
        self.resolver = resolver
        self.router = router
        self.monitor = monitor

    def _record(self, outcome: str):
        if self.monitor:
            self.monitor.record_vault_attempt(outcome)

    async def attempt(self, wallet: str, session_id: str, monster_type: str) -> VaultAttemptResult:
        """
        Raises InvalidSession or InvalidMonsterType for bad input and
        OracleUnavailable when no roll could be obtained. A winning roll
        whose claim fails is still reported as a win, flagged for
        reconciliation.
        """
        to_pubkey_bytes(wallet)
        validate_session_id(session_id)
        crack_chance = self.resolver.crack_chance_for(monster_type)

        # Captured once; this is the prize even if the pot grows meanwhile
        pot = await self.economy.get_pot()

        logger.info(f"Player {wallet} attempting vault crack: fought {monster_type}, "
                    f"crack chance {crack_chance}%, pot {pot / LAMPORTS_PER_SOL:.4f} SOL")

        try:
            outcome = await self.oracle.roll(ROLL_MIN, ROLL_MAX, context={
                "playerWallet": wallet,
                "combatId": session_id,
            })
        except OracleUnavailable:
            self._record("oracle_error")
            raise

        if outcome.roll >= crack_chance:
            self._record("loss")
            return VaultAttemptResult(
                success=False,
                roll=outcome.roll,
                crack_chance=crack_chance,
                message=f"Vault resisted! You rolled {outcome.roll}, needed less than {crack_chance}",
                proof=outcome.proof,
            )

        try:
            claim_reference = await self.economy.claim_prize(wallet, outcome.proof)
        except Exception as e:  # any settlement failure leaves the roll a win
            mismatch = SettlementMismatch(wallet, pot, e)
            logger.error(f"{mismatch}; roll {outcome.roll} < {crack_chance}, proof: {outcome.proof}")
            self._record("settlement_failed")
            return VaultAttemptResult(
                success=True,
                roll=outcome.roll,
                crack_chance=crack_chance,
                message="Vault cracked but claim failed. Please contact support.",
                proof=outcome.proof,
                settlement_failed=True,
                error=str(e),
            )

        self._record("win")
        destination = None
        if self.router is not None:
            try:
                destination = await self.router.prize_destination(wallet)
            except PrimalBetError as e:
                logger.warning(f"Could not read prize destination for {wallet}: {e}")

        return VaultAttemptResult(
            success=True,
            roll=outcome.roll,
            crack_chance=crack_chance,
            message=f"Vault cracked! {pot / LAMPORTS_PER_SOL:.4f} SOL transferred!",
            proof=outcome.proof,
            prize_amount=pot,
            claim_reference=claim_reference,
            prize_destination=destination,
        )
