"""
Error taxonomy for the economy client and the vault orchestration layer.
"""
from typing import Optional


class PrimalBetError(Exception):
    """Base class for every error raised by this package."""
    pass


class ConfigurationError(PrimalBetError):
    """Bad or missing startup configuration. Fatal."""
    pass


class InvalidPrivateKeyLength(ConfigurationError):
    """Backend signer key material is not a 64-byte ed25519 secret key."""

    def __init__(self, length: int):
        super().__init__(f"Invalid private key length: {length}, expected 64")
        self.length = length


class NotInitialized(PrimalBetError):
    """The requested ledger account does not exist yet."""
    pass


class TransportError(PrimalBetError):
    """RPC or network failure. Safe to retry."""
    pass


class InstructionRejected(PrimalBetError):
    """The serving program declined an instruction."""

    def __init__(self, message: str, logs: Optional[list] = None):
        super().__init__(message)
        self.logs = list(logs or [])

    def __str__(self):
        base = super().__str__()
        if not self.logs:
            return base
        return base + "\n" + "\n".join(self.logs)


class InsufficientBalance(PrimalBetError):
    """A ledger or wallet balance does not cover the requested amount."""

    def __init__(self, requested: int, available: int):
        super().__init__(f"Requested {requested} lamports, only {available} available")
        self.requested = requested
        self.available = available


class InvalidMonsterType(PrimalBetError):
    """The declared monster name is not in the tier table."""

    def __init__(self, name: str):
        super().__init__(f"Invalid monster type: {name!r}")
        self.name = name


class InvalidSession(PrimalBetError):
    """A combat session id failed the shape check."""
    pass


class OracleUnavailable(PrimalBetError):
    """The fairness oracle could not produce a roll. Never a loss."""
    pass


class SettlementMismatch(PrimalBetError):
    """A winning roll whose prize claim did not settle."""

    def __init__(self, winner: str, prize_amount: int, cause: Exception):
        super().__init__(f"Claim for {winner} ({prize_amount} lamports) failed: {cause}")
        self.winner = winner
        self.prize_amount = prize_amount
        self.cause = cause


class SeedError(PrimalBetError):
    """Address derivation was given unusable seeds."""
    pass
