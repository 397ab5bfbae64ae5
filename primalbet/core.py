"""
Core data structures: decoded ledger accounts and transaction assembly.
"""
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import Message
from solders.transaction import Transaction

from .crypto import Keypair, pubkey_to_str, to_pubkey, to_pubkey_bytes


class PaymentRail(IntEnum):
    """How an entry was paid, as stored in the ledger's last-payment byte."""
    WALLET = 0
    LEDGER = 1

    @property
    def label(self) -> str:
        return "wallet" if self is PaymentRail.WALLET else "ledger"

    @classmethod
    def parse(cls, value) -> 'PaymentRail':
        if isinstance(value, PaymentRail):
            return value
        if isinstance(value, int):
            return cls(value)
        normalized = str(value).strip().lower()
        if normalized in ("wallet", "0"):
            return cls.WALLET
        if normalized in ("ledger", "pda", "gasless", "1"):
            return cls.LEDGER
        raise ValueError(f"Unknown payment rail: {value!r}")


@dataclass(frozen=True)
class LastWinner:
    wallet: str
    amount: int
    timestamp: int

    def to_dict(self) -> dict:
        return {"wallet": self.wallet, "amount": self.amount, "timestamp": self.timestamp}


@dataclass(frozen=True)
class GameState:
    current_pot: int = 0
    total_entries: int = 0
    last_winner: Optional[LastWinner] = None
    initialized: bool = False

    @classmethod
    def from_account(cls, values: Optional[dict]) -> 'GameState':
        """Zeroed defaults when the account is absent."""
        if values is None:
            return cls()
        lw = values.get("last_winner")
        last_winner = None
        if lw is not None:
            last_winner = LastWinner(
                wallet=pubkey_to_str(lw["wallet"]),
                amount=lw["amount"],
                timestamp=lw["timestamp"],
            )
        return cls(
            current_pot=values["current_pot"],
            total_entries=values["total_entries"],
            last_winner=last_winner,
            initialized=True,
        )

    def to_account(self) -> dict:
        lw = None
        if self.last_winner is not None:
            lw = {
                "wallet": to_pubkey_bytes(self.last_winner.wallet),
                "amount": self.last_winner.amount,
                "timestamp": self.last_winner.timestamp,
            }
        return {"current_pot": self.current_pot, "total_entries": self.total_entries, "last_winner": lw}

    def to_dict(self) -> dict:
        return {
            "currentPot": self.current_pot,
            "totalEntries": self.total_entries,
            "lastWinner": self.last_winner.to_dict() if self.last_winner else None,
        }


@dataclass(frozen=True)
class PlayerLedger:
    wallet: str
    balance: int = 0
    total_combats: int = 0
    victories: int = 0
    total_winnings: int = 0
    last_combat: int = 0
    last_payment_method: PaymentRail = PaymentRail.WALLET

    @classmethod
    def from_account(cls, values: dict) -> 'PlayerLedger':
        method = values.get("last_payment_method", 0)
        try:
            rail = PaymentRail(method)
        except ValueError:
            # Unknown byte values are treated as the wallet rail
            rail = PaymentRail.WALLET
        return cls(
            wallet=pubkey_to_str(values["wallet"]),
            balance=values["balance"],
            total_combats=values["total_combats"],
            victories=values["victories"],
            total_winnings=values["total_winnings"],
            last_combat=values["last_combat"],
            last_payment_method=rail,
        )

    def to_account(self) -> dict:
        return {
            "wallet": to_pubkey_bytes(self.wallet),
            "balance": self.balance,
            "total_combats": self.total_combats,
            "victories": self.victories,
            "total_winnings": self.total_winnings,
            "last_combat": self.last_combat,
            "last_payment_method": int(self.last_payment_method),
        }

    def to_dict(self) -> dict:
        return {
            "wallet": self.wallet,
            "balance": self.balance,
            "totalCombats": self.total_combats,
            "victories": self.victories,
            "totalWinnings": self.total_winnings,
            "lastCombat": self.last_combat,
            "lastPaymentMethod": int(self.last_payment_method),
            "paymentMethodName": self.last_payment_method.label,
        }


@dataclass(frozen=True)
class PaymentOptions:
    can_pay_from_wallet: bool = False
    can_pay_from_ledger: bool = False
    wallet_balance: int = 0
    ledger_balance: int = 0
    last_rail_used: PaymentRail = PaymentRail.WALLET
    recommended_rail: PaymentRail = PaymentRail.WALLET

    def to_dict(self) -> dict:
        return {
            "canPayFromWallet": self.can_pay_from_wallet,
            "canPayFromLedger": self.can_pay_from_ledger,
            "walletBalance": self.wallet_balance,
            "ledgerBalance": self.ledger_balance,
            "lastRailUsed": self.last_rail_used.label,
            "recommendedRail": self.recommended_rail.label,
        }


# ==============================================================================
# TRANSACTIONS
# ==============================================================================

def account(pubkey, is_signer: bool = False, is_writable: bool = False) -> AccountMeta:
    return AccountMeta(to_pubkey(pubkey), is_signer, is_writable)


def instruction(program_id, accounts, data: bytes) -> Instruction:
    return Instruction(to_pubkey(program_id), bytes(data), list(accounts))


def build_transaction(instructions: list[Instruction], fee_payer: Keypair,
                      recent_blockhash, *signers: Keypair) -> Transaction:
    """
    Compiles a legacy message paid by fee_payer and signs it with the fee
    payer plus any extra signers. Every required signer must be present.
    """
    if isinstance(recent_blockhash, str):
        recent_blockhash = Hash.from_string(recent_blockhash)
    message = Message.new_with_blockhash(list(instructions), fee_payer.pubkey, recent_blockhash)
    required = message.account_keys[:message.header.num_required_signatures]

    keypairs = {}
    for kp in (fee_payer, *signers):
        if kp.pubkey not in required:
            raise ValueError(f"{kp.address} is not a required signer")
        keypairs[kp.address] = kp.signer
    if len(keypairs) != len(required):
        raise ValueError("Transaction is missing required signatures")
    return Transaction(list(keypairs.values()), message, recent_blockhash)
