"""
Payment rail selection for combat entries and prize routing.

The rail of an entry is recorded on-chain by which instruction variant is
submitted; the claim instruction later pays a ledger-rail winner into the
ledger and a wallet-rail winner straight to the wallet. The router's job is
to submit the right variant and to report where a prize will land.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Union

from solders.instruction import Instruction

from .core import PaymentOptions, PaymentRail
from .crypto import Keypair, pubkey_to_str, to_pubkey_bytes
from .economy import EconomyClient
from .errors import InsufficientBalance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntryReceipt:
    rail: PaymentRail
    signature: str
    gasless: bool

    def to_dict(self) -> dict:
        return {
            "success": True,
            "txSignature": self.signature,
            "paymentMethod": self.rail.label,
            "gasless": self.gasless,
        }


class PaymentRouter:
    def __init__(self, economy: EconomyClient, monitor=None):
        self.economy = economy
        self.monitor = monitor

    async def choose_rail(self, identity,
                          requested: Union[PaymentRail, str, None] = None) -> tuple[PaymentRail, PaymentOptions]:
        """
        Explicit choice when given, the recommended rail otherwise. Either
        way the chosen rail must be able to cover the entry fee.
        """
        options = await self.economy.get_payment_options(identity)
        fee = self.economy.entry_fee

        if requested is None:
            rail = options.recommended_rail
        else:
            rail = PaymentRail.parse(requested)

        if rail is PaymentRail.LEDGER and not options.can_pay_from_ledger:
            raise InsufficientBalance(fee, options.ledger_balance)
        if rail is PaymentRail.WALLET and not options.can_pay_from_wallet:
            raise InsufficientBalance(fee, options.wallet_balance)
        return rail, options

    def build_entry_instruction(self, identity, rail: Union[PaymentRail, str]) -> Instruction:
        """Unsigned, wallet-signed entry instruction for the player's own wallet to submit."""
        rail = PaymentRail.parse(rail)
        if rail is PaymentRail.LEDGER:
            return self.economy.build_enter_combat_with_ledger_instruction(identity)
        return self.economy.build_enter_combat_instruction(identity)

    async def enter(self, identity, rail: Union[PaymentRail, str, None] = None,
                    wallet_signer: Optional[Keypair] = None) -> EntryReceipt:
        """
        Submits an entry on the chosen rail. A ledger entry without a wallet
        signer goes through the backend signer (gasless).
        """
        player = to_pubkey_bytes(identity)
        if wallet_signer is not None and wallet_signer.public_key != player:
            raise ValueError("Wallet signer does not match the player identity")

        rail, _ = await self.choose_rail(player, rail)

        if rail is PaymentRail.WALLET:
            if wallet_signer is None:
                raise ValueError("Wallet rail entries must be signed by the player's wallet")
            signature = await self.economy.enter_combat(wallet_signer)
            gasless = False
        elif wallet_signer is not None:
            signature = await self.economy.enter_combat_with_ledger(wallet_signer)
            gasless = False
        else:
            signature = await self.economy.enter_combat_gasless(player)
            gasless = True

        if self.monitor:
            self.monitor.record_entry(rail.label)
        logger.info(f"{pubkey_to_str(player)} entered on the {rail.label} rail (gasless={gasless})")
        return EntryReceipt(rail=rail, signature=signature, gasless=gasless)

    async def enter_gasless(self, identity) -> EntryReceipt:
        return await self.enter(identity, PaymentRail.LEDGER)

    async def last_rail(self, identity) -> PaymentRail:
        ledger = await self.economy.get_player_ledger(identity)
        return ledger.last_payment_method if ledger else PaymentRail.WALLET

    async def prize_destination(self, identity) -> dict:
        """Where a claim for this player settles, following the last-used rail."""
        rail = await self.last_rail(identity)
        if rail is PaymentRail.LEDGER:
            address = pubkey_to_str(self.economy.player_ledger_address(identity))
        else:
            address = identity if isinstance(identity, str) else pubkey_to_str(identity)
        return {"rail": rail.label, "address": address}
