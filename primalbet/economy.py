"""
Economy client: reads and writes against the ledger program.

Reads decode fixed-layout accounts and fall back to empty state when an
account does not exist yet. Writes build an instruction, sign it with the
wallet or the backend signer, submit it and wait for confirmation before
returning the transaction reference.
"""
import asyncio
import json
import logging
from typing import Any, Optional

from solders.instruction import Instruction

from . import codec
from .config import Config, LAMPORTS_PER_SOL
from .core import (
    GameState,
    PaymentOptions,
    PaymentRail,
    PlayerLedger,
    account,
    build_transaction,
    instruction,
)
from .crypto import SYSTEM_PROGRAM_ID, Keypair, pubkey_to_str, to_pubkey_bytes
from .errors import ConfigurationError, InsufficientBalance
from .pda import game_state_address, player_ledger_address, pot_vault_address
from .rpc import RpcClient

logger = logging.getLogger(__name__)

ENTRY_FEE = LAMPORTS_PER_SOL // 100             # 0.01 native
MIN_BACKEND_BALANCE = LAMPORTS_PER_SOL // 100   # floor for the gas-paying signer


def serialize_proof(proof: Any) -> bytes:
    """Canonical byte form of a fairness proof for the claim instruction."""
    if proof is None:
        return b""
    if isinstance(proof, bytes):
        return proof
    if isinstance(proof, str):
        return proof.encode('utf-8')
    return json.dumps(proof, sort_keys=True, separators=(",", ":"), default=str).encode('utf-8')


class EconomyClient:
    def __init__(self, rpc: RpcClient, program_id,
                 backend_signer: Optional[Keypair] = None,
                 treasury=None,
                 entry_fee: int = ENTRY_FEE,
                 min_backend_balance: int = MIN_BACKEND_BALANCE,
                 namespace: str = codec.DEFAULT_NAMESPACE,
                 confirm_timeout: float = 60.0,
                 poll_interval: float = 0.5):
        try:
            self.program_id = to_pubkey_bytes(program_id)
        except ValueError as e:
            raise ConfigurationError(f"Invalid program id: {e}") from e
        try:
            self.treasury = to_pubkey_bytes(treasury) if treasury else None
        except ValueError as e:
            raise ConfigurationError(f"Invalid treasury address: {e}") from e

        self.rpc = rpc
        self.backend_signer = backend_signer
        self.entry_fee = entry_fee
        self.min_backend_balance = min_backend_balance
        self.namespace = namespace
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval

        self.game_state_address, _ = game_state_address(self.program_id)
        self.pot_vault_address, _ = pot_vault_address(self.program_id)
        self.backend_balance_low = False

        self._layouts = {
            name: codec.InstructionLayout(layout.method_name, layout.args.fields, namespace)
            for name, layout in (
                ("enter_combat", codec.ENTER_COMBAT),
                ("enter_combat_with_pda", codec.ENTER_COMBAT_WITH_PDA),
                ("enter_combat_for_player", codec.ENTER_COMBAT_FOR_PLAYER),
                ("deposit_to_pda", codec.DEPOSIT_TO_PDA),
                ("withdraw_from_pda", codec.WITHDRAW_FROM_PDA),
                ("claim_prize_backend", codec.CLAIM_PRIZE_BACKEND),
            )
        }

        logger.info(f"Economy client for program {pubkey_to_str(self.program_id)}")

    @classmethod
    def from_config(cls, config: Config, rpc: Optional[RpcClient] = None,
                    backend_signer: Optional[Keypair] = None) -> 'EconomyClient':
        config.validate()
        rpc = rpc or RpcClient(config.rpc.url, config.rpc.commitment, config.rpc.timeout)
        if backend_signer is None:
            backend_signer = config.signer.load()
        return cls(
            rpc=rpc,
            program_id=config.program.program_id,
            backend_signer=backend_signer,
            treasury=config.program.treasury,
            entry_fee=config.program.entry_fee,
            min_backend_balance=config.program.min_backend_balance,
            namespace=config.program.namespace,
            confirm_timeout=config.rpc.confirm_timeout,
            poll_interval=config.rpc.poll_interval,
        )

    # ------------------------------------------------------------------ #
    # Addresses
    # ------------------------------------------------------------------ #
    def player_ledger_address(self, identity) -> bytes:
        return player_ledger_address(identity, self.program_id)[0]

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #
    async def get_game_state(self) -> GameState:
        """Full decode; zeroed defaults when the account does not exist."""
        info = await self.rpc.get_account_info(self.game_state_address)
        if info is None:
            logger.info("Game state not initialized yet")
            return GameState()
        return GameState.from_account(codec.GAME_STATE.decode(info.data))

    async def get_pot(self) -> int:
        """Current pot in lamports, 0 if the game state does not exist."""
        return (await self.get_game_state()).current_pot

    async def get_player_ledger(self, identity) -> Optional[PlayerLedger]:
        """None if the player has never played."""
        info = await self.rpc.get_account_info(self.player_ledger_address(identity))
        if info is None:
            return None
        values = codec.PLAYER_ACCOUNT.decode(info.data)
        if values is None:
            logger.warning(f"Player account for {_str(identity)} is shorter than the ledger layout")
            return None
        return PlayerLedger.from_account(values)

    async def get_wallet_balance(self, identity) -> int:
        return await self.rpc.get_balance(to_pubkey_bytes(identity))

    async def get_payment_options(self, identity) -> PaymentOptions:
        """
        Derived from the wallet balance, the ledger balance and the entry
        fee. Recommends the ledger rail whenever it covers the fee. Never
        raises: any failure yields an options object that cannot pay.
        """
        try:
            ledger, wallet_balance = await asyncio.gather(
                self.get_player_ledger(identity),
                self.get_wallet_balance(identity),
            )
        except Exception as e:  # never raises: any read failure means cannot pay
            logger.error(f"Error getting payment options for {_str(identity)}: {e}")
            return PaymentOptions()

        ledger_balance = ledger.balance if ledger else 0
        can_pay_from_ledger = ledger is not None and ledger_balance >= self.entry_fee
        return PaymentOptions(
            can_pay_from_wallet=wallet_balance >= self.entry_fee,
            can_pay_from_ledger=can_pay_from_ledger,
            wallet_balance=wallet_balance,
            ledger_balance=ledger_balance,
            last_rail_used=ledger.last_payment_method if ledger else PaymentRail.WALLET,
            recommended_rail=PaymentRail.LEDGER if can_pay_from_ledger else PaymentRail.WALLET,
        )

    # ------------------------------------------------------------------ #
    # Instruction builders
    # ------------------------------------------------------------------ #
    def _require_treasury(self) -> bytes:
        if self.treasury is None:
            raise ConfigurationError("Treasury address is required for entry instructions")
        return self.treasury

    def _entry_accounts(self, player: bytes, payer: bytes) -> tuple:
        return (
            account(self.player_ledger_address(player), is_writable=True),
            account(self.game_state_address, is_writable=True),
            account(self.pot_vault_address, is_writable=True),
            account(payer, is_signer=True, is_writable=True),
            account(self._require_treasury(), is_writable=True),
            account(SYSTEM_PROGRAM_ID),
        )

    def build_enter_combat_instruction(self, player) -> Instruction:
        """Wallet rail: the player signs and pays the entry fee from their wallet."""
        player = to_pubkey_bytes(player)
        data = self._layouts["enter_combat"].encode()
        return instruction(self.program_id, self._entry_accounts(player, player), data)

    def build_enter_combat_with_ledger_instruction(self, player) -> Instruction:
        """Ledger rail signed by the player's own wallet."""
        player = to_pubkey_bytes(player)
        data = self._layouts["enter_combat_with_pda"].encode()
        return instruction(self.program_id, self._entry_accounts(player, player), data)

    def build_enter_combat_for_player_instruction(self, player) -> Instruction:
        """Ledger rail submitted and paid for by the backend signer."""
        player = to_pubkey_bytes(player)
        signer = self._require_backend_signer()
        data = self._layouts["enter_combat_for_player"].encode(player=player)
        return instruction(self.program_id, self._entry_accounts(player, signer.public_key), data)

    def _ledger_transfer_accounts(self, player: bytes) -> tuple:
        return (
            account(self.player_ledger_address(player), is_writable=True),
            account(player, is_signer=True, is_writable=True),
            account(SYSTEM_PROGRAM_ID),
        )

    def build_deposit_instruction(self, player, amount: int) -> Instruction:
        if amount <= 0:
            raise ValueError("Deposit amount must be positive")
        player = to_pubkey_bytes(player)
        data = self._layouts["deposit_to_pda"].encode(amount=amount)
        return instruction(self.program_id, self._ledger_transfer_accounts(player), data)

    def build_withdraw_instruction(self, player, amount: int) -> Instruction:
        if amount <= 0:
            raise ValueError("Withdrawal amount must be positive")
        player = to_pubkey_bytes(player)
        data = self._layouts["withdraw_from_pda"].encode(amount=amount)
        return instruction(self.program_id, self._ledger_transfer_accounts(player), data)

    def build_claim_prize_instruction(self, winner, proof) -> Instruction:
        """Winner identity plus the length-prefixed serialized proof."""
        winner = to_pubkey_bytes(winner)
        signer = self._require_backend_signer()
        data = self._layouts["claim_prize_backend"].encode(winner=winner, vrf_proof=serialize_proof(proof))
        accounts = (
            account(self.game_state_address, is_writable=True),
            account(self.pot_vault_address, is_writable=True),
            account(self.player_ledger_address(winner), is_writable=True),
            account(winner, is_writable=True),
            account(signer.public_key, is_signer=True),
            account(SYSTEM_PROGRAM_ID),
        )
        return instruction(self.program_id, accounts, data)

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #
    def _require_backend_signer(self) -> Keypair:
        if self.backend_signer is None:
            raise ConfigurationError("Backend signer is not configured")
        if self.backend_balance_low:
            logger.warning(f"Backend signer {self.backend_signer.address} is below its operating balance")
        return self.backend_signer

    async def _submit(self, ix: Instruction, fee_payer: Keypair, *signers: Keypair) -> str:
        blockhash = await self.rpc.get_latest_blockhash()
        tx = build_transaction([ix], fee_payer, blockhash, *signers)
        signature = await self.rpc.send_transaction(bytes(tx))
        await self.rpc.confirm_transaction(signature, self.confirm_timeout, self.poll_interval)
        return signature

    async def enter_combat(self, wallet_signer: Keypair) -> str:
        """Wallet-signed entry; the player bears the network fee."""
        ix = self.build_enter_combat_instruction(wallet_signer.public_key)
        signature = await self._submit(ix, wallet_signer)
        logger.info(f"Combat entry (wallet) for {wallet_signer.address}: {signature}")
        return signature

    async def enter_combat_with_ledger(self, wallet_signer: Keypair) -> str:
        """Ledger-debited entry signed by the player's wallet."""
        ix = self.build_enter_combat_with_ledger_instruction(wallet_signer.public_key)
        signature = await self._submit(ix, wallet_signer)
        logger.info(f"Combat entry (ledger, wallet-signed) for {wallet_signer.address}: {signature}")
        return signature

    async def enter_combat_gasless(self, identity) -> str:
        """Backend-signed entry debiting the player's ledger balance."""
        ix = self.build_enter_combat_for_player_instruction(identity)
        signature = await self._submit(ix, self.backend_signer)
        logger.info(f"Gasless combat entry for {_str(identity)}: {signature}")
        return signature

    async def deposit_to_ledger(self, wallet_signer: Keypair, amount: int) -> str:
        ix = self.build_deposit_instruction(wallet_signer.public_key, amount)
        signature = await self._submit(ix, wallet_signer)
        logger.info(f"Deposited {amount} lamports to ledger of {wallet_signer.address}: {signature}")
        return signature

    async def withdraw_from_ledger(self, wallet_signer: Keypair, amount: int) -> str:
        """Rejected client-side when amount exceeds the current ledger balance."""
        if amount <= 0:
            raise ValueError("Withdrawal amount must be positive")
        ledger = await self.get_player_ledger(wallet_signer.public_key)
        available = ledger.balance if ledger else 0
        if amount > available:
            raise InsufficientBalance(amount, available)
        ix = self.build_withdraw_instruction(wallet_signer.public_key, amount)
        signature = await self._submit(ix, wallet_signer)
        logger.info(f"Withdrew {amount} lamports from ledger of {wallet_signer.address}: {signature}")
        return signature

    async def claim_prize(self, winner_identity, fairness_proof) -> str:
        """Backend-signed settlement of the whole pot to the winner."""
        ix = self.build_claim_prize_instruction(winner_identity, fairness_proof)
        signature = await self._submit(ix, self.backend_signer)
        logger.info(f"Prize claimed for {_str(winner_identity)}: {signature}")
        return signature

    # ------------------------------------------------------------------ #
    # Signer health and reconciliation
    # ------------------------------------------------------------------ #
    async def check_backend_balance(self) -> dict:
        """Spendable balance of the backend signer against its operating floor."""
        signer = self.backend_signer
        if signer is None:
            raise ConfigurationError("Backend signer is not configured")
        balance = await self.rpc.get_balance(signer.public_key)
        self.backend_balance_low = balance < self.min_backend_balance
        if self.backend_balance_low:
            logger.warning(f"Backend wallet low on funds! Balance: {balance / LAMPORTS_PER_SOL} SOL")
            logger.warning(f"Backend wallet address: {signer.address}")
        return {
            "balance": balance,
            "address": signer.address,
            "min_balance": self.min_backend_balance,
            "healthy": not self.backend_balance_low,
        }

    async def get_vault_reconciliation(self) -> dict:
        """
        Compares the pot vault's lamports with the recorded pot plus the
        rent-exempt reserve. Any excess is an untracked external transfer.
        """
        vault_info, state = await asyncio.gather(
            self.rpc.get_account_info(self.pot_vault_address),
            self.get_game_state(),
        )
        vault_balance = vault_info.lamports if vault_info else 0
        data_len = len(vault_info.data) if vault_info else 0
        rent_reserve = await self.rpc.get_minimum_balance_for_rent_exemption(data_len)
        expected = state.current_pot + rent_reserve
        return {
            "vault_balance": vault_balance,
            "recorded_pot": state.current_pot,
            "rent_reserve": rent_reserve,
            "untracked": max(0, vault_balance - expected),
            "shortfall": max(0, expected - vault_balance) if vault_info else 0,
        }

    async def get_ledger_reconciliation(self, identity) -> dict:
        """Actual lamports at a player's ledger address versus its tracked balance."""
        address = self.player_ledger_address(identity)
        info = await self.rpc.get_account_info(address)
        if info is None:
            return {"address": pubkey_to_str(address), "initialized": False, "actual_balance": 0,
                    "tracked_balance": 0, "untracked": 0, "rent_reserve": 0, "max_withdrawable": 0}
        values = codec.PLAYER_ACCOUNT.decode(info.data)
        tracked = values["balance"] if values else 0
        rent_reserve = await self.rpc.get_minimum_balance_for_rent_exemption(len(info.data))
        return {
            "address": pubkey_to_str(address),
            "initialized": values is not None,
            "actual_balance": info.lamports,
            "tracked_balance": tracked,
            "untracked": max(0, info.lamports - tracked - rent_reserve),
            "rent_reserve": rent_reserve,
            "max_withdrawable": max(0, info.lamports - rent_reserve),
        }


def _str(identity) -> str:
    return identity if isinstance(identity, str) else pubkey_to_str(identity)
