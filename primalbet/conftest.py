# primalbet/conftest.py
import pytest
from unittest.mock import AsyncMock, MagicMock

from primalbet import codec
from primalbet.core import GameState, PaymentRail, PlayerLedger
from primalbet.crypto import Keypair, pubkey_to_str
from primalbet.economy import EconomyClient
from primalbet.rpc import AccountInfo, RpcClient

# 32 zero bytes in base58
BLOCKHASH = "1" * 32
RENT_RESERVE = 890_880


@pytest.fixture
def program_id():
    return Keypair.generate().public_key


@pytest.fixture
def treasury():
    return Keypair.generate().public_key


@pytest.fixture
def backend():
    return Keypair.generate()


@pytest.fixture
def player():
    return Keypair.generate()


@pytest.fixture
def chain_accounts():
    """address bytes -> AccountInfo served by the fake RPC."""
    return {}


@pytest.fixture
def balances():
    """address bytes -> lamports served by the fake RPC."""
    return {}


@pytest.fixture
def rpc(chain_accounts, balances):
    rpc = MagicMock(spec=RpcClient)
    rpc.get_account_info = AsyncMock(side_effect=lambda pubkey: chain_accounts.get(bytes(pubkey)))
    rpc.get_balance = AsyncMock(side_effect=lambda pubkey: balances.get(bytes(pubkey), 0))
    rpc.get_latest_blockhash = AsyncMock(return_value=BLOCKHASH)
    rpc.send_transaction = AsyncMock(return_value="5igSig")
    rpc.confirm_transaction = AsyncMock(return_value={"confirmationStatus": "confirmed", "err": None})
    rpc.get_minimum_balance_for_rent_exemption = AsyncMock(return_value=RENT_RESERVE)
    rpc.get_signatures_for_address = AsyncMock(return_value=[])
    rpc.get_transaction_logs = AsyncMock(return_value=[])
    return rpc


@pytest.fixture
def economy(rpc, program_id, treasury, backend):
    return EconomyClient(rpc, program_id, backend_signer=backend, treasury=treasury)


@pytest.fixture
def put_game_state(chain_accounts, economy):
    def put(pot, total_entries=0, last_winner=None, lamports=None):
        state = GameState(current_pot=pot, total_entries=total_entries, last_winner=last_winner)
        chain_accounts[economy.game_state_address] = AccountInfo(
            data=codec.GAME_STATE.encode(state.to_account()),
            lamports=lamports if lamports is not None else RENT_RESERVE, owner="program")
    return put


@pytest.fixture
def put_ledger(chain_accounts, economy):
    def put(wallet: bytes, balance=0, rail=PaymentRail.WALLET, lamports=None, **stats):
        ledger = PlayerLedger(wallet=pubkey_to_str(wallet), balance=balance, last_payment_method=rail, **stats)
        if lamports is None:
            lamports = balance + RENT_RESERVE
        chain_accounts[economy.player_ledger_address(wallet)] = AccountInfo(
            data=codec.PLAYER_ACCOUNT.encode(ledger.to_account()), lamports=lamports, owner="program")
    return put
