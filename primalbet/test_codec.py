# primalbet/test_codec.py
import pytest
from hypothesis import given, strategies as st

from primalbet import codec
from primalbet.codec import (
    CLAIM_PRIZE_BACKEND,
    DEPOSIT_TO_PDA,
    ENTER_COMBAT,
    ENTER_COMBAT_FOR_PLAYER,
    GAME_STATE,
    HEADER_SIZE,
    I64_MAX,
    I64_MIN,
    PLAYER_ACCOUNT,
    U64_MAX,
    WITHDRAW_FROM_PDA,
    instruction_discriminator,
)

pubkeys = st.binary(min_size=32, max_size=32)
u64s = st.one_of(st.just(0), st.just(U64_MAX), st.integers(0, U64_MAX))
i64s = st.integers(I64_MIN, I64_MAX)


class TestDiscriminators:
    """Values the deployed program expects, byte for byte."""

    def test_enter_combat(self):
        assert instruction_discriminator("enter_combat") == bytes([206, 145, 23, 55, 61, 45, 122, 210])

    def test_withdraw_from_pda(self):
        assert instruction_discriminator("withdraw_from_pda") == bytes([176, 181, 251, 79, 48, 70, 9, 74])

    def test_deposit_to_pda(self):
        assert instruction_discriminator("deposit_to_pda") == bytes([15, 100, 42, 57, 235, 206, 59, 185])

    def test_enter_combat_for_player(self):
        assert instruction_discriminator("enter_combat_for_player") == bytes([186, 129, 109, 164, 53, 167, 230, 172])

    def test_namespace_changes_discriminator(self):
        assert instruction_discriminator("enter_combat", "other") != instruction_discriminator("enter_combat")


@given(
    wallet=pubkeys,
    balance=u64s,
    total_combats=u64s,
    victories=u64s,
    total_winnings=u64s,
    last_combat=i64s,
    last_payment_method=st.sampled_from([0, 1]),
)
def test_player_account_round_trip(wallet, balance, total_combats, victories,
                                   total_winnings, last_combat, last_payment_method):
    values = {
        "wallet": wallet,
        "balance": balance,
        "total_combats": total_combats,
        "victories": victories,
        "total_winnings": total_winnings,
        "last_combat": last_combat,
        "last_payment_method": last_payment_method,
    }
    assert PLAYER_ACCOUNT.decode(PLAYER_ACCOUNT.encode(values)) == values


@pytest.mark.parametrize("balance", [0, U64_MAX])
def test_player_account_balance_extremes(balance):
    values = PLAYER_ACCOUNT.schema.default()
    values.update(wallet=b"\x07" * 32, balance=balance)
    assert PLAYER_ACCOUNT.decode(PLAYER_ACCOUNT.encode(values))["balance"] == balance


class TestAccountDecoding:

    def test_header_is_skipped(self):
        values = PLAYER_ACCOUNT.schema.default()
        values["wallet"] = b"\x01" * 32
        data = PLAYER_ACCOUNT.encode(values, header=b"\xff" * HEADER_SIZE)
        assert PLAYER_ACCOUNT.decode(data)["wallet"] == b"\x01" * 32

    def test_missing_account_is_none(self):
        assert PLAYER_ACCOUNT.decode(None) is None
        assert GAME_STATE.decode(None) is None

    def test_short_buffer_is_none(self):
        assert PLAYER_ACCOUNT.decode(b"\x00" * 20) is None
        assert GAME_STATE.decode(b"\x00" * (HEADER_SIZE + 16)) is None

    def test_legacy_player_payload_defaults_to_wallet_rail(self):
        values = PLAYER_ACCOUNT.schema.default()
        values.update(wallet=b"\x02" * 32, balance=5, last_payment_method=1)
        data = PLAYER_ACCOUNT.encode(values)[:-1]  # drop the rail byte
        assert len(data) == HEADER_SIZE + 72
        decoded = PLAYER_ACCOUNT.decode(data)
        assert decoded["balance"] == 5
        assert decoded["last_payment_method"] == 0

    def test_game_state_without_winner(self):
        data = GAME_STATE.encode({"current_pot": 10, "total_entries": 2, "last_winner": None})
        assert GAME_STATE.decode(data) == {"current_pot": 10, "total_entries": 2, "last_winner": None}

    def test_game_state_with_winner(self):
        winner = {"wallet": b"\x03" * 32, "amount": 99, "timestamp": -5}
        data = GAME_STATE.encode({"current_pot": 0, "total_entries": 7, "last_winner": winner})
        assert GAME_STATE.decode(data)["last_winner"] == winner

    def test_bad_option_tag_is_none(self):
        data = bytearray(GAME_STATE.encode({"current_pot": 1, "total_entries": 1, "last_winner": None}))
        data[HEADER_SIZE + 16] = 7
        assert GAME_STATE.decode(bytes(data)) is None

    def test_truncated_winner_is_none(self):
        winner = {"wallet": b"\x03" * 32, "amount": 99, "timestamp": 5}
        data = GAME_STATE.encode({"current_pot": 0, "total_entries": 7, "last_winner": winner})
        assert GAME_STATE.decode(data[:-4]) is None


class TestInstructionData:

    def test_enter_combat_is_bare_discriminator(self):
        assert ENTER_COMBAT.encode() == instruction_discriminator("enter_combat")

    def test_amount_is_little_endian_u64(self):
        data = DEPOSIT_TO_PDA.encode(amount=0x0102)
        assert data[8:] == bytes([2, 1, 0, 0, 0, 0, 0, 0])
        assert WITHDRAW_FROM_PDA.decode(WITHDRAW_FROM_PDA.encode(amount=5)) == {"amount": 5}

    def test_for_player_carries_identity(self):
        data = ENTER_COMBAT_FOR_PLAYER.encode(player=b"\x09" * 32)
        assert len(data) == 40
        assert data[8:] == b"\x09" * 32

    def test_claim_proof_is_length_prefixed(self):
        proof = '{"roll":3}'
        data = CLAIM_PRIZE_BACKEND.encode(winner=b"\x04" * 32, vrf_proof=proof)
        assert data[8:40] == b"\x04" * 32
        assert int.from_bytes(data[40:44], "little") == len(proof)
        assert data[44:] == proof.encode()

    def test_wrong_discriminator_rejected(self):
        with pytest.raises(ValueError):
            DEPOSIT_TO_PDA.decode(WITHDRAW_FROM_PDA.encode(amount=1))

    @pytest.mark.parametrize("value", [-1, U64_MAX + 1])
    def test_u64_range(self, value):
        with pytest.raises(ValueError):
            codec.encode_u64(value)

    def test_pubkey_width(self):
        with pytest.raises(ValueError):
            ENTER_COMBAT_FOR_PLAYER.encode(player=b"\x00" * 31)

    def test_missing_argument(self):
        with pytest.raises(ValueError):
            DEPOSIT_TO_PDA.encode()
