# primalbet/test_oracle.py
import pytest
import requests
from unittest.mock import MagicMock

from primalbet.errors import OracleUnavailable
from primalbet.oracle import DEFAULT_CONTRACT_ADDRESS, FairnessOracle


def response(body):
    r = MagicMock()
    r.raise_for_status.return_value = None
    r.json.return_value = body
    return r


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def oracle(session):
    return FairnessOracle(caller="backend-wallet", base_url="https://oracle.test/api/", session=session)


class TestRequest:

    def test_request_shape(self, oracle, session):
        session.post.return_value = response({"success": True, "transaction": {"outputs": {"result": 42}}})
        oracle.roll_sync(0, 100)
        url = session.post.call_args.args[0]
        body = session.post.call_args.kwargs["json"]
        assert url == "https://oracle.test/api/call"
        assert body == {
            "from": "backend-wallet",
            "contractAddress": DEFAULT_CONTRACT_ADDRESS,
            "functionName": "getRandomNumber",
            # the service treats max as inclusive
            "inputs": {"min": 0, "max": 99},
        }

    def test_empty_range(self, oracle):
        with pytest.raises(ValueError):
            oracle.roll_sync(5, 5)


class TestProof:

    def test_service_proof_is_forwarded(self, oracle, session):
        proof = {"seed": "aa", "nonce": "1", "hash": "bb", "steps": []}
        session.post.return_value = response({
            "success": True, "transaction": {"outputs": {"result": 7, "proof": proof}},
        })
        outcome = oracle.roll_sync(0, 100)
        assert outcome.roll == 7
        assert outcome.proof == proof

    def test_fallback_proof_from_transaction(self, oracle, session):
        session.post.return_value = response({
            "success": True,
            "transaction": {"hash": "0xabc", "timestamp": 1700, "vrfSeed": "seed", "outputs": {"result": 3}},
        })
        outcome = oracle.roll_sync(0, 100, context={"playerWallet": "W", "combatId": "C"})
        assert outcome.proof == {
            "txHash": "0xabc",
            "timestamp": 1700,
            "vrfSeed": "seed",
            "contractAddress": DEFAULT_CONTRACT_ADDRESS,
            "playerWallet": "W",
            "combatId": "C",
        }

    @pytest.mark.parametrize("proof", ["vrf-proof-bytes-abc", ["step-1", "step-2"]])
    def test_non_dict_proof_is_forwarded(self, oracle, session, proof):
        session.post.return_value = response({
            "success": True,
            "transaction": {"hash": "0xabc", "outputs": {"result": 5, "proof": proof}},
        })
        assert oracle.roll_sync(0, 100).proof == proof

    def test_fallback_proof_has_no_local_timestamp(self, oracle, session):
        session.post.return_value = response({
            "success": True, "transaction": {"hash": "0xabc", "outputs": {"result": 3, "proof": ""}},
        })
        proof = oracle.roll_sync(0, 100).proof
        assert proof["txHash"] == "0xabc"
        assert "timestamp" not in proof

    @pytest.mark.asyncio
    async def test_async_roll(self, oracle, session):
        session.post.return_value = response({"success": True, "transaction": {"outputs": {"result": 99}}})
        outcome = await oracle.roll(0, 100)
        assert outcome.roll == 99
        assert outcome.to_dict()["max"] == 100


class TestFailures:
    """Every failure is OracleUnavailable, never a made-up roll."""

    def test_unreachable(self, oracle, session):
        session.post.side_effect = requests.ConnectionError("down")
        with pytest.raises(OracleUnavailable):
            oracle.roll_sync(0, 100)

    def test_http_error(self, oracle, session):
        r = MagicMock()
        r.raise_for_status.side_effect = requests.HTTPError("500")
        session.post.return_value = r
        with pytest.raises(OracleUnavailable):
            oracle.roll_sync(0, 100)

    def test_non_json(self, oracle, session):
        r = MagicMock()
        r.raise_for_status.return_value = None
        r.json.side_effect = ValueError("not json")
        session.post.return_value = r
        with pytest.raises(OracleUnavailable):
            oracle.roll_sync(0, 100)

    def test_unsuccessful_call(self, oracle, session):
        session.post.return_value = response({"success": False, "error": "Contract call failed"})
        with pytest.raises(OracleUnavailable, match="Contract call failed"):
            oracle.roll_sync(0, 100)

    @pytest.mark.parametrize("result", [None, "12", True, 4.5])
    def test_malformed_result(self, oracle, session, result):
        session.post.return_value = response({"success": True, "transaction": {"outputs": {"result": result}}})
        with pytest.raises(OracleUnavailable):
            oracle.roll_sync(0, 100)

    @pytest.mark.parametrize("result", [-1, 100])
    def test_out_of_range(self, oracle, session, result):
        session.post.return_value = response({"success": True, "transaction": {"outputs": {"result": result}}})
        with pytest.raises(OracleUnavailable):
            oracle.roll_sync(0, 100)

    def test_integral_float_accepted(self, oracle, session):
        session.post.return_value = response({"success": True, "transaction": {"outputs": {"result": 12.0}}})
        assert oracle.roll_sync(0, 100).roll == 12
