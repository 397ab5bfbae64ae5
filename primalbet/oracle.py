# primalbet/oracle.py
"""
Client for the external verifiable-randomness service.

A roll is never produced locally: any failure to obtain a well-formed
result from the service raises OracleUnavailable.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import requests

from .errors import OracleUnavailable

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://proofnetwork.lol/api/blockchain/contracts"
DEFAULT_CONTRACT_ADDRESS = "0x7CoBpP-YQJBYKf8M"
RANDOM_METHOD = "getRandomNumber"


@dataclass
class OracleRoll:
    """A roll plus the audit proof that must reach the end user."""
    roll: int
    proof: Any = field(default_factory=dict)
    min: int = 0
    max: int = 100

    def to_dict(self) -> dict:
        return {"roll": self.roll, "proof": self.proof, "min": self.min, "max": self.max}


class FairnessOracle:
    def __init__(self, caller: str,
                 base_url: str = DEFAULT_BASE_URL,
                 contract_address: str = DEFAULT_CONTRACT_ADDRESS,
                 timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.caller = caller
        self.base_url = base_url.rstrip('/')
        self.contract_address = contract_address
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, payload: dict) -> dict:
        try:
            r = self.session.post(f"{self.base_url}/call", json=payload, timeout=self.timeout)
            r.raise_for_status()
            return r.json()
        except requests.RequestException as e:
            logger.error(f"Oracle request failed: {e}")
            raise OracleUnavailable(f"Oracle unreachable: {e}") from e
        except ValueError as e:
            logger.error(f"Oracle returned non-JSON body: {e}")
            raise OracleUnavailable("Oracle returned a malformed response") from e

    def roll_sync(self, min_value: int, max_value: int, context: Optional[dict] = None) -> OracleRoll:
        """
        Requests an integer in [min_value, max_value). The service treats
        its upper bound as inclusive, so max_value - 1 is sent.
        """
        if max_value <= min_value:
            raise ValueError(f"Empty roll range [{min_value}, {max_value})")

        body = self._post({
            "from": self.caller,
            "contractAddress": self.contract_address,
            "functionName": RANDOM_METHOD,
            "inputs": {"min": min_value, "max": max_value - 1},
        })
        if not isinstance(body, dict) or not body.get("success"):
            error = body.get("error") if isinstance(body, dict) else None
            raise OracleUnavailable(error or "Oracle call failed")

        tx = body.get("transaction")
        tx = tx if isinstance(tx, dict) else {}
        outputs = tx.get("outputs")
        outputs = outputs if isinstance(outputs, dict) else {}
        roll = outputs.get("result")
        if isinstance(roll, bool) or not isinstance(roll, (int, float)) or (isinstance(roll, float) and not roll.is_integer()):
            raise OracleUnavailable(f"Oracle returned no usable result: {roll!r}")
        roll = int(roll)
        if not min_value <= roll < max_value:
            raise OracleUnavailable(f"Oracle result {roll} outside [{min_value}, {max_value})")

        proof = outputs.get("proof")
        if proof is None or (isinstance(proof, (str, list, dict)) and not proof):
            proof = {
                "txHash": tx.get("hash"),
                "vrfSeed": tx.get("vrfSeed"),
                "contractAddress": self.contract_address,
                **(context or {}),
            }
            if tx.get("timestamp") is not None:
                proof["timestamp"] = tx["timestamp"]
        logger.info(f"Oracle roll {roll} in [{min_value}, {max_value})")
        return OracleRoll(roll=roll, proof=proof, min=min_value, max=max_value)

    async def roll(self, min_value: int, max_value: int, context: Optional[dict] = None) -> OracleRoll:
        """Awaitable roll; the HTTP call runs off the event loop."""
        return await asyncio.to_thread(self.roll_sync, min_value, max_value, context)

    def close(self):
        self.session.close()
