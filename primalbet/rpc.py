"""
Chain transport on top of solana-py's async client.

Responses are turned into plain values here, and every failure leaves
this module as TransportError or, when the program declined a
transaction, InstructionRejected with its log lines.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from .crypto import to_pubkey
from .errors import InstructionRejected, PrimalBetError, TransportError

logger = logging.getLogger(__name__)

COMMITMENT_LEVELS = ("processed", "confirmed", "finalized")
CONFIRMATION_STATUSES = (
    TransactionConfirmationStatus.Processed,
    TransactionConfirmationStatus.Confirmed,
    TransactionConfirmationStatus.Finalized,
)


@dataclass(frozen=True)
class AccountInfo:
    data: bytes
    lamports: int
    owner: str
    executable: bool = False


def _confirmation_level(status) -> str:
    if status is None:
        return "processed"
    return COMMITMENT_LEVELS[CONFIRMATION_STATUSES.index(status)]


def rpc_error(method: str, exc: RPCException) -> PrimalBetError:
    """Maps an error response; simulation failures carry the program's logs."""
    error = exc.args[0] if exc.args else None
    message = getattr(error, "message", None) or str(exc)
    logs = getattr(getattr(error, "data", None), "logs", None)
    if logs is not None:
        logger.error(f"RPC {method} rejected: {message}")
        return InstructionRejected(message, list(logs))
    logger.error(f"RPC {method} error: {message}")
    return TransportError(f"RPC {method} error: {message}")


class RpcClient:
    def __init__(self, url: str, commitment: str = "confirmed", timeout: float = 30.0,
                 client: Optional[AsyncClient] = None,
                 observer: Optional[Callable[[str, float], None]] = None):
        if commitment not in COMMITMENT_LEVELS:
            raise ValueError(f"Unknown commitment level: {commitment}")
        self.url = url
        self.commitment = commitment
        self.timeout = timeout
        self.client = client or AsyncClient(url, commitment=Commitment(commitment), timeout=timeout)
        self.observer = observer

    async def _call(self, method: str, request: Awaitable):
        started = time.monotonic()
        try:
            return await request
        except RPCException as e:
            raise rpc_error(method, e) from e
        except Exception as e:
            # httpx, solana-py and solders each raise their own types for
            # unreachable nodes and for bodies that do not parse
            logger.error(f"RPC {method} failed: {e}")
            raise TransportError(f"RPC {method} failed: {e}") from e
        finally:
            if self.observer:
                self.observer(method, time.monotonic() - started)

    async def get_account_info(self, pubkey) -> Optional[AccountInfo]:
        """None when the account does not exist."""
        resp = await self._call("getAccountInfo", self.client.get_account_info(to_pubkey(pubkey)))
        value = resp.value
        if value is None:
            return None
        return AccountInfo(
            data=bytes(value.data),
            lamports=value.lamports,
            owner=str(value.owner),
            executable=value.executable,
        )

    async def get_balance(self, pubkey) -> int:
        resp = await self._call("getBalance", self.client.get_balance(to_pubkey(pubkey)))
        return int(resp.value)

    async def get_latest_blockhash(self) -> str:
        resp = await self._call("getLatestBlockhash", self.client.get_latest_blockhash())
        return str(resp.value.blockhash)

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        resp = await self._call("getMinimumBalanceForRentExemption",
                                self.client.get_minimum_balance_for_rent_exemption(size))
        return int(resp.value)

    async def send_transaction(self, wire: bytes, skip_preflight: bool = False) -> str:
        """Submits a signed transaction. Once this returns it cannot be retracted."""
        opts = TxOpts(skip_preflight=skip_preflight, preflight_commitment=Commitment(self.commitment))
        resp = await self._call("sendTransaction", self.client.send_raw_transaction(wire, opts=opts))
        return str(resp.value)

    async def get_signature_statuses(self, signatures: list[str]) -> list[Optional[dict]]:
        resp = await self._call("getSignatureStatuses", self.client.get_signature_statuses(
            [Signature.from_string(s) for s in signatures]))
        return [
            None if status is None else {
                "err": status.err,
                "confirmationStatus": _confirmation_level(status.confirmation_status),
            }
            for status in resp.value
        ]

    async def confirm_transaction(self, signature: str, timeout: float = 60.0,
                                  poll_interval: float = 0.5) -> dict:
        """
        Waits until the signature reaches the configured commitment.
        A failed transaction raises InstructionRejected; running out of time
        raises TransportError (the transaction may still land).
        """
        target = COMMITMENT_LEVELS.index(self.commitment)
        deadline = time.monotonic() + timeout
        while True:
            status = (await self.get_signature_statuses([signature]))[0]
            if status:
                if status["err"] is not None:
                    logs = await self.get_transaction_logs(signature)
                    raise InstructionRejected(f"Transaction {signature} failed: {status['err']}", logs)
                if COMMITMENT_LEVELS.index(status["confirmationStatus"]) >= target:
                    return status
            if time.monotonic() >= deadline:
                raise TransportError(f"Transaction {signature} not confirmed within {timeout}s")
            await asyncio.sleep(poll_interval)

    async def get_signatures_for_address(self, address, limit: int = 20,
                                         before: Optional[str] = None,
                                         until: Optional[str] = None) -> list[dict]:
        """Newest first, stopping at until (exclusive) and starting below before."""
        resp = await self._call("getSignaturesForAddress", self.client.get_signatures_for_address(
            to_pubkey(address),
            before=Signature.from_string(before) if before else None,
            until=Signature.from_string(until) if until else None,
            limit=limit,
        ))
        return [{"signature": str(entry.signature), "err": entry.err} for entry in resp.value]

    async def get_transaction_logs(self, signature: str) -> list[str]:
        resp = await self._call("getTransaction", self.client.get_transaction(
            Signature.from_string(signature), encoding="json", max_supported_transaction_version=0))
        tx = resp.value
        if tx is None or tx.transaction.meta is None:
            return []
        return list(tx.transaction.meta.log_messages or [])

    async def close(self):
        await self.client.close()
