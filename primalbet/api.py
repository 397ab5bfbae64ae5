"""
HTTP and WebSocket surface for front-end collaborators.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.websockets import WebSocketState
from pydantic import BaseModel, Field

from . import __version__
from .config import Config, LAMPORTS_PER_SOL
from .crypto import pubkey_to_str, to_pubkey_bytes
from .economy import EconomyClient
from .errors import (
    ConfigurationError,
    InstructionRejected,
    InsufficientBalance,
    InvalidMonsterType,
    InvalidSession,
    OracleUnavailable,
    PrimalBetError,
    TransportError,
)
from .monsters import TierResolver, default_resolver
from .payments import PaymentRouter
from .relay import ITEM_DROP, EventBus, RelayEvent, normalize_viewer_event, pot_update
from .vault import VaultCrackOrchestrator

logger = logging.getLogger(__name__)

FEATURES = ["hybrid_payments", "pda_deposits", "gasless_gameplay", "smart_prize_routing"]


@dataclass
class Services:
    config: Config
    economy: EconomyClient
    router: PaymentRouter
    vault: VaultCrackOrchestrator
    bus: EventBus
    resolver: TierResolver = default_resolver
    monitor: Optional[object] = None


class VaultAttemptRequest(BaseModel):
    wallet: str
    combatId: str
    monsterType: str


class GaslessEntryRequest(BaseModel):
    playerWallet: str


class ArenaPackageRequest(BaseModel):
    playerWallet: str
    packageId: str
    packageName: Optional[str] = None


class ArenaEventRequest(BaseModel):
    playerWallet: str
    eventId: str
    eventData: dict = Field(default_factory=dict)


def _error(status: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message, **extra})


def _wallet(value: str) -> str:
    try:
        return pubkey_to_str(to_pubkey_bytes(value))
    except ValueError as e:
        raise HTTPException(400, f"Invalid wallet address: {e}")


def create_app(services: Services) -> FastAPI:
    app = FastAPI(title="PrimalBet", version=__version__)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=services.config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Error mapping ---

    @app.exception_handler(RequestValidationError)
    async def on_validation_error(request: Request, exc: RequestValidationError):
        return _error(400, "Missing required fields", details=str(exc))

    @app.exception_handler(HTTPException)
    async def on_http_error(request: Request, exc: HTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(PrimalBetError)
    async def on_domain_error(request: Request, exc: PrimalBetError):
        if isinstance(exc, (InvalidSession, InvalidMonsterType)):
            return _error(400, str(exc))
        if isinstance(exc, InsufficientBalance):
            return _error(402, "Insufficient balance", requested=exc.requested, available=exc.available)
        if isinstance(exc, OracleUnavailable):
            logger.error(f"Oracle unavailable on {request.url.path}: {exc}")
            return _error(503, "Fairness oracle unavailable, please retry", details=str(exc))
        if isinstance(exc, InstructionRejected):
            logger.error(f"Instruction rejected on {request.url.path}: {exc}")
            return _error(502, "Instruction rejected", details=exc.args[0] if exc.args else "", logs=exc.logs)
        if isinstance(exc, TransportError):
            logger.error(f"Transport failure on {request.url.path}: {exc}")
            return _error(500, "Chain request failed", details=str(exc))
        if isinstance(exc, ConfigurationError):
            logger.error(f"Configuration error on {request.url.path}: {exc}")
        return _error(500, "Internal error", details=str(exc))

    # --- Read API ---

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())}

    @app.get("/api/state")
    async def state():
        game_state = await services.economy.get_game_state()
        body = game_state.to_dict()
        body["currentMonster"] = services.resolver.resolve_lamports(game_state.current_pot).to_dict()
        body["recentCombats"] = []
        return body

    @app.get("/api/player/{wallet}")
    async def player(wallet: str):
        ledger = await services.economy.get_player_ledger(_wallet(wallet))
        if ledger is None:
            raise HTTPException(404, "Player not found")
        return ledger.to_dict()

    @app.get("/api/player/{wallet}/payment-options")
    async def payment_options(wallet: str):
        options = await services.economy.get_payment_options(_wallet(wallet))
        return options.to_dict()

    # --- Writes ---

    @app.post("/api/vault/attempt")
    async def vault_attempt(body: VaultAttemptRequest):
        result = await services.vault.attempt(_wallet(body.wallet), body.combatId, body.monsterType)
        return result.to_dict()

    @app.post("/api/combat/enter-gasless")
    async def enter_gasless(body: GaslessEntryRequest):
        receipt = await services.router.enter_gasless(_wallet(body.playerWallet))
        return {**receipt.to_dict(), "message": "Entered combat using ledger balance (gasless)"}

    # --- Backend signer and reconciliation ---

    @app.get("/api/backend/status")
    async def backend_status():
        status = await services.economy.check_backend_balance()
        if services.monitor:
            services.monitor.record_backend_balance(status)
        return {
            "balance": status["balance"] / LAMPORTS_PER_SOL,
            "address": status["address"],
            "status": "healthy" if status["healthy"] else "low_balance",
            "programId": pubkey_to_str(services.economy.program_id),
            "features": FEATURES,
        }

    @app.get("/api/vault/reconciliation")
    async def vault_reconciliation():
        return await services.economy.get_vault_reconciliation()

    # --- Viewer interaction ---

    @app.post("/api/arena/package")
    async def arena_package(body: ArenaPackageRequest):
        name = body.packageName or "Unknown Package"
        logger.info(f"Package received: {name} ({body.packageId}) for {body.playerWallet}")
        event = RelayEvent(ITEM_DROP, {
            "playerWallet": body.playerWallet,
            "event": "package_drop",
            "data": {"itemId": body.packageId, "itemName": name},
        })
        services.bus.publish(event)
        return {"success": True, "message": f"Package {name} delivered to player"}

    @app.post("/api/arena/event")
    async def arena_event(body: ArenaEventRequest):
        try:
            event = normalize_viewer_event(body.eventId, body.playerWallet, body.eventData)
        except ValueError as e:
            raise HTTPException(400, str(e))
        delivered = services.bus.publish(event)
        return {"success": True, "topic": event.type, "delivered": delivered}

    # --- Real-time relay ---

    @app.websocket("/ws")
    async def relay(websocket: WebSocket):
        await websocket.accept()
        logger.info("New client WebSocket connection")
        sub = services.bus.subscribe()

        async def forward():
            async for event in sub:
                await websocket.send_json(event.to_message())

        async def receive():
            while True:
                await websocket.receive_text()

        tasks = []
        try:
            pot = services.bus.last_pot
            if pot is None:
                pot = await services.economy.get_pot()
            await websocket.send_json(pot_update(pot).to_message())
            sender = asyncio.create_task(forward())
            receiver = asyncio.create_task(receive())
            tasks = [sender, receiver]
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            if sender in done:
                # forward only ends by failing
                logger.error(f"Relay delivery failed, closing connection: {sender.exception()!r}")
                if websocket.client_state != WebSocketState.DISCONNECTED:
                    await websocket.close(code=1011)
            else:
                receiver.result()
        except WebSocketDisconnect:
            logger.info("Client WebSocket connection closed")
        except PrimalBetError as e:
            logger.error(f"Closing relay connection: {e}")
            await websocket.close(code=1011)
        finally:
            for task in tasks:
                task.cancel()
            sub.close()

    return app
