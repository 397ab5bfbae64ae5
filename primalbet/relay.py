"""
Real-time event relay.

A small in-process publish/subscribe bus fans immutable events out to
connected clients. Two producers feed it: the chain log watcher, which
re-reads the pot whenever an entry or a claim shows up in the program's
logs, and the viewer-interaction ingest, which passes arena events through
tagged with the target player.
"""
import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Optional

from .config import LAMPORTS_PER_SOL
from .errors import PrimalBetError

logger = logging.getLogger(__name__)

POT_UPDATE = "pot-update"
COUNTDOWN = "countdown"
ITEM_DROP = "item-drop"
BOOST = "boost"
COMPLETION = "completion"
TOPICS = (POT_UPDATE, COUNTDOWN, ITEM_DROP, BOOST, COMPLETION)

# Arena platform event names -> relay topics
VIEWER_EVENT_TOPICS = {
    "arena_countdown_started": COUNTDOWN,
    "countdown_update": COUNTDOWN,
    "arena_begins": COUNTDOWN,
    "immediate_item_drop": ITEM_DROP,
    "package_drop": ITEM_DROP,
    "player_boost_activated": BOOST,
    "game_completed": COMPLETION,
    "game_stopped": COMPLETION,
}

ENTRY_LOG_MARKER = "Player entered!"
CLAIM_LOG_MARKER = "Prize claimed:"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RelayEvent:
    type: str
    payload: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    timestamp: int = field(default_factory=_now_ms)

    def __post_init__(self):
        if self.type not in TOPICS:
            raise ValueError(f"Unknown relay topic: {self.type}")
        if not isinstance(self.payload, MappingProxyType):
            object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    def to_message(self) -> dict:
        return {"type": self.type, **self.payload, "timestamp": self.timestamp}


def pot_update(pot: int) -> RelayEvent:
    return RelayEvent(POT_UPDATE, {"currentPot": pot})


def normalize_viewer_event(event_name: str, player_wallet: str, data: Optional[dict] = None) -> RelayEvent:
    """Maps an arena platform event to its relay topic."""
    topic = VIEWER_EVENT_TOPICS.get(event_name)
    if topic is None:
        raise ValueError(f"Unknown viewer event: {event_name}")
    if not player_wallet:
        raise ValueError("Viewer events must name the target player")
    return RelayEvent(topic, {"playerWallet": player_wallet, "event": event_name, "data": dict(data or {})})


class Subscription:
    """A bounded queue of events for one client. Oldest events drop first."""

    def __init__(self, bus: 'EventBus', topics: Optional[Iterable[str]], maxsize: int):
        self.bus = bus
        self.topics = frozenset(topics) if topics else None
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def wants(self, event: RelayEvent) -> bool:
        return self.topics is None or event.type in self.topics

    def offer(self, event: RelayEvent):
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
        self.queue.put_nowait(event)

    async def get(self) -> RelayEvent:
        return await self.queue.get()

    def close(self):
        self.bus.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> RelayEvent:
        return await self.get()


class EventBus:
    def __init__(self, max_queue: int = 100, monitor=None):
        self.max_queue = max_queue
        self.monitor = monitor
        self._subscribers: list[Subscription] = []
        self.last_pot: Optional[int] = None

    def subscribe(self, topics: Optional[Iterable[str]] = None) -> Subscription:
        sub = Subscription(self, topics, self.max_queue)
        self._subscribers.append(sub)
        self._report()
        return sub

    def unsubscribe(self, sub: Subscription):
        if sub in self._subscribers:
            self._subscribers.remove(sub)
            self._report()

    def publish(self, event: RelayEvent) -> int:
        """Delivers to every interested subscriber. Returns how many received it."""
        if event.type == POT_UPDATE:
            self.last_pot = event.payload["currentPot"]
            if self.monitor:
                self.monitor.set_pot(self.last_pot)
        delivered = 0
        for sub in list(self._subscribers):
            if sub.wants(event):
                sub.offer(event)
                delivered += 1
        return delivered

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _report(self):
        if self.monitor:
            self.monitor.set_subscribers(len(self._subscribers))


class ChainLogWatcher:
    """
    Polls the program's recent signatures, reads the logs of each new one
    and republishes the pot when an entry or a claim is seen.
    """

    def __init__(self, rpc, economy, bus: EventBus, program_id,
                 poll_interval: float = 2.0,
                 claim_refresh_delay: float = 1.0,
                 max_seen: int = 10000,
                 batch_size: int = 25):
        self.rpc = rpc
        self.economy = economy
        self.bus = bus
        self.program_id = program_id
        self.poll_interval = poll_interval
        self.claim_refresh_delay = claim_refresh_delay
        self.max_seen = max_seen
        self.batch_size = batch_size

        self._seen: OrderedDict = OrderedDict()
        self._newest: Optional[str] = None
        self._primed = False
        self._pending: set = set()
        self.running = False

    def _mark_seen(self, signature: str) -> bool:
        """False if the signature was already handled."""
        if signature in self._seen:
            return False
        self._seen[signature] = True
        while len(self._seen) > self.max_seen:
            self._seen.popitem(last=False)
        return True

    async def refresh_pot(self) -> int:
        pot = await self.economy.get_pot()
        self.bus.publish(pot_update(pot))
        logger.info(f"Pot updated: {pot / LAMPORTS_PER_SOL} SOL")
        return pot

    async def _delayed_refresh(self):
        await asyncio.sleep(self.claim_refresh_delay)
        try:
            await self.refresh_pot()
        except PrimalBetError as e:
            logger.error(f"Pot refresh after claim failed: {e}")

    async def handle_logs(self, logs: list[str]):
        if any(ENTRY_LOG_MARKER in line for line in logs):
            logger.info("Player entered detected")
            await self.refresh_pot()
        if any(CLAIM_LOG_MARKER in line for line in logs):
            logger.info("Prize claimed detected")
            # Let the claim settle before re-reading the pot
            task = asyncio.create_task(self._delayed_refresh())
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _fetch_new(self) -> list[dict]:
        """Everything newer than the last seen signature, newest first."""
        entries = []
        before = None
        while True:
            page = await self.rpc.get_signatures_for_address(
                self.program_id, limit=self.batch_size, before=before, until=self._newest)
            entries.extend(page)
            # Startup only needs the newest page to mark history as seen
            if len(page) < self.batch_size or not self._primed:
                return entries
            before = page[-1]["signature"]

    async def poll_once(self) -> int:
        """Processes new signatures oldest first. Returns how many were handled."""
        entries = await self._fetch_new()
        if not entries:
            self._primed = True
            return 0
        self._newest = entries[0]["signature"]

        if not self._primed:
            # Existing history is not replayed on startup
            for entry in entries:
                self._mark_seen(entry["signature"])
            self._primed = True
            return 0

        handled = 0
        for entry in reversed(entries):
            signature = entry["signature"]
            if not self._mark_seen(signature) or entry.get("err") is not None:
                continue
            logs = await self.rpc.get_transaction_logs(signature)
            await self.handle_logs(logs)
            handled += 1
        return handled

    async def run(self):
        self.running = True
        logger.info("Chain log watcher started")
        while self.running:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Log watcher poll failed: {e}")
            await asyncio.sleep(self.poll_interval)

    async def stop(self):
        self.running = False
        for task in list(self._pending):
            task.cancel()
        logger.info("Chain log watcher stopped")
