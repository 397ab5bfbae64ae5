"""
Main entry point for running the economy backend.
"""
import asyncio
import argparse
import logging
import signal
import sys
from pathlib import Path

import uvicorn

from primalbet.api import Services, create_app
from primalbet.config import Config, LAMPORTS_PER_SOL
from primalbet.economy import EconomyClient
from primalbet.errors import ConfigurationError, PrimalBetError
from primalbet.monitoring import Monitor
from primalbet.monsters import default_resolver
from primalbet.oracle import FairnessOracle
from primalbet.payments import PaymentRouter
from primalbet.relay import ChainLogWatcher, EventBus
from primalbet.rpc import RpcClient
from primalbet.vault import VaultCrackOrchestrator

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class EconomyNode:
    """Wires the economy client, the vault orchestrator, the relay and the API together."""

    def __init__(self, config: Config, enable_metrics: bool = True):
        self.config = config
        config.validate()

        self.monitor = Monitor(config.monitoring.host, config.monitoring.port)
        self.enable_metrics = enable_metrics

        logger.info(f"Connecting to RPC at {config.rpc.url}")
        self.rpc = RpcClient(
            config.rpc.url,
            commitment=config.rpc.commitment,
            timeout=config.rpc.timeout,
            observer=self.monitor.observe_rpc,
        )
        self.economy = EconomyClient.from_config(config, rpc=self.rpc)

        caller = config.oracle.caller or self.economy.backend_signer.address
        self.oracle = FairnessOracle(
            caller=caller,
            base_url=config.oracle.base_url,
            contract_address=config.oracle.contract_address,
            timeout=config.oracle.timeout,
        )

        self.bus = EventBus(monitor=self.monitor)
        self.router = PaymentRouter(self.economy, monitor=self.monitor)
        self.vault = VaultCrackOrchestrator(
            self.economy, self.oracle, default_resolver,
            router=self.router, monitor=self.monitor,
        )
        self.watcher = ChainLogWatcher(
            self.rpc, self.economy, self.bus, self.economy.program_id,
            poll_interval=config.relay.poll_interval,
            claim_refresh_delay=config.relay.claim_refresh_delay,
            max_seen=config.relay.max_seen,
        )

        self.app = create_app(Services(
            config=config,
            economy=self.economy,
            router=self.router,
            vault=self.vault,
            bus=self.bus,
            resolver=default_resolver,
            monitor=self.monitor,
        ))
        self.server = uvicorn.Server(uvicorn.Config(
            self.app,
            host=config.server.host,
            port=config.server.port,
            log_level="info",
        ))

        self.running = False
        self.tasks: list[asyncio.Task] = []

    async def start(self):
        """Start all node components."""
        self.running = True
        logger.info("Starting economy backend...")

        if self.enable_metrics:
            self.monitor.start_server()

        await self._startup_report()

        self.tasks = [
            asyncio.create_task(self.watcher.run()),
            asyncio.create_task(self._balance_monitor()),
            asyncio.create_task(self._status_reporter()),
        ]

        try:
            await self.server.serve()
        except asyncio.CancelledError:
            logger.info("Node shutdown initiated")

    async def stop(self):
        """Stop all node components."""
        if not self.running:
            return
        logger.info("Stopping economy backend...")
        self.running = False
        self.server.should_exit = True

        await self.watcher.stop()
        for task in self.tasks:
            task.cancel()
        await asyncio.gather(*self.tasks, return_exceptions=True)

        self.monitor.stop_server()
        await self.rpc.close()
        self.oracle.close()
        logger.info("Node stopped successfully")

    async def _startup_report(self):
        try:
            status = await self.economy.check_backend_balance()
            self.monitor.record_backend_balance(status)
            logger.info(f"Backend wallet balance: {status['balance'] / LAMPORTS_PER_SOL} SOL")

            game_state = await self.economy.get_game_state()
            self.monitor.set_pot(game_state.current_pot)
            logger.info(f"Current pot: {game_state.current_pot / LAMPORTS_PER_SOL} SOL")
            logger.info(f"Total entries: {game_state.total_entries}")
        except PrimalBetError as e:
            logger.error(f"Startup state check failed: {e}")

    async def _balance_monitor(self):
        """Keeps the backend signer's balance floor visible."""
        while self.running:
            try:
                status = await self.economy.check_backend_balance()
                self.monitor.record_backend_balance(status)
            except PrimalBetError as e:
                logger.error(f"Backend balance check failed: {e}")
            await asyncio.sleep(self.config.monitoring.balance_check_interval)

    async def _status_reporter(self):
        """Periodically report node status."""
        while self.running:
            await asyncio.sleep(60)
            try:
                self.monitor.update()
                logger.info("=== Node Status ===")
                logger.info(f"Relay subscribers: {self.bus.subscriber_count}")
                if self.bus.last_pot is not None:
                    logger.info(f"Last pot: {self.bus.last_pot / LAMPORTS_PER_SOL} SOL")
                logger.info(f"Backend balance low: {self.economy.backend_balance_low}")
                logger.info("==================")
            except Exception as e:
                logger.error(f"Error in status reporter: {e}")


def load_config(args) -> Config:
    if args.config and Path(args.config).exists():
        config = Config.from_file(args.config)
    else:
        config = Config.default()
    config = Config.from_env(config)

    if args.port:
        config.server.port = args.port
    if args.rpc_url:
        config.rpc.url = args.rpc_url
    if args.keypair:
        config.signer.keypair_path = args.keypair
    return config


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Run the PrimalBet economy backend')
    parser.add_argument('--config', type=str, help='Path to config file')
    parser.add_argument('--port', type=int, help='API port')
    parser.add_argument('--rpc-url', type=str, help='Chain RPC endpoint')
    parser.add_argument('--keypair', type=str, help='Backend signer keypair file')
    parser.add_argument('--no-metrics', action='store_true',
                        help='Do not start the Prometheus exporter')

    args = parser.parse_args()

    try:
        config = load_config(args)
        node = EconomyNode(config, enable_metrics=not args.no_metrics)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    # Setup signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(node.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await node.start()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        await node.stop()


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Exiting...")
        sys.exit(0)


if __name__ == '__main__':
    run()
