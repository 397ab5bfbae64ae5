# primalbet/monitoring.py
import time
import psutil
import socket
from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry
from prometheus_client.exposition import make_wsgi_app
from wsgiref.simple_server import make_server, WSGIServer
from socketserver import ThreadingMixIn
import threading
import logging

logger = logging.getLogger(__name__)

VAULT_OUTCOMES = ("win", "loss", "settlement_failed", "oracle_error")


# Threaded WSGI server for the Prometheus metrics
class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """A WSGI server that runs in a separate thread to not block the event loop."""
    allow_reuse_address = True


class Monitor:
    def __init__(self, host="127.0.0.1", port=9090):
        self.host = host
        self.port = port
        self.server = None
        self.thread = None

        # Isolated registry so several instances (and tests) never collide
        self.registry = CollectorRegistry()

        self.vault_attempts = Counter('vault_attempts_total', 'Vault crack attempts by outcome', ['outcome'], registry=self.registry)
        self.entries = Counter('entries_total', 'Combat entries by payment rail', ['rail'], registry=self.registry)
        self.backend_balance = Gauge('backend_signer_balance_lamports', 'Spendable balance of the backend signer', registry=self.registry)
        self.backend_low = Gauge('backend_balance_low', '1 when the backend signer is below its operating floor', registry=self.registry)
        self.current_pot = Gauge('current_pot_lamports', 'Last pot value seen by the relay', registry=self.registry)
        self.relay_subscribers = Gauge('relay_subscribers', 'Connected real-time relay clients', registry=self.registry)
        self.rpc_latency = Histogram('rpc_latency_seconds', 'Chain RPC round-trip latency', ['method'], registry=self.registry)
        self.cpu_usage = Gauge('system_cpu_percent', 'Current CPU usage percent', registry=self.registry)
        self.memory_usage = Gauge('system_memory_percent', 'Current memory usage percent', registry=self.registry)

    def start_server(self):
        """Creates and starts the Prometheus HTTP server with retry logic."""
        app = make_wsgi_app(self.registry)

        max_retries = 5
        retry_delay = 2

        for attempt in range(max_retries):
            try:
                self.server = make_server(self.host, self.port, app, ThreadingWSGIServer)
                self.server.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

                self.thread = threading.Thread(target=self.server.serve_forever)
                self.thread.daemon = True
                self.thread.start()
                logger.info(f"Prometheus server started on http://{self.host}:{self.port}")
                return
            except OSError as e:
                if e.errno == 98:  # Address already in use
                    if attempt < max_retries - 1:
                        logger.warning(f"Port {self.port} in use, retrying in {retry_delay}s (attempt {attempt+1}/{max_retries})...")
                        time.sleep(retry_delay)
                    else:
                        logger.error(f"Failed to bind to port {self.port} after {max_retries} attempts")
                        raise
                else:
                    raise

    def stop_server(self):
        """Stops the HTTP server."""
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            logger.info("Prometheus server stopped.")

    def update(self):
        self.cpu_usage.set(psutil.cpu_percent())
        self.memory_usage.set(psutil.virtual_memory().percent)

    def record_vault_attempt(self, outcome: str):
        if outcome not in VAULT_OUTCOMES:
            raise ValueError(f"Unknown vault outcome: {outcome}")
        self.vault_attempts.labels(outcome=outcome).inc()

    def record_entry(self, rail: str):
        self.entries.labels(rail=rail).inc()

    def record_backend_balance(self, status: dict):
        self.backend_balance.set(status["balance"])
        self.backend_low.set(0 if status["healthy"] else 1)

    def set_pot(self, pot: int):
        self.current_pot.set(pot)

    def set_subscribers(self, count: int):
        self.relay_subscribers.set(count)

    def observe_rpc(self, method: str, seconds: float):
        """Observer hook handed to the RPC client."""
        self.rpc_latency.labels(method=method).observe(seconds)
