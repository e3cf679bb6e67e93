# burn_engine/monitoring.py
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


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """Serves metric scrapes on their own threads."""
    allow_reuse_address = True
    daemon_threads = True


class Monitor:
    def __init__(self, host="127.0.0.1", port=9109, serve=False):
        self.host = host
        self.port = port
        self.server = None
        self.thread = None

        # Isolated registry so several engines can live in one process
        self.registry = CollectorRegistry()

        self.instructions = Counter(
            'burn_engine_instructions_total', 'Instructions processed',
            ['ix_type', 'status'], registry=self.registry)
        self.rejections = Counter(
            'burn_engine_rejections_total', 'Rejected operations by error code',
            ['code', 'category'], registry=self.registry)
        self.instruction_latency = Histogram(
            'burn_engine_instruction_latency_seconds', 'Time to process an instruction',
            registry=self.registry)
        self.total_burned = Gauge(
            'burn_engine_total_burned', 'Cumulative tokens burned', registry=self.registry)
        self.total_sol_collected = Gauge(
            'burn_engine_total_sol_collected', 'Cumulative lamports collected', registry=self.registry)
        self.total_buybacks = Gauge(
            'burn_engine_total_buybacks', 'Completed buyback cycles', registry=self.registry)
        self.consecutive_failures = Gauge(
            'burn_engine_consecutive_failures', 'Failures since the last successful burn',
            registry=self.registry)
        self.paused = Gauge(
            'burn_engine_paused', '1 while the engine is paused or inactive', registry=self.registry)
        self.pending_burn = Gauge(
            'burn_engine_pending_burn', 'Tokens bought and awaiting burn', registry=self.registry)
        self.pending_fees = Gauge(
            'burn_engine_pending_fees', 'Validated fees awaiting allocation', ['mint'],
            registry=self.registry)
        self.cpu_usage = Gauge('system_cpu_percent', 'Current CPU usage percent', registry=self.registry)
        self.memory_usage = Gauge('system_memory_percent', 'Current memory usage percent', registry=self.registry)

        if serve:
            self.start_server()

    def start_server(self, max_retries: int = 5, retry_delay: float = 2):
        """Start the Prometheus exposition server on a daemon thread."""
        app = make_wsgi_app(self.registry)
        for attempt in range(max_retries):
            try:
                self.server = make_server(self.host, self.port, app, ThreadingWSGIServer)
                self.server.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
                self.thread.start()
                logger.info(f"Prometheus server started on http://{self.host}:{self.port}")
                return
            except OSError as e:
                if e.errno == 98 and attempt < max_retries - 1:
                    logger.warning(f"Port {self.port} in use, retrying in {retry_delay}s "
                                   f"(attempt {attempt + 1}/{max_retries})")
                    time.sleep(retry_delay)
                else:
                    logger.error(f"Failed to bind metrics server to port {self.port}: {e}")
                    raise

    def stop_server(self):
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            logger.info("Prometheus server stopped.")

    def record_instruction(self, ix_type: str, status: str, latency: float):
        self.instructions.labels(ix_type=ix_type, status=status).inc()
        self.instruction_latency.observe(latency)

    def record_rejection(self, code: str, category: str):
        self.rejections.labels(code=code, category=category).inc()

    def update(self, treasury, token_stats=()):
        """Refresh gauges from the current records."""
        if treasury is not None:
            self.total_burned.set(treasury.total_burned)
            self.total_sol_collected.set(treasury.total_sol_collected)
            self.total_buybacks.set(treasury.total_buybacks)
            self.consecutive_failures.set(treasury.consecutive_failures)
            self.paused.set(0 if treasury.is_operational else 1)
            self.pending_burn.set(treasury.pending_burn_amount)
        for stats in token_stats:
            self.pending_fees.labels(mint=stats.mint.hex()[:16]).set(stats.pending_fees)

        self.cpu_usage.set(psutil.cpu_percent())
        self.memory_usage.set(psutil.virtual_memory().percent)
