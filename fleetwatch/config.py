import os

from .logs.live_tail import DEDUP_WINDOW


class Settings:
    """
    Centralized fleetwatch configuration.

    Backed by environment variables so the same build can watch a local
    devnet, testnet or mainnet fleet without code changes.

    Container runtime:
      - FLEETWATCH_PROJECT: docker compose project whose containers we watch
      - FLEETWATCH_DOCKER_TIMEOUT: per-call timeout for Docker Engine API calls

    Execution layer:
      - FLEETWATCH_RPC_URL: JSON-RPC endpoint (eth_blockNumber & co.)
      - FLEETWATCH_METRICS_URL: Prometheus endpoint of the execution layer
      - FLEETWATCH_START_BLOCK: first height the transaction monitor treats as
        already seen (unset = adopt current chain height on first poll)

    Refresh cadences (seconds) and channel sizing are tunable for tests and
    slow hosts, defaults match the operator console.
    """

    # ------------------------------------------------------------------
    # Service identity / logging
    # ------------------------------------------------------------------
    SERVICE_NAME: str = os.getenv("OTEL_SERVICE_NAME", "fleetwatch")
    LOG_LEVEL: str = os.getenv("FLEETWATCH_LOG_LEVEL", "INFO")
    HOST: str = os.getenv("FLEETWATCH_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("FLEETWATCH_PORT", "8080"))

    OTel_Endpoint: str = os.getenv(
        "OTEL_EXPORTER_OTLP_ENDPOINT",
        "http://localhost:4317",
    )
    OTEL_ENABLED: bool = (
        os.getenv("FLEETWATCH_OTEL_ENABLED", "false").lower()
        in ("1", "true", "yes", "y")
    )

    # ------------------------------------------------------------------
    # Container runtime
    # ------------------------------------------------------------------
    NETWORK: str = os.getenv("NETWORK", "testnet")
    PROJECT: str = os.getenv("FLEETWATCH_PROJECT", f"igra-orchestra-{NETWORK}")
    DOCKER_TIMEOUT: float = float(os.getenv("FLEETWATCH_DOCKER_TIMEOUT", "5"))

    # Lines of log fed to the per-service metrics extractor
    METRICS_LOG_LINES: int = int(os.getenv("FLEETWATCH_METRICS_LOG_LINES", "20"))
    # Lines re-fetched on each live-tail tick, capped at DEDUP_WINDOW
    TAIL_FETCH_LINES: int = int(os.getenv("FLEETWATCH_TAIL_FETCH_LINES", "100"))

    # ------------------------------------------------------------------
    # Execution layer
    # ------------------------------------------------------------------
    RPC_URL: str = os.getenv("FLEETWATCH_RPC_URL", "http://localhost:9545")
    METRICS_URL: str = os.getenv("FLEETWATCH_METRICS_URL", "http://localhost:9001/metrics")
    RPC_TIMEOUT: float = float(os.getenv("FLEETWATCH_RPC_TIMEOUT", "5"))
    HTTP_TIMEOUT: float = float(os.getenv("FLEETWATCH_HTTP_TIMEOUT", "5"))
    START_BLOCK: str = os.getenv("FLEETWATCH_START_BLOCK", "")

    # Wallet used for L1 fee correlation (worker 0 runs the node's wallet)
    L1_WALLET_WORKER_ID: int = int(os.getenv("FLEETWATCH_L1_WALLET_WORKER_ID", "0"))

    # ------------------------------------------------------------------
    # Refresh cadences (seconds)
    # ------------------------------------------------------------------
    INVENTORY_INTERVAL: float = float(os.getenv("FLEETWATCH_INVENTORY_INTERVAL", "2"))
    STATS_INTERVAL: float = float(os.getenv("FLEETWATCH_STATS_INTERVAL", "2"))
    STATS_INITIAL_DELAY: float = float(os.getenv("FLEETWATCH_STATS_INITIAL_DELAY", "0.5"))
    VERSIONS_INTERVAL: float = float(os.getenv("FLEETWATCH_VERSIONS_INTERVAL", "300"))
    TX_POLL_INTERVAL: float = float(os.getenv("FLEETWATCH_TX_POLL_INTERVAL", "1"))
    L1_REFRESH_INTERVAL: float = float(os.getenv("FLEETWATCH_L1_REFRESH_INTERVAL", "10"))
    TAIL_INTERVAL: float = float(os.getenv("FLEETWATCH_TAIL_INTERVAL", "0.25"))
    FRAME_INTERVAL: float = float(os.getenv("FLEETWATCH_FRAME_INTERVAL", "0.1"))

    # 0 = unbounded. If bounded, publishes that would block are dropped.
    CHANNEL_MAXSIZE: int = int(os.getenv("FLEETWATCH_CHANNEL_MAXSIZE", "0"))

    # ------------------------------------------------------------------
    # Optional transaction recorder
    # ------------------------------------------------------------------
    RECORD_PATH: str = os.getenv("FLEETWATCH_RECORD_PATH", "")
    RECORD_FORMAT: str = os.getenv("FLEETWATCH_RECORD_FORMAT", "text")

    @property
    def OTEL_ENDPOINT(self) -> str:
        return self.OTel_Endpoint

    def __init__(self) -> None:
        if self.CHANNEL_MAXSIZE < 0:
            self.CHANNEL_MAXSIZE = 0
        if self.RECORD_FORMAT not in ("text", "csv", "json"):
            self.RECORD_FORMAT = "text"
        if self.TAIL_FETCH_LINES > DEDUP_WINDOW:
            self.TAIL_FETCH_LINES = DEDUP_WINDOW
        if self.TAIL_FETCH_LINES < 1:
            self.TAIL_FETCH_LINES = 1

    @property
    def start_block(self):
        """Configured baseline height, or None to adopt the chain tip."""
        if not self.START_BLOCK.strip():
            return None
        return int(self.START_BLOCK)


settings = Settings()
