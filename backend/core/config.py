"""
ChainTrace Backend Configuration

Uses pydantic-settings for type-safe environment variable loading.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Public mirror per ledger network; LEDGER_MIRROR_NODE_URL overrides.
MIRROR_NODE_URLS = {
    "mainnet": "https://mainnet-public.mirrornode.hedera.com",
    "testnet": "https://testnet.mirrornode.hedera.com",
    "previewnet": "https://previewnet.mirrornode.hedera.com",
}
DEFAULT_MIRROR_NODE_URL = MIRROR_NODE_URLS["testnet"]

# Find .env file: check CWD first, then parent (project root)
_env_file = Path(".env")
if not _env_file.exists():
    _parent_env = Path(__file__).resolve().parent.parent.parent / ".env"
    if _parent_env.exists():
        _env_file = _parent_env


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "ChainTrace"
    app_version: str = "1.0.0"
    app_env: str = "local"
    debug: bool = False

    # ── Ledger mirror ────────────────────────────────────────────────
    ledger_network: str = "testnet"
    ledger_topic_id: str = ""
    ledger_mirror_node_url: str = ""
    mirror_request_timeout_seconds: float = 10.0
    mirror_history_limit: int = 1000
    mirror_poll_interval_seconds: float = 5.0
    mirror_poll_batch_size: int = 10

    # "mirror_node" in deployments, "in_memory" for local demos
    history_source: str = "mirror_node"

    # Chunk reassembly cache
    chunk_cache_max_messages: int = 1024
    chunk_cache_ttl_seconds: float = 900.0

    # ── Anomaly detection ───────────────────────────────────────────
    anomaly_detection_threshold: float = 0.7
    enable_ai_monitoring: bool = False
    anomaly_model_path: str = ""

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {
        "env_file": str(_env_file),
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    @property
    def mirror_node_url(self) -> str:
        """Explicit mirror URL, else the public mirror of ``ledger_network``."""
        if self.ledger_mirror_node_url:
            return self.ledger_mirror_node_url
        return MIRROR_NODE_URLS.get(self.ledger_network.strip().lower(), "")


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    settings = Settings()
    _enforce_guardrails(settings)
    return settings


def _enforce_guardrails(settings: Settings) -> None:
    if not 0.0 <= settings.anomaly_detection_threshold <= 1.0:
        raise ValueError("anomaly_detection_threshold must be within [0, 1]")
    if not settings.mirror_node_url:
        raise ValueError(
            f"Unknown LEDGER_NETWORK {settings.ledger_network!r}; set LEDGER_MIRROR_NODE_URL"
        )

    env = settings.app_env.strip().lower()
    is_local = env in {"", "local", "dev", "development", "test"}
    if is_local:
        return

    if settings.debug:
        raise ValueError("Refusing to start with debug=true outside local/dev/test")
    if settings.history_source == "mirror_node" and not settings.ledger_topic_id:
        raise ValueError("Refusing to start without LEDGER_TOPIC_ID outside local/dev/test")
