import os

from swaptrack.core.errors import ConfigError

# Database
DATABASE_URL = os.environ.get("DATABASE_URL")

# Stream transport & enrichment APIs
HELIUS_API_KEY = os.environ.get("HELIUS_API_KEY", "")
HELIUS_WS_URL = os.environ.get(
    "HELIUS_WS_URL",
    f"wss://atlas-mainnet.helius-rpc.com/?api-key={HELIUS_API_KEY}" if HELIUS_API_KEY else "",
)
HELIUS_RPC_URL = os.environ.get(
    "HELIUS_RPC_URL",
    f"https://mainnet.helius-rpc.com/?api-key={HELIUS_API_KEY}",
)
SHYFT_API_KEY = os.environ.get("SHYFT_API_KEY", "")
SOLSCAN_API_KEY = os.environ.get("SOLSCAN_API_KEY", "")

# Wallets we track at boot (comma-separated env var); more can be set at runtime
TRACKED_ADDRESSES = [
    a.strip() for a in os.environ.get("TRACKED_ADDRESSES", "").split(",") if a.strip()
]

COMMITMENT = os.environ.get("COMMITMENT", "confirmed")

# Reconnection policy
RETRY_DELAY_SECONDS = float(os.environ.get("RETRY_DELAY_SECONDS", "1.0"))
MAX_RETRY_WITH_LAST_SLOT = int(os.environ.get("MAX_RETRY_WITH_LAST_SLOT", "30"))

# Enrichment queue
QUEUE_TICK_SECONDS = float(os.environ.get("QUEUE_TICK_SECONDS", "2.0"))
MAX_CONCURRENT = int(os.environ.get("MAX_CONCURRENT", "3"))
HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "15"))
FIRST_TX_RETRY_DELAY_SECONDS = float(os.environ.get("FIRST_TX_RETRY_DELAY_SECONDS", "10"))
FIRST_TX_PAGE_SIZE = int(os.environ.get("FIRST_TX_PAGE_SIZE", "20"))

# Skip-token cache
SKIP_CACHE_TTL_SECONDS = float(os.environ.get("SKIP_CACHE_TTL_SECONDS", "300"))

# Side-effect queue (fire-and-forget writes off the hot path)
SIDE_EFFECT_QUEUE_SIZE = int(os.environ.get("SIDE_EFFECT_QUEUE_SIZE", "10000"))
SIDE_EFFECT_WORKERS = int(os.environ.get("SIDE_EFFECT_WORKERS", "4"))

# Decoder schemas: comma-separated "package.module:Name" entries, each an
# InstructionSchema subclass, instance, or factory returning a list of them
DECODER_SCHEMAS = [
    s.strip() for s in os.environ.get("DECODER_SCHEMAS", "").split(",") if s.strip()
]

# Ingestion control
TRACKER_AUTOSTART = os.environ.get("TRACKER_AUTOSTART", "0") == "1"


def validate_startup_config():
    """
    Fail fast on configuration the service cannot run without.
    Called before the pool opens or any stream is subscribed.
    """
    missing = []
    if not DATABASE_URL:
        missing.append("DATABASE_URL")
    if not HELIUS_WS_URL:
        missing.append("HELIUS_WS_URL (or HELIUS_API_KEY)")
    if missing:
        raise ConfigError(f"Missing required configuration: {', '.join(missing)}")

    optional = {
        "HELIUS_API_KEY": HELIUS_API_KEY,
        "SHYFT_API_KEY": SHYFT_API_KEY,
        "SOLSCAN_API_KEY": SOLSCAN_API_KEY,
    }
    return [name for name, value in optional.items() if not value]
