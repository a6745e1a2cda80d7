import os
from dataclasses import dataclass


# Handler-level settings: handlers only receive (conn, payload), so they read
# these at call time instead of through Config.
def import_item_timeout_seconds() -> float:
    raw = os.environ.get("CAIRN_IMPORT_ITEM_TIMEOUT", "30.0")
    try:
        value = float(raw)
    except ValueError:
        return 30.0
    return value if value > 0 else 30.0


def catalog_url() -> str | None:
    return os.environ.get("CAIRN_CATALOG_URL") or None


@dataclass(frozen=True)
class Config:
    database_url: str
    listen_database_url: str
    poll_interval_seconds: float = 5.0
    batch_size: int = 10
    max_retries: int = 3
    health_port: int = 8081
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> "Config":
        database_url = os.environ.get("DATABASE_URL")
        if not database_url:
            raise RuntimeError("DATABASE_URL must be set")

        return cls(
            database_url=database_url,
            listen_database_url=(
                os.environ.get("CAIRN_WORKER_LISTEN_DATABASE_URL") or database_url
            ),
            poll_interval_seconds=float(os.environ.get("CAIRN_POLL_INTERVAL", "5.0")),
            batch_size=int(os.environ.get("CAIRN_BATCH_SIZE", "10")),
            max_retries=int(os.environ.get("CAIRN_MAX_RETRIES", "3")),
            health_port=int(os.environ.get("CAIRN_HEALTH_PORT", "8081")),
            log_format=os.environ.get("CAIRN_LOG_FORMAT", "json"),
        )
