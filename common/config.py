from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _default_env_file() -> str:
    # .env at the repository root, next to pyproject.toml.
    repo_root = Path(__file__).resolve().parents[1]
    return str(repo_root / ".env")


@dataclass(frozen=True)
class Settings:
    host: str
    port: int
    log_level: str

    # Ordering buffer
    buffer_capacity: int
    buffer_drain_interval_ms: int

    # Stale rebroadcast
    stale_check_interval_ms: int
    stale_threshold_ms: int

    # Availability windows
    telemetry_timeout_s: float
    side_timeout_s: float

    default_supply_voltage: float

    # Resource ceilings (exceeding either one is fatal)
    memory_limit_mb: float
    max_connections: int
    resource_check_interval_s: float

    ws_max_message_bytes: int
    operator_email_domain: str
    cors_allow_origins: tuple[str, ...]


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("TELEMETRY_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    origins = os.getenv("CORS_ALLOW_ORIGINS", "*")

    return Settings(
        host=os.getenv("TELEMETRY_HOST", "0.0.0.0"),
        port=int(os.getenv("TELEMETRY_PORT", "3000")),
        log_level=os.getenv("TELEMETRY_LOG_LEVEL", "INFO").upper(),
        buffer_capacity=int(os.getenv("BUFFER_CAPACITY", "100")),
        buffer_drain_interval_ms=int(os.getenv("BUFFER_DRAIN_INTERVAL_MS", "50")),
        stale_check_interval_ms=int(os.getenv("STALE_CHECK_INTERVAL_MS", "100")),
        stale_threshold_ms=int(os.getenv("STALE_THRESHOLD_MS", "5000")),
        telemetry_timeout_s=float(os.getenv("TELEMETRY_TIMEOUT_S", "30")),
        side_timeout_s=float(os.getenv("SIDE_TIMEOUT_S", "10")),
        default_supply_voltage=float(os.getenv("DEFAULT_SUPPLY_VOLTAGE", "12.0")),
        memory_limit_mb=float(os.getenv("MEMORY_LIMIT_MB", "400")),
        max_connections=int(os.getenv("MAX_CONNECTIONS", "100")),
        resource_check_interval_s=float(os.getenv("RESOURCE_CHECK_INTERVAL_S", "60")),
        ws_max_message_bytes=int(os.getenv("WS_MAX_MESSAGE_BYTES", "1048576")),
        operator_email_domain=os.getenv("OPERATOR_EMAIL_DOMAIN", "realheart.se").strip().lower(),
        cors_allow_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
    )
