from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_port(name: str) -> int | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        port = int(raw)
    except ValueError:
        return None
    return port if 0 < port < 65536 else None


# TXT record marker -> canonical board identifier.
BOARD_MARKERS: dict[str, str] = {
    "board=yun": "arduino:avr:yun",
}


@dataclass(frozen=True)
class Settings:
    # Discovery
    service_type: str = os.getenv("NPR_SERVICE_TYPE", "_arduino._tcp.local.")
    discovery_timeout_s: float = _env_float("NPR_DISCOVERY_TIMEOUT_S", 2.0)

    # Reachability probe
    probe_timeout_s: float = _env_float("NPR_PROBE_TIMEOUT_S", 2.0)
    probe_attempts: int = _env_int("NPR_PROBE_ATTEMPTS", 3)
    probe_port: int = _env_int("NPR_PROBE_PORT", 80)
    probe_method: str = os.getenv("NPR_PROBE_METHOD", "tcp")  # tcp|http
    # When set (e.g. 22), the last probe attempt is a TCP connect to this port.
    probe_fallback_port: int | None = _env_port("NPR_PROBE_FALLBACK_PORT")
    probe_workers: int = _env_int("NPR_PROBE_WORKERS", 8)

    # Background loop; 0 disables it.
    poll_interval_s: float = _env_float("NPR_POLL_INTERVAL_S", 0.0)
    log_level: str = os.getenv("NPR_LOG_LEVEL", "INFO")

    # Keep the HTTP app from logging every request at INFO.
    quiet_access_log: bool = _env_bool("NPR_QUIET_ACCESS_LOG", True)


settings = Settings()
