from __future__ import annotations

import asyncio
import logging
import socket
import time
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    ok: bool
    message: str
    latency_ms: float | None = None


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000.0, 2)


def _tcp_connect(address: str, port: int, timeout_s: float) -> tuple[bool, str]:
    with socket.create_connection((address, port), timeout=timeout_s):
        return True, "Connected"


async def _http_head_within(address: str, port: int, timeout_s: float) -> tuple[bool, str]:
    async with httpx.AsyncClient(timeout=timeout_s, follow_redirects=False) as client:
        # httpx timeouts are per read; wait_for caps the whole exchange.
        resp = await asyncio.wait_for(client.head(f"http://{address}:{port}/"), timeout=timeout_s)
    if resp.status_code != 200:
        return False, f"HTTP {resp.status_code}"
    return True, "HTTP 200"


def _http_head(address: str, port: int, timeout_s: float) -> tuple[bool, str]:
    # Runs its own loop; callers are plain threads (probe pool, CLI, sync endpoints).
    return asyncio.run(_http_head_within(address, port, timeout_s))


def probe(address: str, port: int = 80, timeout_s: float = 2.0, method: str = "tcp") -> ProbeResult:
    """Make a single reachability attempt.

    ``method`` is "tcp" (plain connect) or "http" (HEAD /, 200 only).
    Never raises; failures come back as ``ok=False`` with a short message.
    """
    start = time.monotonic()
    try:
        if method == "http":
            ok, msg = _http_head(address, port, timeout_s)
        elif method == "tcp":
            ok, msg = _tcp_connect(address, port, timeout_s)
        else:
            return ProbeResult(False, f"Unknown probe method: {method!r}")
        return ProbeResult(ok, msg, _elapsed_ms(start))
    except (socket.timeout, asyncio.TimeoutError, httpx.TimeoutException):
        return ProbeResult(False, "No response", _elapsed_ms(start))
    except (OSError, httpx.HTTPError) as e:
        return ProbeResult(False, f"Error: {type(e).__name__}: {e}", _elapsed_ms(start))


def is_reachable(
    address: str,
    attempts: int = 3,
    timeout_s: float = 2.0,
    port: int = 80,
    method: str = "tcp",
    fallback_port: int | None = None,
) -> bool:
    """Return True as soon as one attempt succeeds.

    At most ``attempts`` attempts are made, each capped at ``timeout_s``, so a
    dead address costs at most ``attempts * timeout_s``. With ``fallback_port``
    set, the last attempt is a TCP connect to that port instead of another
    try on the primary one (a single attempt still tries both).
    """
    attempts = max(1, int(attempts))
    primary = attempts - 1 if fallback_port is not None and attempts > 1 else attempts
    for attempt in range(1, primary + 1):
        res = probe(address, port=port, timeout_s=timeout_s, method=method)
        if res.ok:
            return True
        logger.debug("Probe %s:%d attempt %d/%d failed: %s", address, port, attempt, attempts, res.message)

    if fallback_port is not None:
        res = probe(address, port=fallback_port, timeout_s=timeout_s, method="tcp")
        if res.ok:
            return True
        logger.debug("Probe %s:%d (fallback) failed: %s", address, fallback_port, res.message)

    return False
