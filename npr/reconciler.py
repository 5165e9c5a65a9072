from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from threading import Event, Lock, Thread
from typing import Callable, Protocol, Sequence

from .browser import DiscoveryError, PortBrowser
from .models import CycleStatus, Port, utc_now
from .prober import is_reachable
from .settings import settings

logger = logging.getLogger(__name__)

ProbeFn = Callable[[str], bool]


class Browser(Protocol):
    def discover(self, service_type: str | None = None, timeout_s: float | None = None) -> list[Port]: ...


def default_probe(address: str) -> bool:
    return is_reachable(
        address,
        attempts=settings.probe_attempts,
        timeout_s=settings.probe_timeout_s,
        port=settings.probe_port,
        method=settings.probe_method,
        fallback_port=settings.probe_fallback_port,
    )


def drop_superseded(known: Sequence[Port], candidates: Sequence[Port]) -> list[Port]:
    """Known ports whose (address, name) key was not rediscovered."""
    fresh = {c.key for c in candidates}
    return [p for p in known if p.key not in fresh]


def prune_unreachable(ports: Sequence[Port], is_alive: ProbeFn, workers: int = 1) -> list[Port]:
    """Stable filter of ``ports`` by ``is_alive(address)``.

    With ``workers > 1`` the probes run on a thread pool; verdicts are still
    matched to ports in input order.
    """
    if not ports:
        return []
    workers = min(max(1, int(workers)), len(ports))
    if workers == 1:
        verdicts = [is_alive(p.address) for p in ports]
    else:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="npr-probe") as pool:
            verdicts = list(pool.map(lambda p: is_alive(p.address), ports))
    return [p for p, ok in zip(ports, verdicts) if ok]


class PortReconciler:
    """Owns the known port set and refreshes it one discovery cycle at a time."""

    def __init__(
        self,
        browser: Browser | None = None,
        is_alive: ProbeFn | None = None,
        service_type: str = settings.service_type,
        discovery_timeout_s: float = settings.discovery_timeout_s,
        probe_workers: int = settings.probe_workers,
    ):
        self.service_type = service_type
        self.discovery_timeout_s = discovery_timeout_s
        self.browser = browser or PortBrowser(service_type, discovery_timeout_s)
        self.is_alive = is_alive or default_probe
        self.probe_workers = max(1, int(probe_workers))

        self._cycle_lock = Lock()  # one cycle at a time
        self._state_lock = Lock()  # guards _known / _status
        self._known: list[Port] = []
        self._status: CycleStatus | None = None
        self._cycles = 0

        self._stop = Event()
        self._thr: Thread | None = None

    def known_ports(self) -> list[Port]:
        with self._state_lock:
            return list(self._known)

    def last_status(self) -> CycleStatus | None:
        with self._state_lock:
            return self._status

    def run_discovery_cycle(self) -> list[Port]:
        """Browse, drop superseded entries, prune dead ones, append fresh ones.

        Raises DiscoveryError when browsing fails; the known set is then left
        exactly as it was.
        """
        with self._cycle_lock:
            started_at = utc_now()
            start = time.monotonic()
            try:
                candidates = list(self.browser.discover(self.service_type, self.discovery_timeout_s))
            except DiscoveryError as e:
                logger.warning("Discovery cycle failed: %s", e)
                self._record(
                    CycleStatus(ok=False, message=str(e), started_at=started_at, duration_ms=_elapsed_ms(start))
                )
                raise

            known = self.known_ports()
            retained = drop_superseded(known, candidates)
            alive = prune_unreachable(retained, self.is_alive, self.probe_workers)
            result = alive + candidates

            logger.debug("Before pruning: %s", [p.key for p in retained])
            dropped = [p for p in retained if p not in alive]
            if dropped:
                logger.debug(
                    "Pruned unreachable: %s",
                    ", ".join(f"{p.display_name} ({p.address})" for p in dropped),
                )
            logger.debug("After pruning: %s", [p.key for p in alive])

            status = CycleStatus(
                ok=True,
                message="OK",
                discovered=len(candidates),
                retained=len(retained),
                pruned=len(retained) - len(alive),
                total=len(result),
                started_at=started_at,
                duration_ms=_elapsed_ms(start),
            )
            with self._state_lock:
                self._known = result
            self._record(status)

            logger.info(
                "Discovery cycle: %d discovered, %d retained, %d pruned, %d total (%.0f ms)",
                status.discovered,
                status.retained,
                status.pruned,
                status.total,
                status.duration_ms,
            )
            return list(result)

    def _record(self, status: CycleStatus) -> None:
        with self._state_lock:
            self._cycles += 1
            status.cycles = self._cycles
            status.finished_at = utc_now()
            self._status = status

    def start(self, interval_s: float = settings.poll_interval_s) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._stop.clear()
        self._thr = Thread(target=self._loop, args=(max(1.0, float(interval_s)),), daemon=True)
        self._thr.start()

    def stop(self, timeout_s: float | None = None) -> None:
        self._stop.set()
        if self._thr:
            self._thr.join(timeout_s)

    def _loop(self, interval_s: float) -> None:
        logger.info("Reconciler started (every %.1fs)", interval_s)
        while not self._stop.is_set():
            try:
                self.run_discovery_cycle()
            except DiscoveryError:
                pass  # already logged; the next tick retries
            except Exception as e:
                logger.error("Reconciler tick failed: %s: %s", type(e).__name__, e)
            self._stop.wait(interval_s)
        logger.info("Reconciler stopped")


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000.0, 2)
