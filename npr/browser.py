"""mDNS/DNS-SD browsing for network ports.

A browse runs for a fixed window. zeroconf's browser thread hands each
announced name to a small resolver pool and queues the pending resolution in
arrival order; a timer closes the window by setting the cutoff flag and
enqueueing a sentinel. The caller drains the queue up to the sentinel, so
everything announced before the cutoff is kept (one slow device cannot hold
up the others) and later announcements are dropped.
"""
from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import CancelledError, Executor, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Iterable, Mapping

from zeroconf import IPVersion, ServiceBrowser, ServiceListener, Zeroconf

from .models import Port
from .settings import BOARD_MARKERS, settings

logger = logging.getLogger(__name__)

# Upper bound for resolving a single announcement.
RESOLVE_TIMEOUT_MS = 3000
RESOLVE_WORKERS = 8
# Slack for resolutions that end right at the deadline.
RESOLVE_GRACE_S = 0.1

_CUTOFF = object()


class DiscoveryError(Exception):
    """Discovery could not run; the caller should keep its previous view."""


class DiscoveryInitError(DiscoveryError):
    pass


class BrowseStartError(DiscoveryError):
    pass


def instance_name(name: str, service_type: str) -> str:
    suffix = f".{service_type}"
    if name.endswith(suffix):
        return name[: -len(suffix)]
    return name


def txt_entries(properties: Mapping[Any, Any] | None) -> list[str]:
    """Render TXT properties as ``key=value`` strings (``key`` when valueless)."""
    entries: list[str] = []
    for k, v in (properties or {}).items():
        if k is None:
            continue
        key = k.decode(errors="ignore") if isinstance(k, bytes) else str(k)
        if v is None:
            entries.append(key)
            continue
        value = v.decode(errors="ignore") if isinstance(v, bytes) else str(v)
        entries.append(f"{key}={value}")
    return entries


def related_identifiers(entries: Iterable[str], markers: Mapping[str, str] = BOARD_MARKERS) -> tuple[str, ...]:
    found: list[str] = []
    for entry in entries:
        for marker, identifier in markers.items():
            if marker in entry:
                found.append(identifier)
    return tuple(found)


def port_from_info(info: Any, name: str, service_type: str) -> Port | None:
    """Build a Port from a resolved ServiceInfo; None without an IPv4 address."""
    addresses = info.parsed_addresses(IPVersion.V4Only)
    if not addresses:
        return None
    return Port(
        address=addresses[0],
        display_name=instance_name(name, service_type),
        related_identifiers=related_identifiers(txt_entries(info.properties)),
    )


class _AnnouncementListener(ServiceListener):
    """Hands announced names to the resolver pool without blocking zeroconf's thread."""

    def __init__(
        self,
        service_type: str,
        announcements: queue.Queue,
        cutoff: threading.Event,
        deadline: float,
        resolver: Executor,
    ):
        self.service_type = service_type
        self._announcements = announcements
        self._cutoff = cutoff
        self._deadline = deadline
        self._resolver = resolver

    def add_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        if self._cutoff.is_set():
            return
        remaining_ms = int((self._deadline - time.monotonic()) * 1000)
        if remaining_ms <= 0:
            return
        try:
            fut = self._resolver.submit(self._resolve, zc, type_, name, min(RESOLVE_TIMEOUT_MS, remaining_ms))
        except RuntimeError:
            # pool shut down: the browse is already over
            return
        self._announcements.put(fut)

    def _resolve(self, zc: Zeroconf, type_: str, name: str, timeout_ms: int) -> Port | None:
        try:
            info = zc.get_service_info(type_, name, timeout=timeout_ms)
            if info is None:
                logger.debug("No service info for %s", name)
                return None
            port = port_from_info(info, name, self.service_type)
        except Exception as e:
            logger.debug("Could not resolve %s: %s: %s", name, type(e).__name__, e)
            return None
        if port is None:
            logger.debug("Skipping %s: no IPv4 address", name)
        return port

    def remove_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        pass

    def update_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        pass


class PortBrowser:
    """Collects network ports advertised under a DNS-SD service type."""

    def __init__(
        self,
        service_type: str = settings.service_type,
        timeout_s: float = settings.discovery_timeout_s,
        zeroconf_factory: Callable[[], Any] = Zeroconf,
        browser_factory: Callable[[Any, str, ServiceListener], Any] = ServiceBrowser,
    ):
        self.service_type = service_type
        self.timeout_s = timeout_s
        self._zeroconf_factory = zeroconf_factory
        self._browser_factory = browser_factory

    def discover(self, service_type: str | None = None, timeout_s: float | None = None) -> list[Port]:
        service_type = service_type or self.service_type
        timeout_s = self.timeout_s if timeout_s is None else max(0.0, float(timeout_s))

        try:
            zc = self._zeroconf_factory()
        except Exception as e:
            logger.warning("Failed to initialize resolver: %s", e)
            raise DiscoveryInitError(f"Failed to initialize resolver: {e}") from e

        announcements: queue.Queue = queue.Queue()
        cutoff = threading.Event()
        deadline = time.monotonic() + timeout_s
        resolver = ThreadPoolExecutor(max_workers=RESOLVE_WORKERS, thread_name_prefix="npr-resolve")
        listener = _AnnouncementListener(service_type, announcements, cutoff, deadline, resolver)
        timer = threading.Timer(timeout_s, self._close_window, args=(cutoff, announcements))
        timer.daemon = True
        browser = None
        try:
            timer.start()
            try:
                browser = self._browser_factory(zc, service_type, listener)
            except Exception as e:
                logger.warning("Failed to browse %s: %s", service_type, e)
                raise BrowseStartError(f"Failed to browse {service_type}: {e}") from e

            pending: list[Future] = []
            while True:
                item = announcements.get()
                if item is _CUTOFF:
                    break
                pending.append(item)
            ports = self._collect(pending, deadline)
            logger.debug("Browse of %s found %d port(s)", service_type, len(ports))
            return ports
        finally:
            timer.cancel()
            if browser is not None:
                browser.cancel()
            resolver.shutdown(wait=False, cancel_futures=True)
            zc.close()

    @staticmethod
    def _collect(pending: list[Future], deadline: float) -> list[Port]:
        """Results of the in-window announcements, in arrival order.

        Resolutions still running shortly after the deadline are dropped.
        """
        ports: list[Port] = []
        for fut in pending:
            try:
                port = fut.result(timeout=max(0.0, deadline + RESOLVE_GRACE_S - time.monotonic()))
            except (FutureTimeout, CancelledError):
                logger.debug("Dropping an announcement still resolving at the cutoff")
                continue
            if port is not None:
                ports.append(port)
        return ports

    @staticmethod
    def _close_window(cutoff: threading.Event, announcements: queue.Queue) -> None:
        cutoff.set()
        announcements.put(_CUTOFF)
