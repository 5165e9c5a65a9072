from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True, eq=False)
class Port:
    """A network endpoint found by service discovery.

    Two ports are the same device when address and display name match;
    ``related_identifiers`` does not take part in equality.
    """

    address: str
    display_name: str
    is_network_port: bool = True
    related_identifiers: tuple[str, ...] = ()

    @property
    def key(self) -> tuple[str, str]:
        return (self.address, self.display_name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Port):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)


@dataclass
class CycleStatus:
    ok: bool
    message: str
    discovered: int = 0
    retained: int = 0
    pruned: int = 0
    total: int = 0
    duration_ms: float = 0.0
    cycles: int = 0
    started_at: str = field(default_factory=utc_now)
    finished_at: str = field(default_factory=utc_now)
