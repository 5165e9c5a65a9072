from __future__ import annotations

from pydantic import BaseModel, Field

from .models import CycleStatus, Port


class PortOut(BaseModel):
    address: str = Field(..., description="IPv4 address of the device")
    display_name: str = Field(..., description="Advertised service instance name")
    is_network_port: bool = True
    related_identifiers: list[str] = Field(default_factory=list, description="Board identifiers, e.g. arduino:avr:yun")

    @classmethod
    def from_port(cls, port: Port) -> "PortOut":
        return cls(
            address=port.address,
            display_name=port.display_name,
            is_network_port=port.is_network_port,
            related_identifiers=list(port.related_identifiers),
        )


class CycleStatusOut(BaseModel):
    ok: bool
    message: str
    discovered: int = Field(0, ge=0)
    retained: int = Field(0, ge=0)
    pruned: int = Field(0, ge=0)
    total: int = Field(0, ge=0)
    duration_ms: float = Field(0.0, ge=0)
    cycles: int = Field(0, ge=0)
    started_at: str
    finished_at: str

    @classmethod
    def from_status(cls, st: CycleStatus) -> "CycleStatusOut":
        return cls(
            ok=st.ok,
            message=st.message,
            discovered=st.discovered,
            retained=st.retained,
            pruned=st.pruned,
            total=st.total,
            duration_ms=st.duration_ms,
            cycles=st.cycles,
            started_at=st.started_at,
            finished_at=st.finished_at,
        )
