"""
Data records shared by the sampler, payload builder and reporter.

AgentIdentity lives for the life of the agent; snapshots, envelopes and
alerts are rebuilt on every tick and never reused.
"""
import base64
from dataclasses import dataclass, field
from datetime import datetime
from typing import List


@dataclass(frozen=True)
class AgentIdentity:
    """Static facts about this node, captured once at activation."""
    node_id: str
    version: str
    os_type: str
    arch_type: str
    cpu_info: str = ""
    start_time: float = 0.0  # time.monotonic() at activation
    build_hash: str = ""


@dataclass
class CumulativeCounters:
    """Raw byte totals seen at the previous tick."""
    bytes_sent: int = 0
    bytes_received: int = 0


@dataclass
class ExchangeStats:
    """Block exchange statistics reported by the host node."""
    data_sent: int = 0
    data_received: int = 0
    blocks_sent: int = 0
    blocks_received: int = 0
    peers: List[str] = field(default_factory=list)


@dataclass
class MetricsSnapshot:
    identity: AgentIdentity
    uptime: int = 0           # seconds
    cpu_used: float = 0.0     # percent
    memory_used: int = 0      # KB
    storage_used: int = 0     # KB
    upload: int = 0           # KB since previous tick
    download: int = 0         # KB since previous tick
    total_upload: int = 0     # KB
    total_download: int = 0   # KB
    blocks_up: int = 0
    blocks_down: int = 0
    peers_connected: int = 0


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@dataclass(frozen=True)
class SignedEnvelope:
    """Serialized payload plus detached signature and the signer's public key."""
    payload: bytes
    signature: bytes
    public_key: bytes

    def to_wire(self) -> dict:
        return {
            "payload": _b64(self.payload),
            "signature": _b64(self.signature),
            "public_key": _b64(self.public_key),
        }

    @classmethod
    def from_wire(cls, data: dict) -> "SignedEnvelope":
        return cls(
            payload=base64.b64decode(data["payload"]),
            signature=base64.b64decode(data["signature"]),
            public_key=base64.b64decode(data["public_key"]),
        )


@dataclass(frozen=True)
class HealthAlert:
    """Fallback report naming the stage at which a cycle failed."""
    node_id: str
    version: str
    failure_point: str
    time_created: datetime

    def to_wire(self) -> dict:
        return {
            "node_id": self.node_id,
            "version": self.version,
            "failure_point": self.failure_point,
            "time_created": self.time_created.isoformat(),
        }
