# --- File: loraview/core/models.py ---
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

# Activity kinds, also the keys used in counters and stat timelines
SENDING = "sending"
COLLISION = "collision"
RECEIVED = "received"
ACTIVITY_KINDS: Tuple[str, ...] = (SENDING, COLLISION, RECEIVED)

@dataclass
class Node:
    """Represents a radio node placed on the emulator grid."""
    id: str
    x: float = 0.0 # km
    y: float = 0.0 # km
    z: float = 0.0 # km
    tx_gain: float = 0.0 # dBm
    rx_sens: float = 0.0 # dBm
    online: bool = True
    icon: str = "" # Presentation hint, never interpreted here

    def position(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def to_dict(self) -> Dict[str, Any]:
        """Serializes back to the wire field names."""
        return {
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "z": self.z,
            "txGain": self.tx_gain,
            "rxSens": self.rx_sens,
            "online": self.online,
            "icon": self.icon,
        }

@dataclass(frozen=True)
class PropagationConfig:
    """Snapshot of the propagation parameters. Replaced whole, never edited."""
    freq: float = 868.0 # MHz
    gamma: float = 2.5 # Path loss exponent
    ref_dist: float = 0.1 # km
    km_range: float = 10.0 # Visible grid extent
    origin: Tuple[float, float] = (0.0, 0.0)
    start_time: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "freq": self.freq,
            "gamma": self.gamma,
            "refDist": self.ref_dist,
            "kmRange": self.km_range,
            "origin": {"x": self.origin[0], "y": self.origin[1]},
            "startTime": self.start_time,
        }

@dataclass(frozen=True)
class ReachLine:
    """Unordered node pair with independent link directions. a < b by id."""
    a: str
    b: str
    a_to_b: bool
    b_to_a: bool

    @property
    def key(self) -> str:
        """Display label only. Ids containing "-" can render the same label, so
        identify a pair by (a, b)."""
        return f"{self.a}-{self.b}"

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "a": self.a, "b": self.b, "aToB": self.a_to_b, "bToA": self.b_to_a}

@dataclass
class ActivityCounters:
    """Number of in-flight events per kind for one node."""
    generation: int = 0
    sending: int = 0
    collision: int = 0
    received: int = 0

    def get(self, kind: str) -> int:
        return getattr(self, kind)

    def increment(self, kind: str):
        setattr(self, kind, getattr(self, kind) + 1)

    def decrement(self, kind: str):
        # Counters never go below zero
        setattr(self, kind, max(0, getattr(self, kind) - 1))

    def to_dict(self) -> Dict[str, int]:
        return {kind: getattr(self, kind) for kind in ACTIVITY_KINDS}

def _empty_timeline() -> Dict[str, List[Any]]:
    return {kind: [] for kind in ACTIVITY_KINDS}

@dataclass
class StatTimeline:
    """Cumulative per-node totals plus the timestamps of every event."""
    sending: int = 0
    collision: int = 0
    received: int = 0
    timeline: Dict[str, List[Any]] = field(default_factory=_empty_timeline)

    def record(self, kind: str, timestamp: Any):
        setattr(self, kind, getattr(self, kind) + 1)
        self.timeline[kind].append(timestamp)

    @classmethod
    def from_snapshot(cls, snapshot: Dict[str, Any]) -> 'StatTimeline':
        """Merges a backend stats snapshot over a zeroed template."""
        stats = cls()
        for kind in ACTIVITY_KINDS:
            setattr(stats, kind, snapshot.get(kind, 0))
        for kind, stamps in (snapshot.get("timeline") or {}).items():
            if kind in stats.timeline:
                stats.timeline[kind] = list(stamps)
        return stats

    def copy(self) -> 'StatTimeline':
        return StatTimeline(
            sending=self.sending,
            collision=self.collision,
            received=self.received,
            timeline={kind: list(stamps) for kind, stamps in self.timeline.items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {kind: getattr(self, kind) for kind in ACTIVITY_KINDS}
        data["timeline"] = {kind: list(stamps) for kind, stamps in self.timeline.items()}
        return data

@dataclass(frozen=True)
class ExpiryToken:
    """Identifies one pending counter decrement."""
    node_id: str
    kind: str
    generation: int
