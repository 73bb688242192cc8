# --- File: loraview/core/events.py ---
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union
from .models import Node, PropagationConfig, StatTimeline, ACTIVITY_KINDS, SENDING, COLLISION, RECEIVED

# Wire name -> Node attribute, for the optional node fields
NODE_FIELDS = {
    "x": "x",
    "y": "y",
    "z": "z",
    "txGain": "tx_gain",
    "rxSens": "rx_sens",
}

class EventError(ValueError):
    """Raised for packets that cannot be turned into an event."""

@dataclass(frozen=True)
class ConfigEvent:
    config: PropagationConfig
    initial_stats: Dict[str, StatTimeline] = field(default_factory=dict)

@dataclass(frozen=True)
class NodesEvent:
    nodes: Tuple[Node, ...]

@dataclass(frozen=True)
class NodeUpsertEvent:
    """NodeAdded or NodeUpdated. `fields` holds only what the packet carried."""
    kind: str
    node_id: str
    fields: Dict[str, Any]

@dataclass(frozen=True)
class NodeRemovedEvent:
    node_id: str

@dataclass(frozen=True)
class ActivityEvent:
    """NodeSending, NodeReceived or NodeCollision."""
    kind: str # One of ACTIVITY_KINDS
    node_id: str
    timestamp: Any
    duration_ms: Optional[int] = None # None -> engine default window

Event = Union[ConfigEvent, NodesEvent, NodeUpsertEvent, NodeRemovedEvent, ActivityEvent]

# --- Field helpers ---

def _require(packet: Dict[str, Any], key: str) -> Any:
    if key not in packet or packet[key] is None:
        raise EventError(f"Missing field '{key}'")
    return packet[key]

def _require_key(packet: Dict[str, Any], key: str) -> Any:
    if key not in packet:
        raise EventError(f"Missing field '{key}'")
    return packet[key]

def _number(value: Any, name: str) -> float:
    # bool is an int subclass, but never a valid number here
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise EventError(f"Field '{name}' must be a number, got {type(value).__name__}")
    return float(value)

def _node_id(node_data: Any) -> str:
    if not isinstance(node_data, dict):
        raise EventError(f"Field 'node' must be an object, got {type(node_data).__name__}")
    node_id = node_data.get("id")
    if not isinstance(node_id, str) or not node_id:
        raise EventError(f"Node id must be a non-empty string, got {node_id!r}")
    return node_id

def parse_node_fields(node_data: Any) -> Tuple[str, Dict[str, Any]]:
    """Returns (id, {attribute: value}) for the fields present in a node record."""
    node_id = _node_id(node_data)
    fields: Dict[str, Any] = {}
    for wire_name, attr in NODE_FIELDS.items():
        if wire_name in node_data:
            fields[attr] = _number(node_data[wire_name], wire_name)
    if "online" in node_data:
        if not isinstance(node_data["online"], bool):
            raise EventError("Field 'online' must be a boolean")
        fields["online"] = node_data["online"]
    if "icon" in node_data:
        icon = node_data["icon"]
        fields["icon"] = "" if icon is None else str(icon)
    return node_id, fields

def parse_node(node_data: Any) -> Node:
    node_id, fields = parse_node_fields(node_data)
    return Node(id=node_id, **fields)

def _parse_stats(snapshot: Any) -> Dict[str, StatTimeline]:
    if snapshot is None:
        return {}
    if not isinstance(snapshot, dict):
        raise EventError("Field 'curNodeStats' must be an object")

    stats = {}
    for node_id, entry in snapshot.items():
        if not isinstance(entry, dict):
            raise EventError(f"Stats for node {node_id!r} must be an object")
        for kind in ACTIVITY_KINDS:
            total = entry.get(kind, 0)
            if isinstance(total, bool) or not isinstance(total, int) or total < 0:
                raise EventError(f"Stat '{kind}' for node {node_id!r} must be a non-negative integer")
        timeline = entry.get("timeline") or {}
        if not isinstance(timeline, dict) or not all(isinstance(v, list) for v in timeline.values()):
            raise EventError(f"Timeline for node {node_id!r} must map kinds to lists")
        stats[str(node_id)] = StatTimeline.from_snapshot(entry)
    return stats

# --- Per-kind parsers ---

def _parse_config(packet: Dict[str, Any]) -> ConfigEvent:
    origin = packet.get("origin") or {}
    if not isinstance(origin, dict):
        raise EventError("Field 'origin' must be an object")

    start_time = packet.get("startTime")
    config = PropagationConfig(
        freq=_number(_require(packet, "freq"), "freq"),
        gamma=_number(_require(packet, "gamma"), "gamma"),
        ref_dist=_number(_require(packet, "refDist"), "refDist"),
        km_range=_number(_require(packet, "kmRange"), "kmRange"),
        origin=(_number(origin.get("x", 0), "origin.x"), _number(origin.get("y", 0), "origin.y")),
        start_time=None if start_time is None else _number(start_time, "startTime"),
    )
    return ConfigEvent(config=config, initial_stats=_parse_stats(packet.get("curNodeStats")))

def _parse_nodes(packet: Dict[str, Any]) -> NodesEvent:
    # null is an empty list (nil slice on the backend), an absent key is malformed
    nodes = _require_key(packet, "nodes") or []
    if not isinstance(nodes, list):
        raise EventError("Field 'nodes' must be a list")
    return NodesEvent(nodes=tuple(parse_node(n) for n in nodes))

def _parse_upsert(packet: Dict[str, Any]) -> NodeUpsertEvent:
    node_id, fields = parse_node_fields(_require(packet, "node"))
    return NodeUpsertEvent(kind=packet["event"], node_id=node_id, fields=fields)

def _parse_removed(packet: Dict[str, Any]) -> NodeRemovedEvent:
    return NodeRemovedEvent(node_id=_node_id(_require(packet, "node")))

def _parse_sending(packet: Dict[str, Any]) -> ActivityEvent:
    data = _require(packet, "data")
    if not isinstance(data, dict):
        raise EventError("Field 'data' must be an object")
    airtime = _number(_require(data, "airtime"), "data.airtime")
    if not math.isfinite(airtime) or airtime < 0:
        raise EventError(f"Airtime must be a finite non-negative number, got {airtime}")
    return ActivityEvent(
        kind=SENDING,
        node_id=_node_id(_require(packet, "node")),
        timestamp=_require(packet, "time"),
        duration_ms=math.ceil(airtime),
    )

def _activity_parser(kind: str):
    def parse(packet: Dict[str, Any]) -> ActivityEvent:
        return ActivityEvent(
            kind=kind,
            node_id=_node_id(_require(packet, "node")),
            timestamp=_require(packet, "time"),
        )
    return parse

PARSERS = {
    "Config": _parse_config,
    "Nodes": _parse_nodes,
    "NodeAdded": _parse_upsert,
    "NodeUpdated": _parse_upsert,
    "NodeRemoved": _parse_removed,
    "NodeSending": _parse_sending,
    "NodeReceived": _activity_parser(RECEIVED),
    "NodeCollision": _activity_parser(COLLISION),
}

def parse_event(packet: Any) -> Event:
    """
    Turns a decoded wire packet ({"event": <kind>, ...}) into a typed event.
    Raises EventError when the kind is unknown or a field is missing or malformed.
    Nothing is mutated here, so a rejected packet leaves no trace.
    """
    if not isinstance(packet, dict):
        raise EventError(f"Packet must be an object, got {type(packet).__name__}")
    kind = packet.get("event")
    parser = PARSERS.get(kind) if isinstance(kind, str) else None
    if parser is None:
        raise EventError(f"Unknown event kind {kind!r}")
    return parser(packet)
