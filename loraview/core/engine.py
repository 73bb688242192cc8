# --- File: loraview/core/engine.py ---
import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime
from queue import Queue
from typing import Any, Deque, Dict, List, Optional
from pubsub import pub
from .config import AppConfig
from .events import (
    EventError, parse_event,
    ConfigEvent, NodesEvent, NodeUpsertEvent, NodeRemovedEvent, ActivityEvent,
)
from .models import (
    Node, PropagationConfig, ReachLine, ActivityCounters, StatTimeline, ExpiryToken,
    SENDING, COLLISION, RECEIVED,
)
from .path_loss import compute_reach_lines
from .timer import FiredBatch

logger = logging.getLogger(__name__)

# Activity kind -> wire event name, used for the activity log
ACTIVITY_EVENT_NAMES = {
    SENDING: "NodeSending",
    RECEIVED: "NodeReceived",
    COLLISION: "NodeCollision",
}

_STOP = object() # Inbox sentinel

@dataclass(frozen=True)
class MobilityUpdate:
    """Changes the mobility flags. Travels through the inbox like any event."""
    available: bool
    paused: bool

class StateEngine:
    """
    Owns the emulator model: nodes, activity counters, stat timelines,
    propagation config and the derived reach lines.

    Mutations are applied one at a time in arrival order. Packets, timer
    batches and mobility updates all enter through one inbox queue and a
    single consumer thread applies them, so the model has one writer.
    Readers on other threads get copies taken under the lock.
    """
    def __init__(self, timer: Any, settings: Optional[AppConfig] = None):
        settings = settings or AppConfig()
        self._timer = timer
        self._default_window_ms = settings.default_activity_window_ms
        self._topic = settings.event_topic

        self._inbox: Queue = Queue()
        self._lock = threading.RLock()
        self._thread: Optional[threading.Thread] = None
        self._subscribed = False

        # --- Model ---
        self._config: PropagationConfig = settings.propagation()
        self._nodes: Dict[str, Node] = {} # Keeps arrival order
        self._counters: Dict[str, ActivityCounters] = {}
        self._stats: Dict[str, StatTimeline] = {}
        self._reach_lines: List[ReachLine] = []
        self._mobility = {"available": False, "paused": False}
        self._generations = itertools.count(1)

        self._activity_log: Optional[Deque[Dict[str, Any]]] = None
        if settings.activity_log_enabled:
            self._activity_log = deque(maxlen=settings.activity_log_max)

        self._handlers = {
            ConfigEvent: self._apply_config,
            NodesEvent: self._apply_nodes,
            NodeUpsertEvent: self._apply_upsert,
            NodeRemovedEvent: self._apply_removed,
            ActivityEvent: self._apply_activity,
            MobilityUpdate: self._apply_mobility,
        }

    # --- Lifecycle ---

    def start(self):
        """Starts the timer and the consumer thread, and subscribes to the event topic."""
        if self._thread is not None:
            raise RuntimeError("StateEngine is already running")
        with self._lock:
            # Decrements scheduled before a stop were dropped with the timer
            for node_id in self._counters:
                self._counters[node_id] = self._new_counters()
        self._timer.start(self._inbox)
        self._thread = threading.Thread(target=self._run, name="state-engine", daemon=True)
        self._thread.start()
        pub.subscribe(self._on_packet, self._topic)
        self._subscribed = True
        logger.info(f"State engine started, listening on topic '{self._topic}'")

    def stop(self, timeout: float = 2.0):
        """Stops consuming. Pending decrements are dropped with the timer."""
        if self._subscribed:
            pub.unsubscribe(self._on_packet, self._topic)
            self._subscribed = False
        if self._thread is not None:
            self._inbox.put(_STOP)
            self._thread.join(timeout)
            self._thread = None
        self._timer.stop()
        logger.info("State engine stopped")

    def submit(self, item: Any):
        """Queues a raw packet (or a typed event) for ordered application."""
        self._inbox.put(item)

    def set_mobility(self, available: bool, paused: bool):
        self.submit(MobilityUpdate(available=available, paused=paused))

    def wait_idle(self):
        """Blocks until everything queued so far has been applied."""
        self._inbox.join()

    def _on_packet(self, packet):
        """pypubsub listener for the event topic."""
        self.submit(packet)

    def _run(self):
        while True:
            item = self._inbox.get()
            try:
                if item is _STOP:
                    return
                self._dispatch(item)
            finally:
                self._inbox.task_done()

    def _dispatch(self, item: Any):
        try:
            if isinstance(item, FiredBatch):
                self.expire(item.tokens)
            elif isinstance(item, dict):
                self.apply(parse_event(item))
            else:
                self.apply(item)
        except EventError as e:
            logger.warning(f"Dropping malformed event: {e}")
        except Exception as e:
            logger.error(f"Error applying {type(item).__name__}: {e}", exc_info=True)

    # --- Mutations ---

    def apply(self, event: Any):
        """Applies one typed event to the model."""
        handler = self._handlers.get(type(event))
        if handler is None:
            raise EventError(f"Unsupported event type {type(event).__name__}")
        with self._lock:
            handler(event)

    def expire(self, tokens):
        """Applies the decrements for a batch of fired expiry tokens."""
        with self._lock:
            for token in tokens:
                counters = self._counters.get(token.node_id)
                if counters is None or counters.generation != token.generation:
                    # Node removed or counters reset since the token was issued
                    logger.debug(f"Ignoring stale expiry for {token.node_id} ({token.kind})")
                    continue
                counters.decrement(token.kind)

    def _new_counters(self) -> ActivityCounters:
        return ActivityCounters(generation=next(self._generations))

    def _recompute_reach_lines(self):
        self._reach_lines = compute_reach_lines(self._config, self._nodes.values())
        logger.debug(f"Recomputed reach lines: {len(self._reach_lines)} for {len(self._nodes)} nodes")

    def _log_activity(self, event_type: str, data: Dict[str, Any]):
        if self._activity_log is None:
            return
        self._activity_log.append({
            "time": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "type": event_type,
            "data": data,
        })

    def _apply_config(self, event: ConfigEvent):
        self._config = event.config
        self._stats = {node_id: stats.copy() for node_id, stats in event.initial_stats.items()}
        for node_id in self._nodes:
            self._counters[node_id] = self._new_counters()
            self._stats.setdefault(node_id, StatTimeline())
        self._recompute_reach_lines()
        logger.info(f"Propagation config applied: freq={event.config.freq}MHz gamma={event.config.gamma} "
                    f"refDist={event.config.ref_dist}km ({len(event.initial_stats)} node stat snapshot(s))")

    def _apply_nodes(self, event: NodesEvent):
        # Full replace. Counters restart from zero for every node, stats survive for kept ids.
        nodes = {node.id: replace(node) for node in event.nodes}
        self._counters = {node_id: self._new_counters() for node_id in nodes}
        self._stats = {node_id: self._stats.get(node_id) or StatTimeline() for node_id in nodes}
        self._nodes = nodes
        self._recompute_reach_lines()
        logger.info(f"Node set replaced: {len(nodes)} node(s)")

    def _apply_upsert(self, event: NodeUpsertEvent):
        existing = self._nodes.get(event.node_id)
        if existing is None:
            self._nodes[event.node_id] = Node(id=event.node_id, **event.fields)
            self._counters[event.node_id] = self._new_counters()
            # Keep stats seeded by a Config snapshot for this id
            self._stats.setdefault(event.node_id, StatTimeline())
            logger.info(f"Node added: {event.node_id}")
        else:
            self._nodes[event.node_id] = replace(existing, **event.fields)
        if event.kind == "NodeAdded":
            self._log_activity(event.kind, {"node": self._nodes[event.node_id].to_dict()})
        self._recompute_reach_lines()

    def _apply_removed(self, event: NodeRemovedEvent):
        if self._nodes.pop(event.node_id, None) is None:
            logger.debug(f"NodeRemoved for unknown node {event.node_id}")
            return
        logger.info(f"Node removed: {event.node_id}")
        self._counters.pop(event.node_id, None)
        self._stats.pop(event.node_id, None)
        self._log_activity("NodeRemoved", {"node": {"id": event.node_id}})
        self._recompute_reach_lines()

    def _apply_activity(self, event: ActivityEvent):
        counters = self._counters.get(event.node_id)
        if counters is None:
            logger.debug(f"{ACTIVITY_EVENT_NAMES[event.kind]} for unknown node {event.node_id} ignored")
            return

        duration_ms = self._default_window_ms if event.duration_ms is None else event.duration_ms
        # Schedule first: if it fails nothing has been touched yet
        self._timer.schedule(ExpiryToken(event.node_id, event.kind, counters.generation), duration_ms)

        counters.increment(event.kind)
        self._stats.setdefault(event.node_id, StatTimeline()).record(event.kind, event.timestamp)
        self._log_activity(ACTIVITY_EVENT_NAMES[event.kind], {"node": {"id": event.node_id},
                                                             "time": event.timestamp,
                                                             "duration": duration_ms})

    def _apply_mobility(self, event: MobilityUpdate):
        self._mobility = {"available": event.available, "paused": event.paused}
        logger.info(f"Mobility available={event.available} paused={event.paused}")

    # --- Queries (safe from any thread) ---

    def config(self) -> PropagationConfig:
        with self._lock:
            return self._config

    def nodes(self) -> List[Node]:
        with self._lock:
            return [replace(node) for node in self._nodes.values()]

    def node_by_id(self, node_id: str) -> Optional[Node]:
        with self._lock:
            node = self._nodes.get(node_id)
            return replace(node) if node else None

    def reach_lines(self) -> List[ReachLine]:
        with self._lock:
            return list(self._reach_lines)

    def node_state(self) -> Dict[str, Dict[str, int]]:
        with self._lock:
            return {node_id: counters.to_dict() for node_id, counters in self._counters.items()}

    def node_state_by_id(self, node_id: str, kind: str) -> int:
        with self._lock:
            counters = self._counters.get(node_id)
            return counters.get(kind) if counters else 0

    def node_stats(self) -> Dict[str, StatTimeline]:
        with self._lock:
            return {node_id: stats.copy() for node_id, stats in self._stats.items()}

    def events(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._activity_log) if self._activity_log is not None else []

    def mobility(self) -> Dict[str, bool]:
        with self._lock:
            return dict(self._mobility)

    def snapshot(self) -> Dict[str, Any]:
        """Whole query surface as plain JSON-ready data, taken atomically."""
        with self._lock:
            return {
                "config": self._config.to_dict(),
                "nodes": [node.to_dict() for node in self._nodes.values()],
                "reachLines": [line.to_dict() for line in self._reach_lines],
                "nodeState": {nid: c.to_dict() for nid, c in self._counters.items()},
                "nodeStats": {nid: s.to_dict() for nid, s in self._stats.items()},
                "mobility": dict(self._mobility),
            }
