# --- File: loraview/core/feed.py ---
import json
import logging
import threading
import time
from typing import IO, Optional
from pubsub import pub

logger = logging.getLogger(__name__)

def publish_packet(topic: str, packet):
    """Publishes one decoded packet to every listener of `topic`."""
    pub.sendMessage(topic, packet=packet)

def replay_jsonl(stream: IO[str], topic: str, interval: float = 0.0,
                 stop_event: Optional[threading.Event] = None) -> int:
    """
    Publishes each JSON line of `stream` as a packet, in file order.
    Blank lines are skipped, undecodable ones are logged and skipped.
    Returns the number of packets published.
    """
    published = 0
    for line_no, line in enumerate(stream, start=1):
        if stop_event is not None and stop_event.is_set():
            logger.info(f"Replay interrupted after {published} packet(s)")
            break

        line = line.strip()
        if not line:
            continue
        try:
            packet = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping line {line_no}: invalid JSON ({e})")
            continue

        publish_packet(topic, packet)
        published += 1
        if interval > 0:
            time.sleep(interval)

    logger.info(f"Replay finished: {published} packet(s) published to '{topic}'")
    return published

def start_replay_thread(path: str, topic: str, interval: float = 0.0,
                        stop_event: Optional[threading.Event] = None) -> threading.Thread:
    """Replays a JSON-lines file on a background thread."""
    def _worker():
        try:
            with open(path, 'r', encoding='utf-8') as f:
                replay_jsonl(f, topic, interval=interval, stop_event=stop_event)
        except OSError as e:
            logger.error(f"Cannot read replay file '{path}': {e}")

    thread = threading.Thread(target=_worker, name="replay", daemon=True)
    thread.start()
    logger.info(f"Replaying events from '{path}'")
    return thread
