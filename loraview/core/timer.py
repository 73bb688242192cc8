# --- File: loraview/core/timer.py ---
import heapq
import itertools
import logging
import threading
import time
from dataclasses import dataclass
from queue import Queue, Empty
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.01 # seconds

@dataclass(frozen=True)
class FiredBatch:
    """All tokens whose deadline had passed at one poll."""
    tokens: Tuple[Any, ...]

class TimerService:
    """
    Hands tokens back once their delay has elapsed.

    The clock loop runs on its own thread with a monotonic clock, so its
    progress does not depend on how busy the consuming thread is. Requests
    arrive through a queue and due tokens leave as one FiredBatch put on
    the sink queue per poll. The service never runs callbacks and knows
    nothing about what a token means.
    """
    def __init__(self, poll_interval: float = DEFAULT_POLL_INTERVAL,
                 clock: Callable[[], float] = time.monotonic):
        self.poll_interval = poll_interval
        self._clock = clock
        self._requests: Queue = Queue()
        self._pending: List[Tuple[float, int, Any]] = [] # heap of (deadline, seq, token)
        self._seq = itertools.count()
        self._sink: Optional[Queue] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, sink: Queue):
        """Starts the clock loop. Fired batches are put on `sink`."""
        if self.running:
            raise RuntimeError("TimerService is already running")
        self._sink = sink
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="timer-service", daemon=True)
        self._thread.start()
        logger.info(f"Timer service started (poll every {self.poll_interval * 1000:.0f}ms)")

    def stop(self, timeout: float = 1.0):
        """Stops the loop. Outstanding tokens are discarded."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self._drain_requests()
        if self._pending:
            logger.debug(f"Timer service stopped, discarding {len(self._pending)} pending token(s)")
        self._pending.clear()
        logger.info("Timer service stopped")

    def schedule(self, token: Any, delay_ms: float):
        """Registers `token` to fire once `delay_ms` has elapsed from now."""
        if delay_ms < 0:
            raise ValueError(f"Delay must be >= 0, got {delay_ms}")
        if not self.running:
            raise RuntimeError("TimerService is not running")
        # Deadline is fixed here, not when the loop picks the request up
        deadline = self._clock() + delay_ms / 1000.0
        self._requests.put((deadline, token))

    def _drain_requests(self):
        try:
            while True:
                deadline, token = self._requests.get_nowait()
                heapq.heappush(self._pending, (deadline, next(self._seq), token))
        except Empty:
            pass

    def _collect_due(self) -> List[Any]:
        now = self._clock()
        due = []
        while self._pending and self._pending[0][0] <= now:
            _, _, token = heapq.heappop(self._pending)
            due.append(token)
        return due

    def _run(self):
        while not self._stop_event.wait(self.poll_interval):
            self._drain_requests()
            due = self._collect_due()
            if due:
                self._sink.put(FiredBatch(tuple(due)))
