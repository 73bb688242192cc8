"""
Shared pytest fixtures for loraview tests.

Provides:
- FakeTimer, a recording stand-in for TimerService
- Engine fixtures (synchronous and threaded)
- Packet factories matching the emulator wire format
"""

import uuid
from typing import Any, Dict, List, Tuple

import pytest

from loraview.core.config import AppConfig
from loraview.core.engine import StateEngine


class FakeTimer:
    """Records schedule() calls instead of running a clock."""

    def __init__(self):
        self.scheduled: List[Tuple[Any, float]] = []
        self.sink = None
        self.running = False

    def start(self, sink):
        self.sink = sink
        self.running = True

    def stop(self, timeout: float = 1.0):
        self.running = False

    def schedule(self, token, delay_ms):
        self.scheduled.append((token, delay_ms))

    def fire_all(self) -> List[Any]:
        """Returns every scheduled token once, as if all deadlines passed."""
        tokens = [token for token, _ in self.scheduled]
        self.scheduled.clear()
        return tokens


def unique_topic() -> str:
    return f"loraview_test.t{uuid.uuid4().hex}"


def node_packet(node_id: str, x: float = 0.0, y: float = 0.0, z: float = 0.0,
                tx_gain: float = 14.0, rx_sens: float = -118.0, **extra) -> Dict[str, Any]:
    packet = {"id": node_id, "x": x, "y": y, "z": z, "txGain": tx_gain,
              "rxSens": rx_sens, "online": True, "icon": "router"}
    packet.update(extra)
    return packet


def config_packet(freq=868, gamma=2.5, ref_dist=0.1, km_range=10, stats=None) -> Dict[str, Any]:
    return {
        "event": "Config",
        "freq": freq,
        "gamma": gamma,
        "refDist": ref_dist,
        "kmRange": km_range,
        "startTime": 1700000000000,
        "origin": {"x": 0, "y": 0},
        "curNodeStats": stats or {},
    }


def sending_packet(node_id: str, airtime: float = 40.0, time: Any = 1000) -> Dict[str, Any]:
    return {"event": "NodeSending", "node": {"id": node_id}, "data": {"airtime": airtime}, "time": time}


@pytest.fixture
def settings() -> AppConfig:
    return AppConfig(event_topic=unique_topic())


@pytest.fixture
def fake_timer() -> FakeTimer:
    return FakeTimer()


@pytest.fixture
def engine(fake_timer, settings) -> StateEngine:
    """Engine driven synchronously through apply()/expire(). Not started."""
    return StateEngine(fake_timer, settings)


@pytest.fixture
def running_engine(fake_timer, settings):
    """Engine with its consumer thread running on top of a FakeTimer."""
    eng = StateEngine(fake_timer, settings)
    eng.start()
    yield eng
    eng.stop()
