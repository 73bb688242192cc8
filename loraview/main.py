# loraview/main.py

import logging
import os
import threading
import time

from .core.config import AppConfig, CONFIG_FILENAME
from .core.engine import StateEngine
from .core.feed import start_replay_thread
from .core.timer import TimerService
from .web.app import start_web_app

logger = logging.getLogger(__name__)

def setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

def build_engine(config: AppConfig) -> StateEngine:
    """Wires the timer and the engine together. Nothing is started yet."""
    timer = TimerService(poll_interval=config.timer_poll_interval)
    return StateEngine(timer, config)

def main():
    config_path = os.environ.get("LORAVIEW_CONFIG", CONFIG_FILENAME)
    config = AppConfig.load(config_path)
    setup_logging(config.log_level)

    engine = build_engine(config)
    engine.start()
    if config.mobility_available:
        engine.set_mobility(available=True, paused=False)

    stop_event = threading.Event()
    if config.replay_file:
        start_replay_thread(config.replay_file, config.event_topic,
                            interval=config.replay_interval, stop_event=stop_event)

    if config.web_enabled:
        web_thread = threading.Thread(
            target=start_web_app, args=(engine, config.web_host, config.web_port),
            name="web", daemon=True,
        )
        web_thread.start()

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        stop_event.set()
        engine.stop()

if __name__ == "__main__":
    main()
