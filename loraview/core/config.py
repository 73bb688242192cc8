# --- File: loraview/core/config.py ---
import yaml
import os
import logging
from dataclasses import dataclass
from typing import Optional
from .models import PropagationConfig

logger = logging.getLogger(__name__)

# Default config filename, can be overridden with the LORAVIEW_CONFIG env var
CONFIG_FILENAME = "config.yaml"

@dataclass
class AppConfig:
    """Represents the overall application configuration."""
    # --- Propagation defaults (used until the backend sends a Config event) ---
    freq: float = 868.0 # MHz
    gamma: float = 2.5
    ref_dist: float = 0.1 # km
    km_range: float = 10.0
    # --- Timer ---
    timer_poll_interval: float = 0.01 # seconds
    default_activity_window_ms: int = 500 # received/collision decay window
    # --- Activity Log ---
    activity_log_enabled: bool = False
    activity_log_max: int = 1000
    # --- Event Fan-in ---
    event_topic: str = "loraview.event"
    replay_file: Optional[str] = None # JSON lines, one packet per line
    replay_interval: float = 0.0 # seconds between replayed packets
    mobility_available: bool = False # Backend runs a mobility model that can be paused
    # --- Web Interface ---
    web_enabled: bool = True
    web_host: str = "127.0.0.1"
    web_port: int = 5000
    # --- Logging ---
    log_level: str = "INFO"

    def propagation(self) -> PropagationConfig:
        """Initial propagation snapshot built from these defaults."""
        return PropagationConfig(freq=self.freq, gamma=self.gamma,
                                 ref_dist=self.ref_dist, km_range=self.km_range)

    @classmethod
    def load(cls, config_path: str = CONFIG_FILENAME) -> 'AppConfig':
        """Loads configuration from a YAML file."""
        if not os.path.exists(config_path):
            logger.warning(f"Configuration file '{config_path}' not found. Using default values.")
            return cls()

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f)

            if not config_data: # Handle empty config file
                logger.warning(f"Configuration file '{config_path}' is empty. Using default values.")
                return cls()

            if not isinstance(config_data, dict):
                raise ValueError(f"Expected a mapping at the top level, got {type(config_data).__name__}")

            # Let the dataclass handle defaults for missing keys, ignore unknown ones
            valid_keys = cls.__annotations__.keys()
            unknown_keys = sorted(k for k in config_data if k not in valid_keys)
            if unknown_keys:
                logger.warning(f"Ignoring unknown configuration keys: {unknown_keys}")
            filtered_config_data = {k: v for k, v in config_data.items() if k in valid_keys}

            return cls(**filtered_config_data)

        except yaml.YAMLError as e:
            logger.error(f"Error parsing configuration file '{config_path}': {e}")
            raise # Re-raise after logging
        except Exception as e:
            logger.error(f"Error loading configuration from '{config_path}': {e}")
            raise # Re-raise other errors
