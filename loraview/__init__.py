"""Live state engine for the LoRa network emulator front-end."""

__version__ = "0.1.0"
