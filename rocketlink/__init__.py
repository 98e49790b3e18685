"""Rocket state estimation and a frequency-hopping LoRa telemetry protocol."""

__version__ = "0.1.0"