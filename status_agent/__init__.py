"""Node status agent - periodic signed telemetry for storage nodes."""
__version__ = "0.1.0"
