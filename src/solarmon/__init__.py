"""Solar battery telemetry collection with adaptive voltage calibration."""

__version__ = "0.1.0"
