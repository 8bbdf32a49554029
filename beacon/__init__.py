"""Beacon - privacy-scrubbed telemetry report builder."""

__version__ = "0.4.1"
