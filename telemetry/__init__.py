"""Telemetry sinks for post-processed turns."""

from .sinks import TelemetrySink, LoggingTelemetrySink, InMemoryTelemetrySink

__all__ = ["TelemetrySink", "LoggingTelemetrySink", "InMemoryTelemetrySink"]
