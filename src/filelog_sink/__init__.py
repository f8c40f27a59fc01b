"""Templated, rotation-aware file sink for structured log events."""

__version__ = "0.1.0"
