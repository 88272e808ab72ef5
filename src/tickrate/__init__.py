"""tickrate - rate-of-change sampling core for a metrics collection agent."""

__version__ = "0.1.0"
