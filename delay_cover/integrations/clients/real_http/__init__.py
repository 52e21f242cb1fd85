"""Real HTTP clients, used when provider endpoints are configured."""

from .oracle import HttpOracleDispatcher

__all__ = ["HttpOracleDispatcher"]
