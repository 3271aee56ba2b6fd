"""Local persistence for the relay."""

from .sqlite import SqliteRelayRepository

__all__ = ["SqliteRelayRepository"]
