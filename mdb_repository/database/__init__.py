"""
Database connection layer.

Connection factories for the blocking and asyncio drivers, plus an optional
command logger.
"""

from .connection import AsyncConnectionManager, ConnectionManager
from .monitoring import CommandLogger

__all__ = [
    "ConnectionManager",
    "AsyncConnectionManager",
    "CommandLogger",
]
