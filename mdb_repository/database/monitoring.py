"""
Command logging for MongoDB clients.

Attach CommandLogger to a client to log every command sent to the server.
Connection managers register it when ``log_queries`` is enabled.
"""

import logging

from pymongo import monitoring

logger = logging.getLogger(__name__)


class CommandLogger(monitoring.CommandListener):
    """Logs command names and bodies at DEBUG, failures at WARNING."""

    def started(self, event: monitoring.CommandStartedEvent) -> None:
        logger.debug(f"{event.command_name} - {event.command}")

    def succeeded(self, event: monitoring.CommandSucceededEvent) -> None:
        logger.debug(
            f"{event.command_name} succeeded in {event.duration_micros / 1000:.2f}ms "
            f"(request_id={event.request_id})"
        )

    def failed(self, event: monitoring.CommandFailedEvent) -> None:
        logger.warning(
            f"{event.command_name} failed in {event.duration_micros / 1000:.2f}ms "
            f"(request_id={event.request_id}): {event.failure}"
        )
