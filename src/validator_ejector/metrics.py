"""
Prometheus metrics for the Validator Ejector.

Metrics live in a dedicated registry so that several instances (and tests)
never collide on the process-wide default registry.
"""

import logging
from collections.abc import Iterable

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server

from .models import ExitMessage

logger = logging.getLogger(__name__)

PREFIX = "validator_ejector_"


class EjectorMetrics:
    """Holds every metric the ejector exports."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()

        self.exit_actions = Counter(
            f"{PREFIX}exit_actions",
            "Exit actions attempted for requested validators",
            labelnames=["result"],
            registry=self.registry,
        )
        self.exit_messages = Counter(
            f"{PREFIX}exit_messages",
            "Pre-signed exit messages loaded, by signature validity",
            labelnames=["valid"],
            registry=self.registry,
        )
        self.exit_messages_left = Gauge(
            f"{PREFIX}exit_messages_left_number",
            "Verified exit messages for validators beyond the last processed request",
            registry=self.registry,
        )
        self.job_duration = Histogram(
            f"{PREFIX}job_duration_seconds",
            "Duration of a job pass",
            labelnames=["name", "result"],
            registry=self.registry,
        )
        self.execution_request_duration = Histogram(
            f"{PREFIX}execution_request_duration_seconds",
            "Duration of execution layer requests",
            labelnames=["method", "result"],
            registry=self.registry,
        )
        self.consensus_request_duration = Histogram(
            f"{PREFIX}consensus_request_duration_seconds",
            "Duration of consensus layer requests",
            labelnames=["path", "result"],
            registry=self.registry,
        )

    def update_left_messages(
        self,
        messages: Iterable[ExitMessage],
        last_processed_index: int | None
    ) -> int:
        """Recompute how many messages remain ahead of the last exit request.

        Args:
            messages: Verified messages available to the ejector
            last_processed_index: Highest validator index handled this pass

        Returns:
            The value the gauge was set to
        """
        if last_processed_index is None:
            left = sum(1 for _ in messages)
        else:
            left = sum(
                1 for message in messages
                if int(message.validator_index) > last_processed_index
            )
        self.exit_messages_left.set(left)
        return left

    def serve(self, port: int) -> None:
        """Expose the registry over HTTP on ``port``."""
        start_http_server(port, registry=self.registry)
        logger.info(f"Metrics server listening on port {port}")
