"""
Validator Ejector application.

Wires the gateways, message store, exit strategy and job scheduler together
and drives the startup sequence.
"""

import logging
from importlib.metadata import PackageNotFoundError, version

from .config import EjectorConfig
from .consensus_api import ConsensusApi
from .execution_api import ExecutionApi
from .exit_status import make_exit_status_oracle
from .exit_strategy import make_exit_strategy
from .job_processor import JobProcessor
from .job_runner import JobRunner
from .messages import MessagesProcessor
from .metrics import EjectorMetrics
from .webhook_client import WebhookClient

logger = logging.getLogger(__name__)

JOB_NAME = "validator-ejector"


def get_version() -> str:
    try:
        return version("validator-ejector")
    except PackageNotFoundError:
        return "unknown"


class Ejector:
    """
    Main service that watches exit requests and dispatches validator exits.

    This class focuses on wiring and lifecycle management, delegating the
    per-pass logic to the JobProcessor and the scheduling to the JobRunner.
    """

    def __init__(self, config: EjectorConfig, metrics: EjectorMetrics | None = None):
        """
        Initialize the Ejector.

        Args:
            config: Ejector configuration
            metrics: Metrics holder (a fresh registry by default)
        """
        self.config = config
        self.metrics = metrics or EjectorMetrics()

        self.execution_api = ExecutionApi(config.chain, config.transport, self.metrics)
        self.consensus_api = ConsensusApi(
            config.chain.consensus_node, config.transport, self.metrics
        )
        self.webhook_client = WebhookClient(config.webhook) if config.webhook else None

        self.messages_processor = MessagesProcessor(
            consensus_api=self.consensus_api,
            metrics=self.metrics,
            location=config.messages_location,
            password=config.messages_password
        )

        self.strategy = make_exit_strategy(
            config, self.messages_processor, self.consensus_api, self.webhook_client
        )

        self.job_processor = JobProcessor(
            execution_api=self.execution_api,
            exit_status=make_exit_status_oracle(
                config.job.exit_status_source, self.consensus_api, self.execution_api
            ),
            strategy=self.strategy,
            metrics=self.metrics,
            dry_run=config.job.dry_run
        )

        self.job_runner = JobRunner(
            name=JOB_NAME,
            handler=self.job_processor.handle_job,
            metrics=self.metrics,
            interval=config.job.interval_seconds,
            halt_on_error=config.job.halt_on_error
        )

    @classmethod
    def from_env(cls) -> "Ejector":
        """
        Create an Ejector instance from environment variables.

        Raises:
            ValueError: If required environment variables are missing
        """
        config = EjectorConfig.from_env()
        return cls(config)

    async def run(self) -> None:
        """Start the service: sync checks, message loading, preload, polling."""
        logger.info(
            f"Validator Ejector v{get_version()} started in {self.config.exit_mode.value} mode"
        )
        self.config.log_config()

        await self.execution_api.check_sync()
        await self.consensus_api.check_sync()

        if self.config.run_metrics:
            self.metrics.serve(self.config.http_port)

        messages = self.messages_processor.load()
        verified_messages = await self.messages_processor.verify(messages)

        job = self.config.job
        logger.info(f"Loading initial events for {job.blocks_preload} last blocks")
        await self.job_runner.once(job.blocks_preload, verified_messages)
        await self.job_runner.pooling(job.blocks_loop, verified_messages)

    def stop(self) -> None:
        """Stop scheduling new passes."""
        self.job_runner.stop()

    async def shutdown(self) -> None:
        """Stop polling and release network resources and the webhook session."""
        logger.info("Shutting down Validator Ejector...")
        self.stop()
        await self.consensus_api.close()
        if self.webhook_client is not None:
            await self.webhook_client.close()
        logger.info("Validator Ejector shutdown complete")
