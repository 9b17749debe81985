#!/usr/bin/env python3
"""Job processing for the Validator Ejector.

One job pass scans a window of finalized blocks for exit requests and acts
on every validator that has not started exiting yet. Failures while acting
on one validator never prevent the rest of the batch from being processed.
"""

import logging

from .execution_api import ExecutionApi
from .exit_status import ExitStatusOracle
from .exit_strategy import ExitStrategy
from .metrics import EjectorMetrics
from .models import BlockWindow, ExitRequestEvent, VerifiedMessageSet

# Get logger for this module
logger = logging.getLogger(__name__)


class JobProcessor:
    """Dispatches exit actions for requested validators.

    This class is responsible for:
    - Re-resolving the contract address and finalized head on every pass
    - Skipping validators the exit status oracle reports as exiting
    - Suppressing side effects in dry run mode
    - Isolating per-validator failures and counting exit actions
    """

    def __init__(
        self,
        execution_api: ExecutionApi,
        exit_status: ExitStatusOracle,
        strategy: ExitStrategy,
        metrics: EjectorMetrics,
        dry_run: bool = False
    ) -> None:
        """Initialize the JobProcessor.

        Args:
            execution_api: Gateway to the execution layer
            exit_status: Authoritative source of validator exit status
            strategy: How exits are carried out, selected at startup
            metrics: Metrics holder
            dry_run: Evaluate requests without acting on them
        """
        self.execution_api = execution_api
        self.exit_status = exit_status
        self.strategy = strategy
        self.metrics = metrics
        self.dry_run = dry_run

    async def handle_job(self, events_number: int, verified_messages: VerifiedMessageSet) -> None:
        """Run one pass over the last ``events_number`` finalized blocks.

        Args:
            events_number: Size of the block window
            verified_messages: Messages verified at startup

        Raises:
            FatalTickError: If the address, finalized head or logs cannot be
                obtained; no exit is attempted in that case
        """
        # Resolve on every job to pick up redeployments without a restart
        await self.execution_api.resolve_contract_address()

        to_block = await self.execution_api.latest_finalized_block()
        window = BlockWindow.from_size(to_block, events_number)
        logger.info(
            f"Fetching exit requests for {events_number} blocks "
            f"({window.from_block}-{window.to_block})"
        )

        events = await self.execution_api.logs(window)
        logger.info(f"Handling {len(events)} ejection requests")

        last_processed_index: int | None = None
        for ix, event in enumerate(events, start=1):
            logger.info(f"Handling exit {ix}/{len(events)}: {event}")
            if await self._handle_event(event, verified_messages):
                last_processed_index = event.validator_index

        logger.info("Updating exit messages left metrics")
        try:
            self.metrics.update_left_messages(
                verified_messages.valid_messages, last_processed_index
            )
        except Exception as e:
            logger.error(f"Unable to update exit messages left metrics: {e}")

        logger.info("Job finished")

    async def _handle_event(
        self,
        event: ExitRequestEvent,
        verified_messages: VerifiedMessageSet
    ) -> bool:
        """Act on a single exit request.

        Returns:
            True if an exit action was carried out successfully
        """
        try:
            if await self.exit_status.is_exiting(event.pubkey):
                logger.info(f"Validator {event.validator_index} is already exiting(ed), skipping")
                return False

            if self.dry_run:
                logger.info(
                    f"Not initiating an exit for validator {event.validator_index} in dry run mode"
                )
                return False

            await self.strategy.exit(event, verified_messages)

        except Exception as e:
            logger.error(f"Unable to process exit for {event.pubkey}: {e}", exc_info=True)
            self.metrics.exit_actions.labels(result="error").inc()
            return False

        logger.info(f"Exit initiated for validator {event.validator_index} ({self.strategy.mode.value})")
        self.metrics.exit_actions.labels(result="success").inc()
        return True
