"""
Exit strategies.

The way a validator is exited is decided once, at startup, from which
endpoints are configured. The job processor only ever sees the selected
strategy.
"""

import json
import logging
from typing import Protocol

from .config import EjectorConfig, ExitMode
from .consensus_api import ConsensusApi
from .messages import MessagesProcessor
from .models import ExitMessage, ExitRequestEvent, VerifiedMessageSet
from .webhook_client import WebhookClient

logger = logging.getLogger(__name__)


class ExitStrategy(Protocol):
    mode: ExitMode

    async def exit(self, event: ExitRequestEvent, verified_messages: VerifiedMessageSet) -> None: ...


class MessageExitStrategy:
    """Broadcast a verified pre-signed message from the local store."""

    mode = ExitMode.MESSAGE

    def __init__(self, messages_processor: MessagesProcessor) -> None:
        self.messages_processor = messages_processor

    async def exit(self, event: ExitRequestEvent, verified_messages: VerifiedMessageSet) -> None:
        await self.messages_processor.exit(verified_messages, event)


class WebhookSendStrategy:
    """Ask the webhook node to carry out the exit."""

    mode = ExitMode.WEBHOOK_SEND

    def __init__(self, webhook_client: WebhookClient) -> None:
        self.webhook_client = webhook_client

    async def exit(self, event: ExitRequestEvent, verified_messages: VerifiedMessageSet) -> None:
        await self.webhook_client.send_event(event)


class WebhookFetchStrategy:
    """Fetch the encrypted message from the webhook node and broadcast it."""

    mode = ExitMode.WEBHOOK_FETCH

    def __init__(self, webhook_client: WebhookClient, consensus_api: ConsensusApi) -> None:
        self.webhook_client = webhook_client
        self.consensus_api = consensus_api

    async def exit(self, event: ExitRequestEvent, verified_messages: VerifiedMessageSet) -> None:
        decrypted = await self.webhook_client.get_exit_message(event)
        message = ExitMessage.from_dict(json.loads(decrypted))

        if message.validator_index != str(event.validator_index):
            raise ValueError(
                f"Webhook returned a message for validator {message.validator_index}, "
                f"expected {event.validator_index}"
            )

        await self.consensus_api.exit_request(message)


def make_exit_strategy(
    config: EjectorConfig,
    messages_processor: MessagesProcessor,
    consensus_api: ConsensusApi,
    webhook_client: WebhookClient | None
) -> ExitStrategy:
    """Build the strategy matching the configured exit mode."""
    mode = config.exit_mode
    if mode is not ExitMode.MESSAGE and webhook_client is None:
        raise ValueError(f"Exit mode {mode.value} requires a webhook client")

    match mode:
        case ExitMode.MESSAGE:
            return MessageExitStrategy(messages_processor)
        case ExitMode.WEBHOOK_SEND:
            return WebhookSendStrategy(webhook_client)
        case ExitMode.WEBHOOK_FETCH:
            return WebhookFetchStrategy(webhook_client, consensus_api)
