#!/usr/bin/env python3
"""Tests for exit strategy and exit status source selection."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from validator_ejector.config import EjectorConfig, ExitMode, ExitStatusSource
from validator_ejector.exit_status import OnChainExitStatus, make_exit_status_oracle
from validator_ejector.exit_strategy import (
    MessageExitStrategy,
    WebhookFetchStrategy,
    WebhookSendStrategy,
    make_exit_strategy,
)
from validator_ejector.models import ExitMessage, ExitRequestEvent, VerifiedMessageSet

from conftest import WEBHOOK_PRIVATE_KEY

EVENT = ExitRequestEvent(
    validator_index=42,
    operator="0x1234567890123456789012345678901234567890",
    pubkey="0x" + "aa" * 48
)


def webhook_env(base_env, **overrides):
    env = dict(base_env)
    del env["MESSAGES_LOCATION"]
    env.update({
        "VALIDATOR_WEBHOOK_NODE": "https://webhook.example",
        "VALIDATOR_WEBHOOK_AUTH": "/auth",
        "VALIDATOR_WEBHOOK_PRIVATE_KEY": WEBHOOK_PRIVATE_KEY,
        "VALIDATOR_WEBHOOK_APP_NAME": "ejector",
    })
    env.update(overrides)
    return env


class TestMakeExitStrategy:

    def test_message_mode(self, base_env):
        config = EjectorConfig.from_env(base_env)
        strategy = make_exit_strategy(config, MagicMock(), MagicMock(), None)
        assert isinstance(strategy, MessageExitStrategy)
        assert strategy.mode is ExitMode.MESSAGE

    def test_webhook_send_mode(self, base_env):
        config = EjectorConfig.from_env(webhook_env(base_env, VALIDATOR_WEBHOOK_SEND="/exit"))
        strategy = make_exit_strategy(config, MagicMock(), MagicMock(), MagicMock())
        assert isinstance(strategy, WebhookSendStrategy)

    def test_webhook_fetch_mode(self, base_env):
        config = EjectorConfig.from_env(webhook_env(
            base_env,
            VALIDATOR_WEBHOOK_GET="/messages",
            VALIDATOR_WEBHOOK_DECRYPT_SECRET="secret"
        ))
        strategy = make_exit_strategy(config, MagicMock(), MagicMock(), MagicMock())
        assert isinstance(strategy, WebhookFetchStrategy)

    def test_webhook_mode_requires_client(self, base_env):
        config = EjectorConfig.from_env(webhook_env(base_env, VALIDATOR_WEBHOOK_SEND="/exit"))
        with pytest.raises(ValueError, match="requires a webhook client"):
            make_exit_strategy(config, MagicMock(), MagicMock(), None)


class TestStrategies:

    @pytest.mark.asyncio
    async def test_message_strategy(self):
        messages_processor = MagicMock()
        messages_processor.exit = AsyncMock()
        verified = VerifiedMessageSet()

        await MessageExitStrategy(messages_processor).exit(EVENT, verified)

        messages_processor.exit.assert_awaited_once_with(verified, EVENT)

    @pytest.mark.asyncio
    async def test_send_strategy(self):
        webhook_client = MagicMock()
        webhook_client.send_event = AsyncMock()

        await WebhookSendStrategy(webhook_client).exit(EVENT, VerifiedMessageSet())

        webhook_client.send_event.assert_awaited_once_with(EVENT)

    @pytest.mark.asyncio
    async def test_fetch_strategy_broadcasts(self):
        record = {"message": {"epoch": "10", "validator_index": "42"}, "signature": "0xbeef"}
        webhook_client = MagicMock()
        webhook_client.get_exit_message = AsyncMock(return_value=json.dumps(record))
        consensus_api = MagicMock()
        consensus_api.exit_request = AsyncMock()

        await WebhookFetchStrategy(webhook_client, consensus_api).exit(EVENT, VerifiedMessageSet())

        consensus_api.exit_request.assert_awaited_once_with(
            ExitMessage(epoch="10", validator_index="42", signature="0xbeef")
        )

    @pytest.mark.asyncio
    async def test_fetch_strategy_rejects_other_validator(self):
        record = {"message": {"epoch": "10", "validator_index": "41"}, "signature": "0xbeef"}
        webhook_client = MagicMock()
        webhook_client.get_exit_message = AsyncMock(return_value=json.dumps(record))
        consensus_api = MagicMock()
        consensus_api.exit_request = AsyncMock()

        with pytest.raises(ValueError, match="expected 42"):
            await WebhookFetchStrategy(webhook_client, consensus_api).exit(EVENT, VerifiedMessageSet())

        consensus_api.exit_request.assert_not_awaited()


class TestExitStatusOracle:

    def test_consensus_source(self):
        consensus_api = MagicMock()
        assert make_exit_status_oracle(ExitStatusSource.CONSENSUS, consensus_api, MagicMock()) is consensus_api

    @pytest.mark.asyncio
    async def test_execution_source(self):
        execution_api = MagicMock()
        execution_api.is_exiting_on_chain = AsyncMock(return_value=True)

        oracle = make_exit_status_oracle(ExitStatusSource.EXECUTION, MagicMock(), execution_api)

        assert isinstance(oracle, OnChainExitStatus)
        assert await oracle.is_exiting(EVENT.pubkey) is True
        execution_api.is_exiting_on_chain.assert_awaited_once_with(EVENT.pubkey)
