#!/usr/bin/env python3
"""Tests for the data models."""

import pytest

from validator_ejector.models import BlockWindow, ExitMessage, ExitRequestEvent, VerifiedMessageSet


def make_message(index, epoch="100"):
    return ExitMessage(epoch=epoch, validator_index=str(index), signature="0x" + "ab" * 96)


class TestBlockWindow:

    def test_preload_window(self):
        window = BlockWindow.from_size(100000, 50000)
        assert window.from_block == 50000
        assert window.to_block == 100000
        assert window.size == 50000

    def test_window_clamped_at_genesis(self):
        window = BlockWindow.from_size(100, 900)
        assert window.from_block == 0
        assert window.to_block == 100

    def test_negative_size(self):
        with pytest.raises(ValueError, match="non-negative"):
            BlockWindow.from_size(100, -1)


class TestExitMessage:

    def test_from_dict(self):
        message = ExitMessage.from_dict({
            "message": {"epoch": 1234, "validator_index": "42"},
            "signature": "0xdead",
        })
        assert message == ExitMessage(epoch="1234", validator_index="42", signature="0xdead")
        assert message.to_dict() == {
            "message": {"epoch": "1234", "validator_index": "42"},
            "signature": "0xdead",
        }

    @pytest.mark.parametrize("data", [
        {"signature": "0xdead"},
        {"message": {"epoch": "1"}, "signature": "0xdead"},
        {"message": {"epoch": "x", "validator_index": "1"}, "signature": "0xdead"},
        {"message": {"epoch": "1", "validator_index": "1"}, "signature": "dead"},
        {"message": None, "signature": "0xdead"},
    ])
    def test_malformed(self, data):
        with pytest.raises(ValueError, match="Malformed exit message"):
            ExitMessage.from_dict(data)


def test_verified_message_set_find():
    messages = VerifiedMessageSet(
        valid_messages=(make_message(1), make_message(7)),
        pubkeys=("0xaa", "0xbb")
    )

    assert messages.find(7) == make_message(7)
    assert messages.find(8) is None
    assert len(messages) == 2


def test_exit_request_event_payload():
    event = ExitRequestEvent(validator_index=5, operator="0xOperator", pubkey="0x" + "11" * 48)
    assert event.to_dict() == {"index": 5, "operator": "0xOperator", "pubkey": "0x" + "11" * 48}
    assert "index=5" in str(event)
