#!/usr/bin/env python3
"""Tests for secret redaction in logs and the messages-left gauge."""

import logging
import sys

from validator_ejector.logging_setup import REPLACER, SecretsFilter
from validator_ejector.models import ExitMessage


def make_record(msg, args=None, exc_info=None):
    return logging.LogRecord("test", logging.INFO, __file__, 1, msg, args, exc_info)


class TestSecretsFilter:

    def test_masks_formatted_message(self):
        secrets_filter = SecretsFilter(["hunter2"])
        record = make_record("password is %s", ("hunter2",))

        assert secrets_filter.filter(record) is True
        assert record.getMessage() == f"password is {REPLACER}"

    def test_longest_secret_first(self):
        secrets_filter = SecretsFilter(["abc", "abcdef"])
        assert secrets_filter.sanitize("token=abcdef") == f"token={REPLACER}"

    def test_masks_exception_text(self):
        secrets_filter = SecretsFilter(["hunter2"])
        try:
            raise ValueError("bad password hunter2")
        except ValueError:
            record = make_record("failed", exc_info=sys.exc_info())

        secrets_filter.filter(record)

        assert "hunter2" not in record.exc_text
        assert REPLACER in record.exc_text

    def test_no_secrets_leaves_record_untouched(self):
        record = make_record("value %s", ("hunter2",))
        SecretsFilter([""]).filter(record)
        assert record.args == ("hunter2",)


def test_update_left_messages(metrics):
    messages = [
        ExitMessage(epoch="1", validator_index=str(i), signature="0x00") for i in (3, 5, 8)
    ]

    assert metrics.update_left_messages(messages, None) == 3
    assert metrics.update_left_messages(messages, 4) == 2
    assert metrics.update_left_messages(messages, 8) == 0
    assert metrics.update_left_messages([], 1) == 0
