"""Shared fixtures for the Validator Ejector tests."""

import pytest
from prometheus_client import CollectorRegistry

from validator_ejector.metrics import EjectorMetrics

LOCATOR_ADDRESS = "0x85BfE05492aFC3D04Ff3B2ca6771ACF6f853d90d"
WEBHOOK_PRIVATE_KEY = "0x" + "4c" * 32


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    """Metrics bound to a fresh registry per test."""
    return EjectorMetrics(registry)


@pytest.fixture
def base_env():
    """Minimal environment for message mode."""
    return {
        "EXECUTION_NODE": "http://execution:8545",
        "CONSENSUS_NODE": "http://consensus:5052",
        "LOCATOR_ADDRESS": LOCATOR_ADDRESS,
        "MESSAGES_LOCATION": "/tmp/messages",
    }


def exit_actions(registry, result):
    return registry.get_sample_value(
        "validator_ejector_exit_actions_total", {"result": result}
    ) or 0.0
