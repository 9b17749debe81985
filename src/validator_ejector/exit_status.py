"""Selects which layer answers "is this validator already exiting"."""

import logging
from typing import Protocol

from .config import ExitStatusSource
from .consensus_api import ConsensusApi
from .execution_api import ExecutionApi

logger = logging.getLogger(__name__)


class ExitStatusOracle(Protocol):
    async def is_exiting(self, pubkey: str) -> bool: ...


class OnChainExitStatus:
    """Reads exit status from the DepositNodeManager contract."""

    def __init__(self, execution_api: ExecutionApi) -> None:
        self.execution_api = execution_api

    async def is_exiting(self, pubkey: str) -> bool:
        return await self.execution_api.is_exiting_on_chain(pubkey)


def make_exit_status_oracle(
    source: ExitStatusSource,
    consensus_api: ConsensusApi,
    execution_api: ExecutionApi
) -> ExitStatusOracle:
    """Return the oracle configured as authoritative."""
    match source:
        case ExitStatusSource.CONSENSUS:
            logger.info("Exit status is read from the Consensus Layer")
            return consensus_api
        case ExitStatusSource.EXECUTION:
            logger.info("Exit status is read from the DepositNodeManager contract")
            return OnChainExitStatus(execution_api)
