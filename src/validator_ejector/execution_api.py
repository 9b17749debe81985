"""
Execution layer gateway.

Resolves the DepositNodeManager address through the Locator, reads the latest
finalized block and fetches SigningKeyExiting logs over a block window.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

import requests
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from web3 import Web3
from web3.providers.rpc.utils import ExceptionRetryConfiguration
from web3.types import LogReceipt, TxData

from .config import ChainConfig, TransportConfig
from .errors import LogDecodeError, ResolutionError, RpcError
from .metrics import EjectorMetrics
from .models import BlockWindow, ExitRequestEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXIT_EVENT_SIGNATURE = "SigningKeyExiting(uint256,address,bytes)"
EXIT_EVENT_TOPIC: str = Web3.to_hex(Web3.keccak(text=EXIT_EVENT_SIGNATURE))

GET_ADDRESS_SELECTOR: bytes = Web3.keccak(text="getAddress(bytes32)")[:4]
GET_NODE_VALIDATOR_SELECTOR: bytes = Web3.keccak(text="getNodeValidatorByPubkey(bytes)")[:4]

DEPOSIT_NODE_MANAGER_KEY: bytes = Web3.solidity_keccak(
    ['string', 'string'], ['contract.address', 'DepositNodeManager']
)

ZERO_ADDRESS = "0x" + "0" * 40
PUBKEY_LENGTH = 48

# Node validator statuses reported by getNodeValidatorByPubkey
ON_CHAIN_EXITING_STATUSES: frozenset[int] = frozenset({3, 4})  # EXITING, EXITED

# Transport failures retried by the HTTP provider
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    ConnectionError,
    requests.HTTPError,
    requests.Timeout,
)


def topic_to_bytes(topic: Any) -> bytes:
    """
    Normalise an event topic to 32 raw bytes.

    Topics come back as HexBytes from web3, but may be hex strings when
    logs are relayed from another source.
    """
    if isinstance(topic, bytes):
        raw = bytes(topic)
    elif isinstance(topic, str):
        raw = bytes.fromhex(topic.removeprefix('0x'))
    else:
        raise LogDecodeError(f"Unexpected topic type: {type(topic).__name__}")

    if len(raw) != 32:
        raise LogDecodeError(f"Topic must be 32 bytes, got {len(raw)}")
    return raw


def decode_exit_request(log: LogReceipt | dict[str, Any]) -> ExitRequestEvent:
    """
    Decode a SigningKeyExiting log entry.

    Layout: topics[1] = indexed validatorId (uint256), topics[2] = indexed
    operator (address), data = abi-encoded pubkey (bytes).

    :raises LogDecodeError: If the log does not match the layout
    """
    try:
        topics = [topic_to_bytes(t) for t in log["topics"]]
        if len(topics) != 3:
            raise LogDecodeError(f"Expected 3 topics, got {len(topics)}")
        if Web3.to_hex(topics[0]) != EXIT_EVENT_TOPIC:
            raise LogDecodeError(f"Unexpected event topic {Web3.to_hex(topics[0])}")

        validator_index = int.from_bytes(topics[1], byteorder='big')
        operator = Web3.to_checksum_address(Web3.to_hex(topics[2][-20:]))

        data = log["data"]
        if isinstance(data, str):
            data = bytes.fromhex(data.removeprefix('0x'))
        (pubkey,) = decode(['bytes'], bytes(data))
    except LogDecodeError:
        raise
    except (KeyError, ValueError, TypeError, DecodingError) as e:
        raise LogDecodeError(f"Unable to decode SigningKeyExiting log: {e}") from e

    if len(pubkey) != PUBKEY_LENGTH:
        raise LogDecodeError(f"Pubkey must be {PUBKEY_LENGTH} bytes, got {len(pubkey)}")

    return ExitRequestEvent(
        validator_index=validator_index,
        operator=operator,
        pubkey=Web3.to_hex(pubkey)
    )


class ExecutionApi:
    """
    Read-only access to the execution layer.
    """

    def __init__(
        self,
        chain: ChainConfig,
        transport: TransportConfig,
        metrics: EjectorMetrics,
        w3: Web3 | None = None
    ) -> None:
        """
        Initialize the execution gateway.

        :param chain: Chain configuration with node URL and Locator address
        :param transport: Timeout and retry settings
        :param metrics: Metrics holder for request durations
        :param w3: Pre-built Web3 instance (for testing)
        """
        self.locator_address = chain.locator_address
        self.metrics = metrics
        self.w3 = w3 or Web3(Web3.HTTPProvider(
            chain.execution_node,
            request_kwargs={'timeout': transport.request_timeout},
            exception_retry_configuration=ExceptionRetryConfiguration(
                errors=RETRYABLE_ERRORS,
                retries=transport.retry_count
            )
        ))
        self.deposit_node_manager_address: str | None = None

    async def _request(self, method: str, call: Callable[[], T]) -> T:
        """Run a blocking web3 call off the event loop and time it."""
        started = time.perf_counter()
        result = "error"
        try:
            value = await asyncio.to_thread(call)
            result = "success"
            return value
        finally:
            self.metrics.execution_request_duration.labels(
                method=method, result=result
            ).observe(time.perf_counter() - started)

    async def syncing(self) -> bool:
        """Whether the execution node reports it is still syncing."""
        status = await self._request("eth_syncing", lambda: self.w3.eth.syncing)
        logger.debug("Fetched syncing status")
        return bool(status)

    async def check_sync(self) -> None:
        if await self.syncing():
            logger.warning("Execution node is still syncing! Proceed with caution.")

    async def latest_finalized_block(self) -> int:
        """
        Fetch the number of the latest finalized block.

        :raises RpcError: If the block cannot be fetched or has no number
        """
        try:
            block = await self._request(
                "eth_getBlockByNumber", lambda: self.w3.eth.get_block('finalized')
            )
            number = int(block['number'])
        except Exception as e:
            raise RpcError(f"Unable to fetch the latest finalized block: {e}") from e

        logger.debug(f"Fetched latest finalized block {number}")
        return number

    async def get_transaction(self, tx_hash: str) -> TxData:
        try:
            return await self._request(
                "eth_getTransactionByHash", lambda: self.w3.eth.get_transaction(tx_hash)
            )
        except Exception as e:
            raise RpcError(f"Unable to fetch transaction {tx_hash}: {e}") from e

    async def resolve_contract_address(self) -> str:
        """
        Resolve the DepositNodeManager address using the Locator.

        Called on every job so that redeployments are picked up without
        restarting the service.

        :raises ResolutionError: If the call fails or returns no usable address
        """
        call_data = GET_ADDRESS_SELECTOR + encode(['bytes32'], [DEPOSIT_NODE_MANAGER_KEY])

        try:
            raw = await self._request("eth_call", lambda: self.w3.eth.call(
                {'to': self.locator_address, 'data': Web3.to_hex(call_data)},
                'finalized'
            ))
            (address,) = decode(['address'], bytes(raw))
        except Exception as e:
            logger.error(f"Unable to resolve DepositNodeManager contract: {e}")
            raise ResolutionError(
                "Unable to resolve DepositNodeManager contract address using the Locator. "
                "Please make sure LOCATOR_ADDRESS is correct."
            ) from e

        if not address or address.lower() == ZERO_ADDRESS:
            raise ResolutionError(
                f"Locator {self.locator_address} returned no DepositNodeManager address"
            )

        self.deposit_node_manager_address = Web3.to_checksum_address(address)
        logger.info(
            "Resolved DepositNodeManager contract address using the Locator: "
            f"{self.deposit_node_manager_address}"
        )
        return self.deposit_node_manager_address

    async def logs(self, window: BlockWindow) -> list[ExitRequestEvent]:
        """
        Fetch and decode SigningKeyExiting events in ``window``.

        Events are returned in chain order. A single undecodable log fails
        the whole batch.

        :raises ResolutionError: If no contract address has been resolved yet
        :raises RpcError: If the logs cannot be fetched
        :raises LogDecodeError: If any log does not match the event layout
        """
        if not self.deposit_node_manager_address:
            raise ResolutionError("DepositNodeManager address has not been resolved")

        log_filter = {
            'fromBlock': window.from_block,
            'toBlock': window.to_block,
            'address': self.deposit_node_manager_address,
            'topics': [EXIT_EVENT_TOPIC],
        }

        try:
            raw_logs = await self._request("eth_getLogs", lambda: self.w3.eth.get_logs(log_filter))
        except Exception as e:
            raise RpcError(
                f"Unable to fetch logs for blocks {window.from_block}-{window.to_block}: {e}"
            ) from e

        logger.info(f"Loaded {len(raw_logs)} SigningKeyExiting events")

        events = [decode_exit_request(log) for log in raw_logs]
        for ix, event in enumerate(events, start=1):
            logger.debug(f"Decoded {ix}/{len(events)}: {event}")
        return events

    async def is_exiting_on_chain(self, pubkey: str) -> bool:
        """
        Ask the DepositNodeManager whether a validator is exiting.

        :raises ResolutionError: If no contract address has been resolved yet
        """
        if not self.deposit_node_manager_address:
            raise ResolutionError("DepositNodeManager address has not been resolved")

        call_data = GET_NODE_VALIDATOR_SELECTOR + encode(
            ['bytes'], [bytes.fromhex(pubkey.removeprefix('0x'))]
        )
        raw = await self._request("eth_call", lambda: self.w3.eth.call(
            {'to': self.deposit_node_manager_address, 'data': Web3.to_hex(call_data)},
            'finalized'
        ))
        (status,) = decode(['uint8'], bytes(raw))
        logger.debug(f"On-chain status of {pubkey[:12]}...: {status}")
        return status in ON_CHAIN_EXITING_STATUSES
