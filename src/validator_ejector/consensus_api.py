import logging
import time
from typing import Any

import httpx

from .config import TransportConfig
from .metrics import EjectorMetrics
from .models import ExitMessage

logger = logging.getLogger(__name__)

# Validator statuses for which an exit has already been initiated
EXITING_STATUSES: frozenset[str] = frozenset({
    "active_exiting",
    "active_slashed",
    "exited_unslashed",
    "exited_slashed",
    "withdrawal_possible",
    "withdrawal_done",
})


class ConsensusApi:
    """Client for the consensus layer Beacon API.

    Answers whether a validator is already exiting and broadcasts signed
    voluntary exits to the node's operation pool.
    """

    def __init__(
        self,
        base_url: str,
        transport_config: TransportConfig,
        metrics: EjectorMetrics,
        transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        """Initialize the Beacon API client.

        Args:
            base_url: Consensus node URL
            transport_config: Timeout and retry settings
            metrics: Metrics holder for request durations
            transport: Custom transport (for testing)
        """
        self.base_url: str = base_url.rstrip('/')
        self.metrics = metrics
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport or httpx.AsyncHTTPTransport(retries=transport_config.retry_count),
            timeout=float(transport_config.request_timeout),
        )

    async def _request(self, method: str, path: str, label: str, **kwargs: Any) -> httpx.Response:
        """Send a request and raise on non-2xx responses.

        Args:
            method: HTTP method
            path: Request path relative to the node URL
            label: Low-cardinality route name used in metrics

        Raises:
            httpx.HTTPError: If the request fails or returns an error status
        """
        started = time.perf_counter()
        result = "error"
        try:
            response: httpx.Response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()
            result = "success"
            return response
        finally:
            self.metrics.consensus_request_duration.labels(
                path=label, result=result
            ).observe(time.perf_counter() - started)

    async def syncing(self) -> bool:
        response = await self._request("GET", "/eth/v1/node/syncing", "syncing")
        is_syncing = bool(response.json()["data"]["is_syncing"])
        logger.debug("Fetched syncing status")
        return is_syncing

    async def check_sync(self) -> None:
        if await self.syncing():
            logger.warning("Consensus node is still syncing! Proceed with caution.")

    async def validator_info(self, validator_id: str) -> dict[str, str]:
        """Fetch a validator by index or pubkey from the head state.

        Returns:
            Dict with ``index``, ``pubkey`` and ``status``
        """
        response = await self._request(
            "GET", f"/eth/v1/beacon/states/head/validators/{validator_id}", "validators"
        )
        data: dict[str, Any] = response.json()["data"]
        info = {
            "index": str(data["index"]),
            "pubkey": data["validator"]["pubkey"],
            "status": data["status"],
        }
        logger.debug(f"Validator {validator_id} info: {info}")
        return info

    async def is_exiting(self, pubkey: str) -> bool:
        """Whether the validator with ``pubkey`` has already initiated its exit."""
        info = await self.validator_info(pubkey)
        return info["status"] in EXITING_STATUSES

    async def genesis(self) -> str:
        """Return the chain's genesis validators root as 0x-hex."""
        response = await self._request("GET", "/eth/v1/beacon/genesis", "genesis")
        return response.json()["data"]["genesis_validators_root"]

    async def state(self) -> dict[str, str]:
        """Return the fork of the finalized state."""
        response = await self._request(
            "GET", "/eth/v1/beacon/states/finalized/fork", "fork"
        )
        return response.json()["data"]

    async def exit_fork_version(self) -> str:
        """Fork version that voluntary exit signatures are bound to.

        Since Deneb (EIP-7044) exits are always signed against the Capella
        fork version; older networks fall back to the current fork.
        """
        response = await self._request("GET", "/eth/v1/config/spec", "spec")
        spec: dict[str, Any] = response.json()["data"]
        if capella := spec.get("CAPELLA_FORK_VERSION"):
            return capella

        fork = await self.state()
        return fork["current_version"]

    async def exit_request(self, message: ExitMessage) -> None:
        """Submit a signed voluntary exit to the node's pool.

        Raises:
            httpx.HTTPStatusError: If the node rejects the exit
        """
        await self._request(
            "POST",
            "/eth/v1/beacon/pool/voluntary_exits",
            "voluntary_exits",
            json=message.to_dict(),
        )
        logger.info(f"Voluntary exit for validator {message.validator_index} sent to Consensus Layer")

    async def close(self) -> None:
        await self.client.aclose()
