#!/usr/bin/env python3
"""Configuration management for the Validator Ejector.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded from environment variables (optionally seeded from a
``.env`` file) with the defaults the service has always shipped with.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import ClassVar
from urllib.parse import urlparse

from dotenv import load_dotenv
from web3 import Web3

# Get logger for this module
logger = logging.getLogger(__name__)


class ExitMode(Enum):
    """How an exit is carried out once a validator is due to leave."""
    MESSAGE = "message"
    WEBHOOK_SEND = "webhook-send"
    WEBHOOK_FETCH = "webhook-fetch"


class ExitStatusSource(Enum):
    """Which layer is authoritative for "is this validator already exiting"."""
    CONSENSUS = "consensus"
    EXECUTION = "execution"


def _validate_http_url(url: str, name: str) -> None:
    if not url:
        raise ValueError(f"{name} is required")

    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https'):
        raise ValueError(
            f"Invalid {name} scheme: {parsed.scheme}. Expected http or https"
        )


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    match value.strip().lower():
        case "true" | "1" | "yes" | "on":
            return True
        case "false" | "0" | "no" | "off":
            return False
        case _:
            raise ValueError(f"Invalid boolean value: {value!r}")


def _parse_int(env: dict[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def env_or_file(env: dict[str, str], name: str) -> str | None:
    """Read ``name`` from the environment, falling back to ``<name>_FILE``.

    Raises:
        ValueError: If ``<name>_FILE`` points to an unreadable file
    """
    if value := env.get(name):
        return value

    file_name = f"{name}_FILE"
    if path := env.get(file_name):
        try:
            return Path(path).read_text(encoding="utf-8").strip()
        except OSError as e:
            raise ValueError(f"Unable to load {file_name}: {e}") from e

    return None


@dataclass(frozen=True, slots=True)
class ChainConfig:
    """Endpoints of the execution and consensus layer nodes.

    Attributes:
        execution_node: JSON-RPC endpoint of the execution client
        consensus_node: Beacon API endpoint of the consensus client
        locator_address: Checksummed address of the Locator contract
    """

    execution_node: str
    consensus_node: str
    locator_address: str

    def __post_init__(self) -> None:
        """Validate chain configuration."""
        _validate_http_url(self.execution_node, "EXECUTION_NODE")
        _validate_http_url(self.consensus_node, "CONSENSUS_NODE")

        # Normalise trailing slashes so paths can be appended directly
        object.__setattr__(self, 'execution_node', self.execution_node.rstrip('/'))
        object.__setattr__(self, 'consensus_node', self.consensus_node.rstrip('/'))

        if not self.locator_address:
            raise ValueError("Locator address is required (LOCATOR_ADDRESS)")

        if not Web3.is_address(self.locator_address):
            raise ValueError(f"Invalid locator address: {self.locator_address}")

        checksummed = Web3.to_checksum_address(self.locator_address)
        if checksummed != self.locator_address:
            # Use object.__setattr__ since dataclass is frozen
            object.__setattr__(self, 'locator_address', checksummed)


@dataclass(frozen=True, slots=True)
class WebhookConfig:
    """Configuration of the external webhook node.

    Attributes:
        node: Base URL of the webhook node
        auth: Path of the authentication endpoint
        send: Path of the exit event endpoint (send mode)
        get: Path of the encrypted message endpoint (fetch mode)
        private_key: Key used to sign the authentication challenge
        app_name: Challenge text signed during authentication
        decrypt_secret: Password of the EIP-2335 payloads returned by ``get``
        ignore_certificate: Skip TLS verification for the webhook node only
    """

    node: str
    auth: str
    private_key: str
    app_name: str
    send: str = ""
    get: str = ""
    decrypt_secret: str = ""
    ignore_certificate: bool = False

    def __post_init__(self) -> None:
        """Validate webhook configuration."""
        _validate_http_url(self.node, "VALIDATOR_WEBHOOK_NODE")
        object.__setattr__(self, 'node', self.node.rstrip('/'))

        if not self.auth:
            raise ValueError("Webhook auth path is required (VALIDATOR_WEBHOOK_AUTH)")
        if not self.app_name:
            raise ValueError("Webhook app name is required (VALIDATOR_WEBHOOK_APP_NAME)")
        if not self.send and not self.get:
            raise ValueError(
                "Either VALIDATOR_WEBHOOK_SEND or VALIDATOR_WEBHOOK_GET must be set"
            )
        if self.get and not self.send and not self.decrypt_secret:
            raise ValueError(
                "VALIDATOR_WEBHOOK_DECRYPT_SECRET is required when fetching "
                "messages via VALIDATOR_WEBHOOK_GET"
            )

        # Should be 64 hex chars, optionally with 0x prefix
        key = self.private_key.removeprefix('0x')
        if len(key) != 64:
            raise ValueError(
                f"Invalid webhook private key length. Expected 64 hex characters, got {len(key)}"
            )
        try:
            int(key, 16)
        except ValueError:
            raise ValueError(
                "Invalid webhook private key format. Must be hexadecimal"
            ) from None

    @property
    def mode(self) -> ExitMode:
        return ExitMode.WEBHOOK_SEND if self.send else ExitMode.WEBHOOK_FETCH


@dataclass(frozen=True, slots=True)
class JobConfig:
    """Configuration of the job scheduler and dispatch behaviour."""
    blocks_preload: int = 50000  # ~7 days of blocks
    blocks_loop: int = 900  # ~3 hours of blocks
    job_interval: int = 384000  # milliseconds, one epoch
    dry_run: bool = False
    halt_on_error: bool = False
    exit_status_source: ExitStatusSource = ExitStatusSource.CONSENSUS

    def __post_init__(self) -> None:
        """Validate job configuration."""
        if self.blocks_preload <= 0:
            raise ValueError(f"Blocks preload must be positive, got {self.blocks_preload}")
        if self.blocks_loop <= 0:
            raise ValueError(f"Blocks loop must be positive, got {self.blocks_loop}")
        if self.job_interval <= 0:
            raise ValueError(f"Job interval must be positive, got {self.job_interval}")

    @property
    def interval_seconds(self) -> float:
        return self.job_interval / 1000


@dataclass(frozen=True, slots=True)
class TransportConfig:
    """HTTP behaviour shared by the execution and consensus clients."""
    request_timeout: int = 30  # seconds
    retry_count: int = 3

    def __post_init__(self) -> None:
        """Validate transport configuration."""
        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")
        if self.retry_count < 0:
            raise ValueError(f"Retry count must be non-negative, got {self.retry_count}")
        if self.retry_count > 10:
            raise ValueError(f"Retry count too high (max 10), got {self.retry_count}")


@dataclass(frozen=True, slots=True)
class EjectorConfig:
    """Main configuration for the Validator Ejector.

    Attributes:
        chain: Execution and consensus endpoints
        job: Scheduler and dispatch settings
        transport: Timeouts and retries for node requests
        webhook: Webhook node settings, None in message mode
        messages_location: Directory holding pre-signed exit messages
        messages_password: Password of encrypted exit messages
        http_port: Port of the metrics HTTP server
        run_metrics: Whether to expose Prometheus metrics
        logger_level: Logging level name
        logger_secrets: Extra values to redact from log output
    """

    chain: ChainConfig
    job: JobConfig = field(default_factory=JobConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    webhook: WebhookConfig | None = None
    messages_location: str | None = None
    messages_password: str | None = None
    http_port: int = 8989
    run_metrics: bool = False
    logger_level: str = "INFO"
    logger_secrets: tuple[str, ...] = ()

    LOG_LEVELS: ClassVar[set[str]] = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}

    def __post_init__(self) -> None:
        """Validate ejector configuration."""
        if self.webhook is None and not self.messages_location:
            raise ValueError(
                "Either MESSAGES_LOCATION or VALIDATOR_WEBHOOK_NODE must be configured"
            )

        if not 0 < self.http_port < 65536:
            raise ValueError(f"Invalid HTTP port: {self.http_port}")

        level = self.logger_level.upper()
        if level not in self.LOG_LEVELS:
            raise ValueError(
                f"Unsupported logger level: {self.logger_level}. "
                f"Supported levels: {', '.join(sorted(self.LOG_LEVELS))}"
            )
        object.__setattr__(self, 'logger_level', level)

    @property
    def exit_mode(self) -> ExitMode:
        """Exit mode, resolved once from which endpoints are configured."""
        if self.webhook is not None:
            return self.webhook.mode
        return ExitMode.MESSAGE

    @property
    def secrets(self) -> tuple[str, ...]:
        """All configured values that must never reach the logs."""
        values = list(self.logger_secrets)
        if self.messages_password:
            values.append(self.messages_password)
        if self.webhook is not None:
            values.append(self.webhook.private_key)
            if self.webhook.decrypt_secret:
                values.append(self.webhook.decrypt_secret)
        return tuple(v for v in values if v)

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> "EjectorConfig":
        """Load configuration from environment variables.

        Args:
            env: Mapping to read from instead of ``os.environ`` (for testing)

        Returns:
            EjectorConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        if env is None:
            load_dotenv()
            env = dict(os.environ)

        chain_config = ChainConfig(
            execution_node=env.get("EXECUTION_NODE", ""),
            consensus_node=env.get("CONSENSUS_NODE", ""),
            locator_address=env.get("LOCATOR_ADDRESS", "")
        )

        try:
            exit_status_source = ExitStatusSource(
                env.get("EXIT_STATUS_SOURCE", "consensus").lower()
            )
        except ValueError:
            raise ValueError(
                f"Invalid EXIT_STATUS_SOURCE: {env.get('EXIT_STATUS_SOURCE')}. "
                "Expected consensus or execution"
            ) from None

        job_config = JobConfig(
            blocks_preload=_parse_int(env, "BLOCKS_PRELOAD", 50000),
            blocks_loop=_parse_int(env, "BLOCKS_LOOP", 900),
            job_interval=_parse_int(env, "JOB_INTERVAL", 384000),
            dry_run=_parse_bool(env.get("DRY_RUN")),
            halt_on_error=_parse_bool(env.get("HALT_ON_JOB_ERROR")),
            exit_status_source=exit_status_source
        )

        transport_config = TransportConfig(
            request_timeout=_parse_int(env, "REQUEST_TIMEOUT", 30),
            retry_count=_parse_int(env, "RETRY_COUNT", 3)
        )

        webhook_config = None
        if webhook_node := env.get("VALIDATOR_WEBHOOK_NODE"):
            webhook_config = WebhookConfig(
                node=webhook_node,
                auth=env.get("VALIDATOR_WEBHOOK_AUTH", ""),
                send=env.get("VALIDATOR_WEBHOOK_SEND", ""),
                get=env.get("VALIDATOR_WEBHOOK_GET", ""),
                private_key=env_or_file(env, "VALIDATOR_WEBHOOK_PRIVATE_KEY") or "",
                app_name=env.get("VALIDATOR_WEBHOOK_APP_NAME", ""),
                decrypt_secret=env_or_file(env, "VALIDATOR_WEBHOOK_DECRYPT_SECRET") or "",
                ignore_certificate=_parse_bool(env.get("IGNORE_FIRST_CERTIFICATION"))
            )

        return cls(
            chain=chain_config,
            job=job_config,
            transport=transport_config,
            webhook=webhook_config,
            messages_location=env.get("MESSAGES_LOCATION") or None,
            messages_password=env_or_file(env, "MESSAGES_PASSWORD"),
            http_port=_parse_int(env, "HTTP_PORT", 8989),
            run_metrics=_parse_bool(env.get("RUN_METRICS")),
            logger_level=env.get("LOGGER_LEVEL", "INFO"),
            logger_secrets=_parse_logger_secrets(env)
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Validator Ejector Configuration")
        logger.info("=" * 60)

        logger.info("Chain:")
        logger.info(f"  Execution Node: {self.chain.execution_node}")
        logger.info(f"  Consensus Node: {self.chain.consensus_node}")
        logger.info(f"  Locator: {self.chain.locator_address}")

        logger.info("Job Settings:")
        logger.info(f"  Blocks Preload: {self.job.blocks_preload}")
        logger.info(f"  Blocks Loop: {self.job.blocks_loop}")
        logger.info(f"  Job Interval: {self.job.interval_seconds} seconds")
        logger.info(f"  Exit Status Source: {self.job.exit_status_source.value}")
        logger.info(f"  Halt On Job Error: {self.job.halt_on_error}")
        logger.info(f"  Dry Run: {self.job.dry_run}")

        logger.info("Transport Settings:")
        logger.info(f"  Request Timeout: {self.transport.request_timeout} seconds")
        logger.info(f"  Retry Count: {self.transport.retry_count}")

        logger.info(f"Exit Mode: {self.exit_mode.value}")
        if self.webhook is not None:
            logger.info(f"  Webhook Node: {self.webhook.node}")
            logger.info(f"  Auth Path: {self.webhook.auth}")
            logger.info(f"  Send Path: {self.webhook.send or '[NOT SET]'}")
            logger.info(f"  Get Path: {self.webhook.get or '[NOT SET]'}")
            logger.info("  Private Key: [CONFIGURED]")
            if self.webhook.ignore_certificate:
                logger.warning("  TLS verification DISABLED for webhook node")
        else:
            logger.info(f"  Messages Location: {self.messages_location}")
            logger.info(
                f"  Messages Password: {'[CONFIGURED]' if self.messages_password else '[NOT SET]'}"
            )

        logger.info("Metrics:")
        logger.info(f"  Enabled: {self.run_metrics}")
        logger.info(f"  HTTP Port: {self.http_port}")

        logger.info("=" * 60)


def _parse_logger_secrets(env: dict[str, str]) -> tuple[str, ...]:
    """Parse LOGGER_SECRETS, resolving entries that name other variables."""
    raw = env.get("LOGGER_SECRETS")
    if not raw:
        return ()

    try:
        entries = json.loads(raw)
    except json.JSONDecodeError:
        raise ValueError("LOGGER_SECRETS must be a JSON array of strings") from None

    if not isinstance(entries, list) or not all(isinstance(e, str) for e in entries):
        raise ValueError("LOGGER_SECRETS must be a JSON array of strings")

    return tuple(env_or_file(env, entry) or entry for entry in entries)
