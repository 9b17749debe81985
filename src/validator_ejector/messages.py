#!/usr/bin/env python3
"""Pre-signed exit message storage and verification.

Messages are read from a local directory, optionally decrypted, and checked
against the validator's pubkey and the chain's voluntary exit signing
domain before the ejector is allowed to broadcast them.
"""

import hashlib
import json
import logging
from pathlib import Path
from typing import Protocol

from py_ecc.bls import G2ProofOfPossession
from web3 import Web3

from . import keystore
from .consensus_api import ConsensusApi
from .errors import DecryptionError, MessageLoadError, MissingExitMessageError
from .metrics import EjectorMetrics
from .models import ExitMessage, ExitRequestEvent, VerifiedMessageSet

# Get logger for this module
logger = logging.getLogger(__name__)

DOMAIN_VOLUNTARY_EXIT: bytes = bytes.fromhex("04000000")


def _uint64_chunk(value: int) -> bytes:
    return value.to_bytes(8, byteorder='little').ljust(32, b'\x00')


def compute_domain(domain_type: bytes, fork_version: bytes, genesis_validators_root: bytes) -> bytes:
    """Compute a signing domain as defined by the consensus specs."""
    fork_data_root = hashlib.sha256(
        fork_version.ljust(32, b'\x00') + genesis_validators_root
    ).digest()
    return domain_type + fork_data_root[:28]


def compute_signing_root(message: ExitMessage, domain: bytes) -> bytes:
    """Hash-tree-root of a VoluntaryExit combined with its signing domain."""
    object_root = hashlib.sha256(
        _uint64_chunk(int(message.epoch)) + _uint64_chunk(int(message.validator_index))
    ).digest()
    return hashlib.sha256(object_root + domain).digest()


class SignatureVerifier(Protocol):
    def verify(self, pubkey: bytes, signing_root: bytes, signature: bytes) -> bool: ...


class BlsSignatureVerifier:
    """BLS12-381 signature check using the proof-of-possession scheme."""

    def verify(self, pubkey: bytes, signing_root: bytes, signature: bytes) -> bool:
        return G2ProofOfPossession.Verify(pubkey, signing_root, signature)


class MessagesProcessor:
    """Loads, verifies and broadcasts pre-signed exit messages."""

    def __init__(
        self,
        consensus_api: ConsensusApi,
        metrics: EjectorMetrics,
        location: str | None,
        password: str | None = None,
        verifier: SignatureVerifier | None = None
    ) -> None:
        """Initialize the MessagesProcessor.

        Args:
            consensus_api: Beacon API client
            metrics: Metrics holder for message validity counts
            location: Directory with exit message files, None in webhook mode
            password: Password for EIP-2335 encrypted message files
            verifier: Signature verifier (BLS by default)
        """
        self.consensus_api = consensus_api
        self.metrics = metrics
        self.location = location
        self.password = password
        self.verifier: SignatureVerifier = verifier or BlsSignatureVerifier()

    def _read_message(self, path: Path) -> ExitMessage:
        """Parse one message file, decrypting it if it is a keystore.

        Raises:
            ValueError: If the file does not hold a valid exit message
            DecryptionError: If an encrypted file cannot be decrypted
        """
        data = json.loads(path.read_text(encoding="utf-8"))

        if keystore.is_keystore(data):
            if not self.password:
                raise DecryptionError(
                    f"{path.name} is encrypted but MESSAGES_PASSWORD is not set"
                )
            data = json.loads(keystore.decrypt(data, self.password))

        return ExitMessage.from_dict(data)

    def load(self) -> list[ExitMessage]:
        """Read every ``*.json`` message in the configured directory.

        Files that cannot be parsed are logged and counted as invalid.

        Raises:
            MessageLoadError: If the directory does not exist
        """
        if not self.location:
            logger.info("Messages location is not set, skipping message loading")
            return []

        directory = Path(self.location)
        if not directory.is_dir():
            raise MessageLoadError(f"Messages location {self.location} is not a directory")

        logger.info(f"Loading messages from {directory}")

        messages: list[ExitMessage] = []
        for path in sorted(directory.glob("*.json")):
            try:
                messages.append(self._read_message(path))
            except (OSError, ValueError, DecryptionError) as e:
                logger.error(f"Unable to read exit message {path.name}: {e}")
                self.metrics.exit_messages.labels(valid="false").inc()

        logger.info(f"Loaded {len(messages)} messages")
        return messages

    async def verify(self, messages: list[ExitMessage]) -> VerifiedMessageSet:
        """Keep only messages whose signatures match the validator on chain."""
        if not messages:
            logger.info("No messages to verify")
            return VerifiedMessageSet()

        genesis_validators_root = bytes.fromhex(
            (await self.consensus_api.genesis()).removeprefix("0x")
        )
        fork_version = bytes.fromhex(
            (await self.consensus_api.exit_fork_version()).removeprefix("0x")
        )
        domain = compute_domain(DOMAIN_VOLUNTARY_EXIT, fork_version, genesis_validators_root)

        valid: list[ExitMessage] = []
        pubkeys: list[str] = []

        logger.info(f"Validating {len(messages)} messages")
        for ix, message in enumerate(messages, start=1):
            logger.debug(f"Validating message {ix}/{len(messages)}")
            try:
                info = await self.consensus_api.validator_info(message.validator_index)
                pubkey = info["pubkey"]
                is_valid = self.verifier.verify(
                    Web3.to_bytes(hexstr=pubkey),
                    compute_signing_root(message, domain),
                    Web3.to_bytes(hexstr=message.signature),
                )
            except Exception as e:
                logger.error(
                    f"Unable to verify message for validator {message.validator_index}: {e}"
                )
                is_valid = False

            if is_valid:
                valid.append(message)
                pubkeys.append(pubkey)
                self.metrics.exit_messages.labels(valid="true").inc()
            else:
                logger.error(f"Invalid signature for validator {message.validator_index}")
                self.metrics.exit_messages.labels(valid="false").inc()

        logger.info(f"Verified {len(valid)}/{len(messages)} messages")
        return VerifiedMessageSet(valid_messages=tuple(valid), pubkeys=tuple(pubkeys))

    async def exit(self, verified_messages: VerifiedMessageSet, event: ExitRequestEvent) -> None:
        """Broadcast the stored exit message for ``event``'s validator.

        Raises:
            MissingExitMessageError: If no verified message exists for the validator
        """
        message = verified_messages.find(event.validator_index)
        if message is None:
            raise MissingExitMessageError(event.validator_index)

        await self.consensus_api.exit_request(message)
