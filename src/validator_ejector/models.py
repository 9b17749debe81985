#!/usr/bin/env python3
"""Data models for the Validator Ejector.

This module provides immutable data classes for the exit requests decoded
from the execution layer, the block windows they are scanned over, and the
pre-signed exit messages used to act on them.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class ExitRequestEvent:
    """Represents a SigningKeyExiting event from the DepositNodeManager.

    Attributes:
        validator_index: Index of the validator requested to exit
        operator: Checksummed address of the node operator
        pubkey: Validator public key as 0x-prefixed hex (48 bytes)
    """

    validator_index: int
    operator: str
    pubkey: str

    def __str__(self) -> str:
        """Human-readable string representation."""
        return (
            f"ExitRequestEvent(index={self.validator_index}, "
            f"operator={self.operator[:8]}..., "
            f"pubkey={self.pubkey[:12]}...)"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the payload shape expected by the webhook node."""
        return {
            "index": self.validator_index,
            "operator": self.operator,
            "pubkey": self.pubkey
        }


@dataclass(frozen=True, slots=True)
class BlockWindow:
    """Inclusive range of blocks scanned in one job pass.

    Attributes:
        from_block: First block of the window
        to_block: Last block of the window, always a finalized block
    """

    from_block: int
    to_block: int

    @classmethod
    def from_size(cls, to_block: int, size: int) -> "BlockWindow":
        """Build a window of ``size`` blocks ending at ``to_block``."""
        if size < 0:
            raise ValueError(f"Window size must be non-negative, got {size}")
        return cls(from_block=max(0, to_block - size), to_block=to_block)

    @property
    def size(self) -> int:
        return self.to_block - self.from_block


@dataclass(frozen=True, slots=True)
class ExitMessage:
    """A signed voluntary exit as accepted by the consensus layer pool.

    Epoch and validator index are kept as decimal strings, matching the
    consensus API wire format.
    """

    epoch: str
    validator_index: str
    signature: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExitMessage":
        """Parse a ``{message: {epoch, validator_index}, signature}`` record.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        try:
            message = data["message"]
            epoch = str(message["epoch"])
            validator_index = str(message["validator_index"])
            signature = str(data["signature"])
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed exit message: missing {e}") from e

        if not epoch.isdigit() or not validator_index.isdigit():
            raise ValueError(
                f"Malformed exit message: epoch={epoch!r} "
                f"validator_index={validator_index!r}"
            )
        if not signature.startswith("0x"):
            raise ValueError("Malformed exit message: signature must be 0x-prefixed")

        return cls(epoch=epoch, validator_index=validator_index, signature=signature)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the consensus API ``SignedVoluntaryExit`` shape."""
        return {
            "message": {
                "epoch": self.epoch,
                "validator_index": self.validator_index
            },
            "signature": self.signature
        }


@dataclass(frozen=True, slots=True)
class VerifiedMessageSet:
    """Exit messages whose signatures were checked against the chain.

    Attributes:
        valid_messages: Messages that passed signature verification
        pubkeys: Public keys of the validators those messages belong to
    """

    valid_messages: tuple[ExitMessage, ...] = ()
    pubkeys: tuple[str, ...] = ()

    def find(self, validator_index: int) -> ExitMessage | None:
        """Look up the message for a validator, or None if there is none."""
        wanted = str(validator_index)
        for message in self.valid_messages:
            if message.validator_index == wanted:
                return message
        return None

    def __len__(self) -> int:
        return len(self.valid_messages)
