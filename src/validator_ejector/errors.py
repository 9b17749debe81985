"""Exception types raised by the Validator Ejector.

Errors deriving from ``FatalTickError`` abort the current job pass; the
scheduler retries on the next interval. Everything else raised while acting
on a single exit request is caught per event by the job processor.
"""


class EjectorError(Exception):
    """Base class for all ejector errors."""


class FatalTickError(EjectorError):
    """Aborts the current job pass without partial dispatch."""


class ResolutionError(FatalTickError):
    """The DepositNodeManager address could not be resolved via the Locator."""


class RpcError(FatalTickError):
    """An execution layer JSON-RPC call failed or returned unusable data."""


class LogDecodeError(FatalTickError):
    """A log entry did not match the SigningKeyExiting layout."""


class MissingExitMessageError(EjectorError):
    """No verified pre-signed message exists for a requested validator."""

    def __init__(self, validator_index: int) -> None:
        super().__init__(
            f"Validator {validator_index} needs to be exited but "
            "required message was not found / accessible"
        )
        self.validator_index = validator_index


class WebhookAuthError(EjectorError):
    """The webhook node rejected the session even after re-authenticating."""


class DecryptionError(EjectorError):
    """An EIP-2335 payload could not be decrypted."""


class MessageLoadError(EjectorError):
    """Pre-signed exit messages could not be read from storage."""
