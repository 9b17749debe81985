"""
Webhook node client.

Authenticates against the webhook node by signing the application name,
keeps the returned bearer token in an explicit session and transparently
re-authenticates once when the node rejects it.
"""

import logging
from enum import Enum
from typing import Any

import httpx
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3

from . import keystore
from .config import WebhookConfig
from .errors import DecryptionError, WebhookAuthError
from .models import ExitRequestEvent

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Authentication state of the webhook session."""
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


class WebhookSession:
    """Bearer token held for the webhook node.

    The token is only ever set by a successful authentication and only
    ever dropped by ``invalidate``.
    """

    __slots__ = ("_token",)

    def __init__(self) -> None:
        self._token: str | None = None

    @property
    def state(self) -> SessionState:
        if self._token is None:
            return SessionState.UNAUTHENTICATED
        return SessionState.AUTHENTICATED

    @property
    def token(self) -> str | None:
        return self._token

    def authenticated(self, token: str) -> None:
        if not token:
            raise WebhookAuthError("Webhook node returned an empty token")
        self._token = token

    def invalidate(self) -> None:
        self._token = None


class WebhookClient:
    """Client for the external webhook node."""

    def __init__(
        self,
        config: WebhookConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0
    ) -> None:
        """
        Initialize the webhook client.

        Args:
            config: Webhook endpoints and credentials
            transport: Custom transport (for testing)
            timeout: Per-request timeout in seconds
        """
        self.config = config
        self.session = WebhookSession()
        self.account: LocalAccount = Account.from_key(config.private_key)

        if config.ignore_certificate:
            logger.warning("TLS certificate verification is disabled for the webhook node")

        self.client = httpx.AsyncClient(
            base_url=config.node,
            verify=not config.ignore_certificate,
            transport=transport,
            timeout=timeout,
        )

    def _signed_challenge(self) -> dict[str, Any]:
        """Sign the application name as an EIP-191 personal message."""
        signed = self.account.sign_message(encode_defunct(text=self.config.app_name))
        return {
            "message": self.config.app_name,
            "messageHash": Web3.to_hex(signed.message_hash),
            "v": Web3.to_hex(signed.v),
            "r": Web3.to_hex(signed.r.to_bytes(32, 'big')),
            "s": Web3.to_hex(signed.s.to_bytes(32, 'big')),
            "signature": Web3.to_hex(signed.signature),
        }

    async def authenticate(self) -> None:
        """
        Obtain a fresh bearer token from the webhook node.

        Raises:
            httpx.HTTPStatusError: If the node rejects the signed challenge
            WebhookAuthError: If the node returns an empty token
        """
        payload = {
            "signer": self.account.address,
            "signed": self._signed_challenge(),
        }
        response = await self.client.post(self.config.auth, json=payload)
        response.raise_for_status()

        self.session.authenticated(response.text.strip())
        logger.info(f"{self.account.address} authenticated with webhook node")

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.session.token}"}
        return await self.client.request(method, path, headers=headers, **kwargs)

    async def _authorized_request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """
        Perform a call that needs the bearer token.

        Authenticates first if the session is empty. A 401 response triggers
        exactly one re-authentication and one retry.

        Raises:
            WebhookAuthError: If the retried call is rejected again
            httpx.HTTPStatusError: For any other error status
        """
        if self.session.state is SessionState.UNAUTHENTICATED:
            await self.authenticate()

        response = await self._send(method, path, **kwargs)

        if response.status_code == httpx.codes.UNAUTHORIZED:
            logger.warning("Webhook node rejected the session token, re-authenticating")
            self.session.invalidate()
            await self.authenticate()

            response = await self._send(method, path, **kwargs)
            if response.status_code == httpx.codes.UNAUTHORIZED:
                self.session.invalidate()
                raise WebhookAuthError(
                    f"Webhook node rejected {method} {path} after re-authentication"
                )

        response.raise_for_status()
        return response

    async def send_event(self, event: ExitRequestEvent) -> None:
        """Hand an exit request over to the webhook node."""
        await self._authorized_request("POST", self.config.send, json=event.to_dict())
        logger.info(f"Voluntary exit webhook called successfully for {event}")

    async def get_exit_message(self, event: ExitRequestEvent) -> str:
        """
        Fetch and decrypt the exit message for a validator.

        Returns:
            The decrypted message as JSON text

        Raises:
            DecryptionError: If the payload cannot be decrypted
        """
        path = f"{self.config.get.rstrip('/')}/{event.validator_index}"
        response = await self._authorized_request("GET", path)
        encrypted = response.text
        logger.debug(f"Fetched encrypted exit message for validator {event.validator_index}")

        return self.decrypt_message(encrypted)

    def decrypt_message(self, encrypted: str) -> str:
        content = keystore.decrypt(encrypted, self.config.decrypt_secret)
        try:
            return content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError(f"Decrypted payload is not UTF-8: {e}") from e

    async def close(self) -> None:
        """Drop the session and release the HTTP connection pool."""
        self.session.invalidate()
        await self.client.aclose()
