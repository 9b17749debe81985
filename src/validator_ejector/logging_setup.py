"""Logging configuration for the Validator Ejector."""

import logging
from collections.abc import Iterable

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
REPLACER = '<secret>'


class SecretsFilter(logging.Filter):
    """Replaces configured secret values in rendered log records."""

    def __init__(self, secrets: Iterable[str], replacer: str = REPLACER) -> None:
        super().__init__()
        # Longest first so a secret containing another is fully masked
        self.secrets = sorted({s for s in secrets if s}, key=len, reverse=True)
        self.replacer = replacer

    def sanitize(self, text: str) -> str:
        for secret in self.secrets:
            text = text.replace(secret, self.replacer)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True

        message = record.getMessage()
        sanitized = self.sanitize(message)
        if sanitized != message:
            record.msg = sanitized
            record.args = None

        if record.exc_info and not record.exc_text:
            formatter = logging.Formatter()
            record.exc_text = self.sanitize(formatter.formatException(record.exc_info))
        elif record.exc_text:
            record.exc_text = self.sanitize(record.exc_text)

        return True


def setup_logging(level: str = "INFO", secrets: Iterable[str] = ()) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        secrets: Values to mask in every emitted record
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format=LOG_FORMAT, force=True)

    secrets_filter = SecretsFilter(secrets)
    for handler in logging.getLogger().handlers:
        handler.addFilter(secrets_filter)
