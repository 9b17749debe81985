"""
Validator Ejector package.

Watches exit-request events on the execution layer and dispatches validator
exits via pre-signed messages or an external webhook node.
"""

from .app import Ejector
from .config import EjectorConfig
from .job_processor import JobProcessor
from .job_runner import JobRunner
from .models import BlockWindow, ExitMessage, ExitRequestEvent, VerifiedMessageSet

__all__ = [
    "Ejector",
    "EjectorConfig",
    "JobProcessor",
    "JobRunner",
    "BlockWindow",
    "ExitMessage",
    "ExitRequestEvent",
    "VerifiedMessageSet",
]
__version__ = "0.1.0"
