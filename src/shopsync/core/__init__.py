"""Core module - Logging, errors, signature verification and concurrency guards."""

from shopsync.core.logger import setup_logger
from shopsync.core.signature import WebhookVerifier, verify_webhook_signature

__all__ = ["setup_logger", "WebhookVerifier", "verify_webhook_signature"]
