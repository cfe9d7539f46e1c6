"""
GlitchTip Error Monitoring Utilities

Helper functions for error tracking and context management.
"""

import logging
from typing import Any, Dict, Optional

from shopsync.core.logger import setup_logger

logger = setup_logger(__name__)


def init_monitoring(dsn: Optional[str], environment: str) -> bool:
    """
    Initialize GlitchTip (Sentry-compatible) error monitoring.

    Returns:
        True if monitoring was initialized
    """
    if not dsn:
        return False

    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.logging import LoggingIntegration

        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                LoggingIntegration(
                    level=None,  # Capture all log levels as breadcrumbs
                    event_level=logging.ERROR,  # Send ERROR logs as events
                ),
            ],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.0,
            send_default_pii=False,
        )
        logger.info("GlitchTip error monitoring initialized")
        return True
    except Exception as e:
        logger.error(f"Failed to initialize GlitchTip: {e}")
        return False


def set_webhook_context(
    topic: str,
    shop_domain: Optional[str] = None,
    external_id: Optional[str] = None,
    **extra_tags,
) -> None:
    """
    Set webhook-specific context for error tracking.

    Args:
        topic: Webhook topic (e.g. orders/create)
        shop_domain: Shop domain from the delivery headers
        external_id: Platform id of the entity in the payload
        **extra_tags: Additional tags to add
    """
    try:
        import sentry_sdk

        sentry_sdk.set_tag("webhook.topic", topic)
        if shop_domain:
            sentry_sdk.set_tag("webhook.shop_domain", shop_domain)
        if external_id:
            sentry_sdk.set_tag("webhook.external_id", external_id)

        for key, value in extra_tags.items():
            sentry_sdk.set_tag(key, value)

        context_data = {
            "topic": topic,
            "shop_domain": shop_domain,
            "external_id": external_id,
        }
        context_data.update(extra_tags)
        sentry_sdk.set_context("webhook", context_data)

    except ImportError:
        pass  # Sentry not installed
    except Exception as e:
        logger.warning(f"Failed to set webhook context: {e}")


def capture_exception(
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
    level: str = "error",
) -> None:
    """
    Capture an exception and send to GlitchTip.

    Args:
        error: The exception to capture
        context: Additional context data
        level: Error level (error, warning, info)
    """
    try:
        import sentry_sdk

        with sentry_sdk.new_scope() as scope:
            if context:
                scope.set_context("custom", context)
            scope.level = level
            sentry_sdk.capture_exception(error)

    except ImportError:
        pass  # Sentry not installed
    except Exception as e:
        logger.warning(f"Failed to capture exception in GlitchTip: {e}")
