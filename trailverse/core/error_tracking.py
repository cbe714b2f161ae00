import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from trailverse.core.config import settings
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)

def init_sentry() -> bool:
    """Initialize Sentry when a DSN is configured"""
    if not settings.SENTRY_DSN:
        logger.info("SENTRY_DSN not set, error tracking disabled")
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            LoggingIntegration(level=None, event_level=None),
        ],
        traces_sample_rate=0.1,
        environment=settings.ENVIRONMENT,
        release=settings.VERSION,
        # Chat contents and fingerprints stay out of Sentry
        send_default_pii=False,
    )
    logger.info("Sentry initialized")
    return True

class ErrorTracker:
    """Thin wrapper over the Sentry scope API"""

    @staticmethod
    def capture_exception(
        error: Exception,
        context: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        tags: Optional[Dict[str, str]] = None
    ):
        with sentry_sdk.new_scope() as scope:
            if user_id:
                scope.set_user({"id": user_id})

            if context:
                for key, value in context.items():
                    scope.set_context(key, value if isinstance(value, dict) else {"value": value})

            if extra:
                for key, value in extra.items():
                    scope.set_extra(key, value)

            scope.set_tag("error_type", type(error).__name__)
            for key, value in (tags or {}).items():
                scope.set_tag(key, value)
            sentry_sdk.capture_exception(error)

    @staticmethod
    def capture_message(
        message: str,
        level: str = "info",
        context: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ):
        with sentry_sdk.new_scope() as scope:
            if user_id:
                scope.set_user({"id": user_id})

            if context:
                for key, value in context.items():
                    scope.set_context(key, value if isinstance(value, dict) else {"value": value})

            sentry_sdk.capture_message(message, level=level)

error_tracker = ErrorTracker()
