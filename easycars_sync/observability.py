"""Sentry setup shared by the API process and the Celery worker."""

import logging
from typing import Any, Sequence

import sentry_sdk

from easycars_sync.config import Settings

logger = logging.getLogger(__name__)


def init_sentry(settings: Settings, integrations: Sequence[Any], component: str) -> bool:
    """Initialize Sentry when SENTRY_DSN is set. Returns whether it was enabled."""
    if not settings.SENTRY_DSN:
        logger.info("Sentry disabled for %s (no DSN configured)", component)
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        integrations=list(integrations),
    )
    logger.info("Sentry initialized for %s (env: %s)", component, settings.SENTRY_ENVIRONMENT)
    return True


def report_exception(settings: Settings, exc: BaseException) -> None:
    if settings.SENTRY_DSN:
        sentry_sdk.capture_exception(exc)
