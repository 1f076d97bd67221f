from sentry_sdk.integrations.aiohttp import AioHttpIntegration

from tabular_export import config

from .version import get_app_version


def get_sentry_kwargs() -> dict:
    """Keyword arguments for sentry_sdk.init(), built from the config.

    The aiohttp integration traces the requests sent to PostgREST, it must be
    instantiated right before init() is called.
    """
    return {
        "dsn": config.SENTRY_DSN,
        "integrations": [AioHttpIntegration()],
        "environment": config.SERVER_NAME or "unknown",
        "release": f"tabular-export@{get_app_version()}",
        "traces_sample_rate": config.SENTRY_SAMPLE_RATE or 1.0,
    }
