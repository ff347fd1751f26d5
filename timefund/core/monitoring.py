from typing import Any

import sentry_sdk

from timefund.core.config import settings


def scrub_authorization(event: dict[str, Any], _hint: dict[str, Any]) -> dict[str, Any]:
    headers = event.get("request", {}).get("headers")
    if isinstance(headers, dict):
        for name in list(headers):
            if name.lower() in ("authorization", "cookie"):
                del headers[name]
    return event


def configure_error_monitoring() -> None:
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.env,
            traces_sample_rate=0.2,
            send_default_pii=False,
            before_send=scrub_authorization,
        )
