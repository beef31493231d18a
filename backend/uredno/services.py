from __future__ import annotations

from dataclasses import dataclass

from uredno.infra.metrics import Metrics, configure_metrics
from uredno.infra.rate_limit import RateLimiter, create_rate_limiter


@dataclass
class AppServices:
    """Typed container for runtime services stored on `app.state.services`."""

    rate_limiter: RateLimiter
    contact_rate_limiter: RateLimiter
    metrics: Metrics


def build_app_services(app_settings, *, metrics: Metrics | None = None) -> AppServices:
    metrics_client = metrics or configure_metrics(app_settings.metrics_enabled)
    return AppServices(
        rate_limiter=create_rate_limiter(app_settings),
        contact_rate_limiter=create_rate_limiter(
            app_settings,
            requests_per_minute=app_settings.contact_rate_limit_per_minute,
            key_prefix="contact-rate-limit",
        ),
        metrics=metrics_client,
    )
