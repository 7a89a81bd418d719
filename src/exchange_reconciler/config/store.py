"""Entity store credentials and connection settings."""

from __future__ import annotations

from dataclasses import dataclass

from .env import first_env_var
from .errors import MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig

INSTANT_BASE_URL = "https://api.instantdb.com"
INSTANT_TIMEOUT_SECONDS = 60.0

APP_ID_VARS = ("INSTANT_APP_ID", "NEXT_PUBLIC_INSTANT_APP_ID")
ADMIN_TOKEN_VARS = ("INSTANT_ADMIN_TOKEN",)


@dataclass(frozen=True)
class StoreConfig:
    """Holds the store application identifier and admin access token."""

    app_id: str
    admin_token: str
    resilience: ResilienceConfig

    def __repr__(self) -> str:
        return f"StoreConfig(app_id={self.app_id!r}, admin_token='***')"


def get_store_config(*, resilience: ResilienceConfig | None = None) -> StoreConfig:
    app_id = first_env_var(*APP_ID_VARS)
    admin_token = first_env_var(*ADMIN_TOKEN_VARS)

    if app_id is None or admin_token is None:
        missing: list[str] = []
        if app_id is None:
            missing.append(" or ".join(APP_ID_VARS))
        if admin_token is None:
            missing.extend(ADMIN_TOKEN_VARS)
        raise MissingConfigurationError(f"Missing configuration for: {', '.join(missing)}")

    base_url = first_env_var("INSTANT_API_URI") or INSTANT_BASE_URL
    return StoreConfig(
        app_id=app_id,
        admin_token=admin_token,
        resilience=resilience
        or ResilienceConfig(
            name="instant",
            base_url=base_url,
            timeout_seconds=INSTANT_TIMEOUT_SECONDS,
            ratelimit=RateLimit(max_calls=5, per_seconds=1.0),
        ),
    )
