"""Process-wide configuration loaded from environment variables."""

import os
from typing import Dict, List, Optional, Mapping

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from .errors import ConfigurationError

DEFAULT_TRIPLETEX_BASE_URL = "https://tripletex.no/v2"

# Settings field -> environment variable
REQUIRED_VARIABLES: Dict[str, str] = {
    "consumer_token": "CONSUMER_TOKEN",
    "employee_token": "EMPLOYEE_TOKEN",
    "app_name": "APPNAME",
    "chargebee_api_key": "CHARGEBEE_API_KEY",
    "chargebee_site": "CHARGEBEE_SITE",
    "slack_webhook_url": "SLACK_WEBHOOK_URL",
}

OPTIONAL_VARIABLES: Dict[str, str] = {
    "tripletex_base_url": "TRIPLETEX_BASE_URL",
    "http_timeout_seconds": "HTTP_TIMEOUT_SECONDS",
    "notify_failed_postings": "NOTIFY_FAILED_POSTINGS",
    "api_key": "API_KEY",
}


class Settings(BaseSettings):
    """
    Immutable settings passed into every component at startup.
    Each field is read from the environment variable named in its alias.
    """

    # ==================== TRIPLETEX ====================
    consumer_token: str = Field(
        ..., min_length=1, alias="CONSUMER_TOKEN", repr=False,
        description="Tripletex consumer token",
    )
    employee_token: str = Field(
        ..., min_length=1, alias="EMPLOYEE_TOKEN", repr=False,
        description="Tripletex employee token",
    )
    app_name: str = Field(
        ..., min_length=1, alias="APPNAME",
        description="Application name sent to Tripletex",
    )
    tripletex_base_url: str = Field(
        default=DEFAULT_TRIPLETEX_BASE_URL, alias="TRIPLETEX_BASE_URL",
    )
    http_timeout_seconds: float = Field(default=30.0, gt=0, alias="HTTP_TIMEOUT_SECONDS")

    # ==================== CHARGEBEE ====================
    chargebee_api_key: str = Field(
        ..., min_length=1, alias="CHARGEBEE_API_KEY", repr=False,
        description="Chargebee API key",
    )
    chargebee_site: str = Field(
        ..., min_length=1, alias="CHARGEBEE_SITE",
        description="Chargebee site name",
    )

    # ==================== NOTIFICATIONS ====================
    slack_webhook_url: str = Field(
        ..., min_length=1, alias="SLACK_WEBHOOK_URL", repr=False,
        description="Slack incoming webhook URL",
    )
    notify_failed_postings: bool = Field(
        default=False, alias="NOTIFY_FAILED_POSTINGS",
        description="Send one message per posting that could not be reconciled",
    )

    # ==================== HTTP TRIGGER ====================
    api_key: Optional[str] = Field(
        default=None, alias="API_KEY", repr=False,
        description="Bearer key required by POST /reconciliation/run",
    )

    class Config:
        frozen = True
        populate_by_name = True
        extra = "ignore"

    @field_validator("tripletex_base_url", mode="before")
    @classmethod
    def _strip_base_url(cls, value: Optional[str]) -> str:
        return (value or DEFAULT_TRIPLETEX_BASE_URL).rstrip("/")

    @field_validator("api_key", mode="before")
    @classmethod
    def _empty_api_key(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from the environment.

        Args:
            environ: Mapping to read instead of the process environment.

        Returns:
            Populated Settings instance.

        Raises:
            ConfigurationError: If a required variable is missing or empty, or a
                value fails validation.
        """
        env = os.environ if environ is None else environ

        missing = missing_variables(env)
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

        try:
            if environ is None:
                return cls()
            names = list(REQUIRED_VARIABLES.values()) + list(OPTIONAL_VARIABLES.values())
            return cls(**{name: environ[name] for name in names if name in environ})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e


def missing_variables(environ: Optional[Mapping[str, str]] = None) -> List[str]:
    """Return the names of required variables that are unset or empty."""
    env = os.environ if environ is None else environ
    return [name for name in REQUIRED_VARIABLES.values() if not env.get(name)]


def describe_environment(environ: Optional[Mapping[str, str]] = None) -> Dict[str, bool]:
    """Map every required variable to whether it is present, without values."""
    env = os.environ if environ is None else environ
    return {name: bool(env.get(name)) for name in REQUIRED_VARIABLES.values()}
