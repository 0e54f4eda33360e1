"""Request dependencies guarding the HTTP trigger: settings, bearer key, rate limit."""

import secrets
import logging

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import Settings
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Internal Server Error"

# One matcher run per client every ten seconds on average
RUN_RATE_LIMIT = "6/minute"

bearer_scheme = HTTPBearer()

limiter = Limiter(key_func=get_remote_address)


def get_settings() -> Settings:
    """Load settings for the current request; missing configuration is a 500."""
    try:
        return Settings.from_env()
    except ConfigurationError as e:
        logger.error(f"Cannot start matcher run: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR) from e


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials = Security(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    """Check the bearer token against ``settings.api_key``.

    Raises:
        HTTPException: 500 when no key is configured, 401 when the token differs.
    """
    if not settings.api_key:
        logger.error("API_KEY is not configured; refusing matcher run")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)
    if not secrets.compare_digest(credentials.credentials, settings.api_key):
        logger.warning("Rejected matcher run with an invalid API key")
        raise HTTPException(status_code=401, detail="Invalid API key")
    return credentials.credentials
