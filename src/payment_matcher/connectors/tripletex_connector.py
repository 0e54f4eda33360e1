"""Tripletex ledger connector."""

import base64
import logging
from datetime import date
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..errors import LedgerError, PostingError, TokenError
from ..reconciliation.models import (
    DATE_FORMAT,
    Ledger,
    LedgerWindow,
    Posting,
    SessionCredential,
)
from .base import LedgerConnectorBase

logger = logging.getLogger(__name__)

# Tripletex accepts 0 as the company id for the logged-in employee's company
COMPANY_ID = "0"


def create_auth_header(credential: SessionCredential) -> Dict[str, str]:
    """Build the Basic auth header for a session token."""
    raw = f"{COMPANY_ID}:{credential.token}".encode("utf-8")
    return {"Authorization": f"Basic {base64.b64encode(raw).decode('ascii')}"}


class TripletexConnector(LedgerConnectorBase):
    """
    Tripletex v2 REST client built on httpx. One instance is meant to live for a
    single run; close it with ``aclose()`` or use it as an async context manager.
    """

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=settings.tripletex_base_url,
            timeout=settings.http_timeout_seconds,
            headers={"User-Agent": settings.app_name},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def _value(payload: Any) -> Any:
        if not isinstance(payload, dict) or "value" not in payload:
            raise ValueError("Response body has no 'value' field")
        return payload["value"]

    async def create_session_token(self, expiration_date: date) -> SessionCredential:
        if expiration_date <= date.today():
            raise TokenError(
                f"Session expiration {expiration_date.isoformat()} must be in the future"
            )

        try:
            response = await self._client.put(
                "/token/session/create",
                params={
                    "consumerToken": self._settings.consumer_token,
                    "employeeToken": self._settings.employee_token,
                    "expirationDate": expiration_date.strftime(DATE_FORMAT),
                },
            )
            response.raise_for_status()
            token = self._value(response.json())["token"]
            credential = SessionCredential(token=token, expiration_date=expiration_date)
        except httpx.HTTPStatusError as e:
            logger.error(f"Tripletex rejected session token request: HTTP {e.response.status_code}")
            raise TokenError(
                f"Session token request failed with HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Failed to connect to Tripletex: {type(e).__name__}")
            raise TokenError(f"Session token request failed: {e}") from e
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            raise TokenError(f"Malformed session token response: {e}") from e

        logger.info(f"Created Tripletex session token expiring {expiration_date.isoformat()}")
        return credential

    async def fetch_ledger(self, window: LedgerWindow, credential: SessionCredential) -> Ledger:
        """Fetch the ledger for the window.

        Args:
            window: Date range, ``date_from`` inclusive and ``date_to`` exclusive.
            credential: Session credential for this run.

        Returns:
            Ledger with posting summaries grouped per account.
        """
        try:
            response = await self._client.get(
                "/ledger",
                params=window.as_params(),
                headers=create_auth_header(credential),
            )
            response.raise_for_status()
            return Ledger.model_validate(response.json())
        except httpx.HTTPStatusError as e:
            raise LedgerError(
                f"Ledger request failed with HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise LedgerError(f"Ledger request failed: {e}") from e
        except (ValueError, ValidationError) as e:
            raise LedgerError(f"Malformed ledger response: {e}") from e

    async def fetch_posting(self, posting_id: int, credential: SessionCredential) -> Posting:
        try:
            response = await self._client.get(
                f"/ledger/posting/{posting_id}",
                headers=create_auth_header(credential),
            )
            response.raise_for_status()
            return Posting.model_validate(self._value(response.json()))
        except httpx.HTTPStatusError as e:
            raise PostingError(
                f"Posting {posting_id} request failed with HTTP {e.response.status_code}",
                posting_id=posting_id,
            ) from e
        except httpx.HTTPError as e:
            raise PostingError(
                f"Posting {posting_id} request failed: {e}", posting_id=posting_id
            ) from e
        except (ValueError, ValidationError) as e:
            raise PostingError(
                f"Malformed posting {posting_id} response: {e}", posting_id=posting_id
            ) from e
