"""Chargebee billing connector.

The chargebee SDK is synchronous; every call runs in a worker thread so the
reconciliation fan-out can await it.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Optional

import chargebee
from chargebee.environment import Environment

from ..config import Settings
from ..errors import (
    InvoiceAlreadySettledError,
    InvoiceChargebeeError,
    InvoiceNotFoundError,
    InvoiceNotLinkedError,
)
from ..reconciliation.models import Customer, Invoice
from .base import BillingConnectorBase

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "chargebee-idempotency-key"
PAYMENT_METHOD = "bank_transfer"

# Chargebee answers 422 when a payment is recorded against an invoice that is
# not in a payable state, i.e. already paid.
ALREADY_SETTLED_STATUS = 422

# requests' exceptions derive from IOError
SDK_ERRORS = (chargebee.APIError, IOError)


class ChargebeeConnector(BillingConnectorBase):
    """Chargebee connector bound to one site via an explicit environment."""

    def __init__(self, settings: Settings):
        self._env = Environment({
            "api_key": settings.chargebee_api_key,
            "site": settings.chargebee_site,
        })

    async def _call(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        return await asyncio.to_thread(func, *args, env=self._env, **kwargs)

    @staticmethod
    def _to_invoice(raw: Any) -> Invoice:
        return Invoice(
            id=raw.id,
            customer_id=getattr(raw, "customer_id", None),
            currency_code=getattr(raw, "currency_code", None) or "",
            amount_paid=getattr(raw, "amount_paid", None) or 0,
            amount_due=getattr(raw, "amount_due", None) or 0,
            status=getattr(raw, "status", None),
        )

    @staticmethod
    def _to_customer(raw: Any) -> Customer:
        return Customer(
            id=raw.id,
            company=getattr(raw, "company", None),
            email=getattr(raw, "email", None),
            phone=getattr(raw, "phone", None),
        )

    async def find_invoice_id(self, external_ref: str) -> str:
        """Resolve an external reference (KID) to a Chargebee invoice id.

        Args:
            external_ref: Payment reference number assigned to the invoice.

        Returns:
            The invoice id linked to the first matching reference number.

        Raises:
            InvoiceNotFoundError: No reference number matches.
            InvoiceNotLinkedError: The match carries no invoice id.
            InvoiceChargebeeError: The lookup itself failed.
        """
        try:
            result = await self._call(
                chargebee.Invoice.list_payment_reference_numbers,
                {"payment_reference_number": {"number": {"is": external_ref}}},
            )
        except SDK_ERRORS as e:
            raise InvoiceChargebeeError(
                f"Payment reference lookup failed for {external_ref}: {e}"
            ) from e

        if len(result) == 0:
            raise InvoiceNotFoundError(external_ref)

        reference = result[0].payment_reference_number
        invoice_id = getattr(reference, "invoice_id", None)
        if not invoice_id:
            raise InvoiceNotLinkedError(external_ref)
        return invoice_id

    async def record_payment(
        self, invoice_id: str, amount_cents: int, idempotency_key: str
    ) -> Invoice:
        params = {
            "transaction": {
                "amount": amount_cents,
                "payment_method": PAYMENT_METHOD,
                # Unix timestamp in seconds
                "date": int(time.time()),
            }
        }
        try:
            result = await self._call(
                chargebee.Invoice.record_payment,
                invoice_id,
                params,
                headers={IDEMPOTENCY_HEADER: idempotency_key},
            )
        except chargebee.APIError as e:
            if getattr(e, "http_status_code", None) == ALREADY_SETTLED_STATUS:
                logger.info(f"Invoice {invoice_id} is already settled in Chargebee")
                raise InvoiceAlreadySettledError(invoice_id) from e
            raise InvoiceChargebeeError(
                f"Recording payment for invoice {invoice_id} failed: {e}"
            ) from e
        except IOError as e:
            raise InvoiceChargebeeError(
                f"Recording payment for invoice {invoice_id} failed: {e}"
            ) from e
        return self._to_invoice(result.invoice)

    async def retrieve_invoice(self, invoice_id: str) -> Invoice:
        try:
            result = await self._call(chargebee.Invoice.retrieve, invoice_id)
        except SDK_ERRORS as e:
            raise InvoiceChargebeeError(f"Failed to retrieve invoice {invoice_id}: {e}") from e
        return self._to_invoice(result.invoice)

    async def retrieve_customer(self, customer_id: Optional[str]) -> Customer:
        if not customer_id:
            raise InvoiceChargebeeError("Invoice has no customer to retrieve")
        try:
            result = await self._call(chargebee.Customer.retrieve, customer_id)
        except SDK_ERRORS as e:
            raise InvoiceChargebeeError(f"Failed to retrieve customer {customer_id}: {e}") from e
        return self._to_customer(result.customer)
