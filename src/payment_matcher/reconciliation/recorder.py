"""Invoice resolution and idempotent payment recording."""

import logging

from ..connectors.base import BillingConnectorBase
from ..errors import InvalidAmountError, InvoiceAlreadySettledError
from .models import Invoice, RecordedPayment

logger = logging.getLogger(__name__)


def make_idempotency_key(invoice_id: str, amount_cents: int) -> str:
    """Same invoice and amount always yield the same key."""
    return f"{invoice_id}-{amount_cents}"


class InvoiceResolver:
    """Maps a posting's external reference (KID) to a billing invoice id."""

    def __init__(self, billing: BillingConnectorBase):
        self.billing = billing

    async def get_invoice(self, external_ref: str) -> str:
        """Resolve ``external_ref`` to an invoice id.

        Raises:
            InvoiceNotFoundError: No reference matches.
            InvoiceNotLinkedError: The reference has no invoice.
            InvoiceChargebeeError: Any other billing failure.
        """
        invoice_id = await self.billing.find_invoice_id(external_ref)
        logger.debug(f"Resolved external reference {external_ref} to invoice {invoice_id}")
        return invoice_id


class PaymentRecorder:
    """Records bank transfer payments against invoices."""

    def __init__(self, billing: BillingConnectorBase):
        self.billing = billing

    async def record_invoice_payment(self, invoice_id: str, amount_cents: int) -> RecordedPayment:
        """Record a payment of ``amount_cents`` against ``invoice_id``.

        An invoice that is already settled is not an error: its current state
        is returned with ``already_settled`` set so the caller can skip
        notifying about it. The customer is fetched on both paths for
        reporting; if that fetch fails the whole call fails.

        Args:
            invoice_id: Billing invoice id.
            amount_cents: Positive amount in minor currency units.

        Returns:
            RecordedPayment with the invoice and customer.

        Raises:
            InvalidAmountError: If ``amount_cents`` is not a positive integer.
            InvoiceChargebeeError: If recording or any follow-up fetch fails.
        """
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
            raise InvalidAmountError(
                f"amount_cents must be a positive integer, got {amount_cents!r}"
            )

        key = make_idempotency_key(invoice_id, amount_cents)
        already_settled = False
        try:
            invoice: Invoice = await self.billing.record_payment(invoice_id, amount_cents, key)
        except InvoiceAlreadySettledError:
            already_settled = True
            invoice = await self.billing.retrieve_invoice(invoice_id)

        customer = await self.billing.retrieve_customer(invoice.customer_id)

        if already_settled:
            logger.info(f"Invoice {invoice_id} was already paid; nothing recorded")
        else:
            logger.info(f"Recorded payment of {amount_cents} cents on invoice {invoice_id}")

        return RecordedPayment(
            amount_cents=amount_cents,
            invoice=invoice,
            customer=customer,
            already_settled=already_settled,
        )

