"""Reconciliation logic matching ledger postings to billing invoices."""

import asyncio
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Tuple, Union

from ..errors import (
    InvalidAmountError,
    InvoiceChargebeeError,
    InvoiceNotFoundError,
    InvoiceNotLinkedError,
)
from .models import (
    FailureKind,
    Posting,
    PostingFailure,
    PostingType,
    RecordedPayment,
)
from .recorder import InvoiceResolver, PaymentRecorder

logger = logging.getLogger(__name__)

MAX_CONCURRENCY = 2


def should_posting_be_reconciled(posting: Posting) -> bool:
    """True for unmatched incoming payments with a reference and a non-zero amount."""
    return (
        posting.type == PostingType.INCOMING_PAYMENT
        and len(posting.external_ref or "") > 0
        and abs(posting.amount or 0) > 0
    )


def to_cents(amount: Union[float, int, Decimal, str]) -> int:
    """Absolute value of a major-unit amount in cents, rounded half up.

    Incoming payment postings are negative, billing expects a positive amount.
    """
    value = abs(Decimal(str(amount))) * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def classify_failure(error: Exception) -> FailureKind:
    if isinstance(error, InvoiceNotFoundError):
        return FailureKind.INVOICE_NOT_FOUND
    if isinstance(error, InvoiceNotLinkedError):
        return FailureKind.INVOICE_NOT_LINKED
    return FailureKind.BILLING


class Reconciler:
    """Resolves and records eligible postings with bounded concurrency."""

    def __init__(
        self,
        resolver: InvoiceResolver,
        recorder: PaymentRecorder,
        max_concurrency: int = MAX_CONCURRENCY,
    ):
        """Initialize the reconciler.

        Args:
            resolver: Maps external references to invoice ids.
            recorder: Records payments on invoices.
            max_concurrency: Maximum resolve+record units in flight.
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.resolver = resolver
        self.recorder = recorder
        self.max_concurrency = max_concurrency

    @staticmethod
    def filter_eligible(postings: List[Posting]) -> List[Posting]:
        return [p for p in postings if should_posting_be_reconciled(p)]

    async def reconcile_posting(self, posting: Posting) -> RecordedPayment:
        """Resolve the posting's invoice and record the payment as one unit."""
        invoice_id = await self.resolver.get_invoice(posting.external_ref)
        recorded = await self.recorder.record_invoice_payment(invoice_id, to_cents(posting.amount))
        return recorded.model_copy(update={
            "posting_id": posting.id,
            "external_ref": posting.external_ref,
        })

    async def reconcile(
        self,
        postings: List[Posting],
    ) -> Tuple[List[RecordedPayment], List[PostingFailure]]:
        """Reconcile eligible postings against billing invoices.

        Ineligible postings are skipped. Any failure on one posting drops it
        from the result without affecting the others; ordering of the
        results is not significant.

        Args:
            postings: Fully hydrated postings.

        Returns:
            Tuple of (recorded_payments, failures).
        """
        eligible = self.filter_eligible(postings)
        logger.info(
            f"Starting reconciliation: {len(eligible)} of {len(postings)} postings eligible"
        )

        semaphore = asyncio.Semaphore(self.max_concurrency)
        recorded: List[RecordedPayment] = []
        failures: List[PostingFailure] = []

        def add_failure(posting: Posting, kind: FailureKind, error: Exception) -> None:
            failures.append(PostingFailure(
                posting_id=posting.id,
                external_ref=posting.external_ref,
                kind=kind,
                message=str(error) or type(error).__name__,
            ))

        async def run_unit(posting: Posting) -> None:
            async with semaphore:
                try:
                    recorded.append(await self.reconcile_posting(posting))
                except (InvoiceChargebeeError, InvalidAmountError) as e:
                    logger.warning(
                        f"Could not reconcile posting {posting.id} "
                        f"(ref {posting.external_ref}): {e}"
                    )
                    add_failure(posting, classify_failure(e), e)
                except Exception as e:
                    logger.exception(
                        f"Unexpected error reconciling posting {posting.id} "
                        f"(ref {posting.external_ref}): {e}"
                    )
                    add_failure(posting, FailureKind.BILLING, e)

        await asyncio.gather(*(run_unit(p) for p in eligible), return_exceptions=True)

        logger.info(
            f"Reconciliation complete: {len(recorded)} recorded, {len(failures)} failed"
        )
        return recorded, failures
