"""Reconciliation of ledger payments against billing invoices.

This module matches incoming bank transfer postings from Tripletex with
Chargebee invoices through the payment reference (KID) and records the
payments on the invoices.

Features:
- Session token and ledger window retrieval
- Posting detail hydration with bounded retry
- Eligibility filtering of incoming payments
- Idempotent payment recording with per-posting failure isolation
- Run reports and Slack notifications
"""

from .models import (
    PostingType,
    FailureKind,
    RunStatus,
    LedgerWindow,
    SessionCredential,
    Posting,
    PostingSummary,
    LedgerAccount,
    Ledger,
    Invoice,
    Customer,
    RecordedPayment,
    PostingFailure,
    ReconciliationReport,
)
from .fetcher import PostingFetcher, retry_async, backoff_delays
from .recorder import InvoiceResolver, PaymentRecorder, make_idempotency_key
from .reconciler import Reconciler, should_posting_be_reconciled, to_cents
from .service import ReconciliationService
from .report import ReportGenerator

__all__ = [
    # Models
    "PostingType",
    "FailureKind",
    "RunStatus",
    "LedgerWindow",
    "SessionCredential",
    "Posting",
    "PostingSummary",
    "LedgerAccount",
    "Ledger",
    "Invoice",
    "Customer",
    "RecordedPayment",
    "PostingFailure",
    "ReconciliationReport",
    # Fetching
    "PostingFetcher",
    "retry_async",
    "backoff_delays",
    # Core Components
    "InvoiceResolver",
    "PaymentRecorder",
    "make_idempotency_key",
    "Reconciler",
    "should_posting_be_reconciled",
    "to_cents",
    "ReconciliationService",
    "ReportGenerator",
]
