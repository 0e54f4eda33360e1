# payment_matcher package
__version__ = "0.1.0"

from .config import Settings
from .errors import (
    MatcherError,
    ConfigurationError,
    TokenError,
    LedgerError,
    PostingError,
    InvalidAmountError,
    InvoiceChargebeeError,
    InvoiceNotFoundError,
    InvoiceNotLinkedError,
    InvoiceAlreadySettledError,
)

# Reconciliation exports
from .reconciliation import (
    ReconciliationService,
    ReconciliationReport,
    RunStatus,
    FailureKind,
    PostingFetcher,
    Reconciler,
    ReportGenerator,
    should_posting_be_reconciled,
    to_cents,
)
