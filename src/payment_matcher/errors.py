"""Error taxonomy for the payment matcher.

Every integration failure is re-raised as one of these types with the
original exception chained as ``__cause__``.
"""


class MatcherError(Exception):
    """Base class for all payment matcher errors."""


class ConfigurationError(MatcherError):
    """A required configuration value is missing or invalid."""


class TokenError(MatcherError):
    """The ledger session token could not be created."""


class LedgerError(MatcherError):
    """The ledger for the requested window could not be fetched."""


class PostingError(MatcherError):
    """A single posting could not be fetched after all retries."""

    def __init__(self, message: str, posting_id: int):
        super().__init__(message)
        self.posting_id = posting_id


class InvalidAmountError(MatcherError):
    """A posting amount does not convert to a positive number of cents."""


class InvoiceChargebeeError(MatcherError):
    """Resolving or recording an invoice payment in Chargebee failed."""


class InvoiceNotFoundError(InvoiceChargebeeError):
    """No payment reference number matches the external reference."""

    def __init__(self, external_ref: str):
        super().__init__(f"No invoice found for external reference {external_ref}")
        self.external_ref = external_ref


class InvoiceNotLinkedError(InvoiceChargebeeError):
    """The payment reference number exists but has no invoice attached."""

    def __init__(self, external_ref: str):
        super().__init__(
            f"No invoice ID associated with external reference {external_ref}"
        )
        self.external_ref = external_ref


class InvoiceAlreadySettledError(InvoiceChargebeeError):
    """The billing system rejected a payment because the invoice is already paid."""

    def __init__(self, invoice_id: str):
        super().__init__(f"Invoice {invoice_id} is already settled")
        self.invoice_id = invoice_id
