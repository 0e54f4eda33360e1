from abc import ABC, abstractmethod
from datetime import date

from ..reconciliation.models import (
    Customer,
    Invoice,
    Ledger,
    LedgerWindow,
    Posting,
    SessionCredential,
)


class LedgerConnectorBase(ABC):
    """
    Read-only access to the accounting ledger. Every method performs exactly one
    network call; retrying is left to the caller.
    """

    @abstractmethod
    async def create_session_token(self, expiration_date: date) -> SessionCredential:
        """
        Create a session credential valid until ``expiration_date``. Raises TokenError.
        """
        raise NotImplementedError

    @abstractmethod
    async def fetch_ledger(self, window: LedgerWindow, credential: SessionCredential) -> Ledger:
        """
        Fetch the ledger for ``window``. Raises LedgerError.
        """
        raise NotImplementedError

    @abstractmethod
    async def fetch_posting(self, posting_id: int, credential: SessionCredential) -> Posting:
        """
        Fetch full detail of one posting. Raises PostingError.
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


class BillingConnectorBase(ABC):
    """
    Billing system operations used for reconciliation. All failures are raised
    as InvoiceChargebeeError or one of its subclasses.
    """

    @abstractmethod
    async def find_invoice_id(self, external_ref: str) -> str:
        raise NotImplementedError

    @abstractmethod
    async def record_payment(
        self, invoice_id: str, amount_cents: int, idempotency_key: str
    ) -> Invoice:
        """
        Record a bank transfer. Raises InvoiceAlreadySettledError when the billing
        system rejects the payment because the invoice is already paid.
        """
        raise NotImplementedError

    @abstractmethod
    async def retrieve_invoice(self, invoice_id: str) -> Invoice:
        raise NotImplementedError

    @abstractmethod
    async def retrieve_customer(self, customer_id: str) -> Customer:
        raise NotImplementedError
