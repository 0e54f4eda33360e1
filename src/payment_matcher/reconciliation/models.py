"""Models for ledger-to-billing payment reconciliation."""

import enum
from datetime import date, datetime, timedelta
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, Field, field_validator, model_validator


class PostingType(str, enum.Enum):
    """Posting categories reported by the ledger."""
    INCOMING_PAYMENT = "INCOMING_PAYMENT"
    INCOMING_PAYMENT_OPPOSITE = "INCOMING_PAYMENT_OPPOSITE"
    INCOMING_INVOICE_CUSTOMER_POSTING = "INCOMING_INVOICE_CUSTOMER_POSTING"
    INVOICE_EXPENSE = "INVOICE_EXPENSE"
    OUTGOING_INVOICE_CUSTOMER_POSTING = "OUTGOING_INVOICE_CUSTOMER_POSTING"
    WAGE = "WAGE"


KNOWN_POSTING_TYPES = frozenset(t.value for t in PostingType)


class FailureKind(str, enum.Enum):
    """Why a single posting was dropped from a run."""
    POSTING_FETCH = "posting_fetch"
    INVOICE_NOT_FOUND = "invoice_not_found"
    INVOICE_NOT_LINKED = "invoice_not_linked"
    BILLING = "billing"


class RunStatus(str, enum.Enum):
    """Terminal status of a reconciliation run."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


DATE_FORMAT = "%Y-%m-%d"


class LedgerWindow(BaseModel):
    """Date range for a ledger query, ``date_from`` inclusive, ``date_to`` exclusive."""
    date_from: date
    date_to: date

    @model_validator(mode="after")
    def _check_order(self) -> "LedgerWindow":
        if self.date_from >= self.date_to:
            raise ValueError("date_from must be before date_to")
        return self

    @classmethod
    def around(cls, today: date, days_back: int = 1, days_forward: int = 1) -> "LedgerWindow":
        """Window covering ``[today - days_back, today + days_forward)``."""
        return cls(
            date_from=today - timedelta(days=days_back),
            date_to=today + timedelta(days=days_forward),
        )

    def as_params(self) -> Dict[str, str]:
        return {
            "dateFrom": self.date_from.strftime(DATE_FORMAT),
            "dateTo": self.date_to.strftime(DATE_FORMAT),
        }


class SessionCredential(BaseModel):
    """Short-lived ledger session token."""
    token: str = Field(..., min_length=1, repr=False)
    expiration_date: date


class Posting(BaseModel):
    """A single ledger posting with full detail."""
    id: int
    url: Optional[str] = None
    posting_date: Optional[str] = Field(default=None, alias="date")
    description: Optional[str] = None
    # Types outside PostingType are read as None and never reconciled
    type: Optional[PostingType] = None
    # External reference for identifying the payment basis, e.g. KID,
    # customer identification or credit note number.
    external_ref: Optional[str] = Field(default=None, alias="externalRef")
    matched: bool = False
    posting_rule_id: Optional[Any] = Field(default=None, alias="postingRuleId")
    amount: float = 0.0
    amount_currency: Optional[float] = Field(default=None, alias="amountCurrency")
    amount_gross: Optional[float] = Field(default=None, alias="amountGross")
    amount_gross_currency: Optional[float] = Field(default=None, alias="amountGrossCurrency")

    class Config:
        populate_by_name = True

    @field_validator("type", mode="before")
    @classmethod
    def _known_type(cls, value: Any) -> Any:
        if isinstance(value, str) and value not in KNOWN_POSTING_TYPES:
            return None
        return value


class PostingSummary(BaseModel):
    """Posting reference as listed inside a ledger account."""
    id: int
    url: Optional[str] = None


class LedgerAccount(BaseModel):
    """One account of the ledger with its postings."""
    postings: List[PostingSummary] = Field(default_factory=list)


class Ledger(BaseModel):
    """Ledger payload for a window, grouped per account."""
    from_: int = Field(default=0, alias="from")
    count: int = 0
    version_digest: Optional[str] = Field(default=None, alias="versionDigest")
    values: List[LedgerAccount] = Field(default_factory=list)

    class Config:
        populate_by_name = True

    def posting_ids(self) -> List[int]:
        """Flatten every account's postings into one list of ids."""
        return [posting.id for account in self.values for posting in account.postings]


class Invoice(BaseModel):
    """Billing invoice state as returned after recording a payment."""
    id: str
    customer_id: Optional[str] = None
    currency_code: str = ""
    amount_paid: int = Field(default=0, description="Amount paid in minor units")
    amount_due: int = Field(default=0, description="Amount due in minor units")
    status: Optional[str] = None


class Customer(BaseModel):
    """Billing customer, used for reporting only."""
    id: str
    company: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class RecordedPayment(BaseModel):
    """Outcome of recording one posting against its invoice."""
    posting_id: Optional[int] = None
    external_ref: Optional[str] = None
    amount_cents: int
    invoice: Invoice
    customer: Customer
    already_settled: bool = Field(
        default=False,
        description="True when the invoice was already paid and nothing was recorded",
    )


class PostingFailure(BaseModel):
    """A posting dropped from the run, with the reason."""
    posting_id: int
    external_ref: Optional[str] = None
    kind: FailureKind
    message: str
    detected_at: datetime = Field(default_factory=datetime.utcnow)


class ReconciliationReport(BaseModel):
    """Run-scoped outcome; never persisted."""
    id: str = Field(..., description="Run ID")
    status: RunStatus = Field(default=RunStatus.PENDING)
    window: Optional[LedgerWindow] = None
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    total_postings: int = Field(default=0)
    total_eligible: int = Field(default=0)

    recorded: List[RecordedPayment] = Field(default_factory=list)
    failures: List[PostingFailure] = Field(default_factory=list)

    error_message: Optional[str] = Field(None, description="Error message if the run failed")

    @property
    def newly_recorded(self) -> List[RecordedPayment]:
        return [r for r in self.recorded if not r.already_settled]

    def to_summary_dict(self) -> Dict[str, Any]:
        """Return a summary of the report without detailed records."""
        return {
            "id": self.id,
            "status": self.status.value,
            "date_from": self.window.date_from.isoformat() if self.window else None,
            "date_to": self.window.date_to.isoformat() if self.window else None,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "statistics": {
                "total_postings": self.total_postings,
                "total_eligible": self.total_eligible,
                "total_recorded": len(self.newly_recorded),
                "total_already_settled": len(self.recorded) - len(self.newly_recorded),
                "total_failed": len(self.failures),
            },
            "error_message": self.error_message,
        }

    def to_full_dict(self) -> Dict[str, Any]:
        """Return the complete report including all records."""
        result = self.to_summary_dict()
        result["recorded"] = [r.model_dump(mode="json") for r in self.recorded]
        result["failures"] = [f.model_dump(mode="json") for f in self.failures]
        return result
