"""Shared test fixtures and configuration."""

import os
from datetime import date
from types import SimpleNamespace
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set up test environment variables before importing modules
os.environ.setdefault("CONSUMER_TOKEN", "consumer_test_token")
os.environ.setdefault("EMPLOYEE_TOKEN", "employee_test_token")
os.environ.setdefault("APPNAME", "payment-matcher-tests")
os.environ.setdefault("CHARGEBEE_API_KEY", "test_chargebee_key")
os.environ.setdefault("CHARGEBEE_SITE", "test-site")
os.environ.setdefault("SLACK_WEBHOOK_URL", "https://hooks.slack.test/services/T000/B000/XXXX")
os.environ.setdefault("API_KEY", "test_api_key_12345")

from payment_matcher.config import Settings
from payment_matcher.connectors.base import BillingConnectorBase, LedgerConnectorBase
from payment_matcher.notifier import SlackNotifier
from payment_matcher.reconciliation.models import (
    Customer,
    Invoice,
    Posting,
    PostingType,
    SessionCredential,
)


@pytest.fixture
def settings_env() -> Dict[str, str]:
    """Complete set of required environment variables."""
    return {
        "CONSUMER_TOKEN": "consumer_test_token",
        "EMPLOYEE_TOKEN": "employee_test_token",
        "APPNAME": "payment-matcher-tests",
        "CHARGEBEE_API_KEY": "test_chargebee_key",
        "CHARGEBEE_SITE": "test-site",
        "SLACK_WEBHOOK_URL": "https://hooks.slack.test/services/T000/B000/XXXX",
    }


@pytest.fixture
def settings(settings_env) -> Settings:
    return Settings.from_env(settings_env)


@pytest.fixture
def credential() -> SessionCredential:
    return SessionCredential(token="session_token_abc", expiration_date=date(2099, 1, 1))


def make_posting(
    posting_id: int,
    type: PostingType = PostingType.INCOMING_PAYMENT,
    external_ref: Optional[str] = "KID123",
    amount: float = -50.0,
    **extra: Any,
) -> Posting:
    """Build a posting the way the ledger API would send it."""
    payload = {
        "id": posting_id,
        "type": type.value,
        "externalRef": external_ref,
        "amount": amount,
        "matched": False,
    }
    payload.update(extra)
    return Posting.model_validate(payload)


def make_invoice(invoice_id: str = "inv_001", **overrides: Any) -> Invoice:
    data = {
        "id": invoice_id,
        "customer_id": "cust_001",
        "currency_code": "NOK",
        "amount_paid": 5000,
        "amount_due": 0,
        "status": "paid",
    }
    data.update(overrides)
    return Invoice(**data)


def make_customer(customer_id: str = "cust_001", **overrides: Any) -> Customer:
    data = {
        "id": customer_id,
        "company": "Acme AS",
        "email": "billing@acme.test",
        "phone": "+4799999999",
    }
    data.update(overrides)
    return Customer(**data)


@pytest.fixture
def mock_ledger(credential) -> MagicMock:
    """Ledger connector with async methods."""
    ledger = MagicMock(spec=LedgerConnectorBase)
    ledger.create_session_token = AsyncMock(return_value=credential)
    ledger.fetch_ledger = AsyncMock()
    ledger.fetch_posting = AsyncMock()
    ledger.aclose = AsyncMock()
    return ledger


@pytest.fixture
def mock_billing() -> MagicMock:
    """Billing connector that resolves any reference and records successfully."""
    billing = MagicMock(spec=BillingConnectorBase)
    billing.find_invoice_id = AsyncMock(return_value="inv_001")
    billing.record_payment = AsyncMock(return_value=make_invoice())
    billing.retrieve_invoice = AsyncMock(return_value=make_invoice())
    billing.retrieve_customer = AsyncMock(return_value=make_customer())
    return billing


@pytest.fixture
def mock_notifier() -> MagicMock:
    notifier = MagicMock(spec=SlackNotifier)
    notifier.send = AsyncMock(return_value=True)
    return notifier


def sdk_result(**resources: Any) -> SimpleNamespace:
    """Shape of a chargebee SDK result, e.g. ``result.invoice``."""
    return SimpleNamespace(**resources)
