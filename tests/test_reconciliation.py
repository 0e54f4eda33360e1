"""Tests for the reconciliation module."""

import asyncio
import json
from datetime import date

import pytest

from payment_matcher.errors import (
    InvalidAmountError,
    InvoiceAlreadySettledError,
    InvoiceChargebeeError,
    InvoiceNotFoundError,
    InvoiceNotLinkedError,
)
from payment_matcher.reconciliation import (
    FailureKind,
    InvoiceResolver,
    LedgerWindow,
    PaymentRecorder,
    PostingFailure,
    PostingType,
    ReconciliationReport,
    Reconciler,
    RecordedPayment,
    ReportGenerator,
    RunStatus,
    make_idempotency_key,
    should_posting_be_reconciled,
    to_cents,
)
from payment_matcher.reconciliation.report import (
    failure_fields,
    format_major_units,
    payment_fields,
)

from conftest import make_customer, make_invoice, make_posting


def build_reconciler(billing, **kwargs) -> Reconciler:
    return Reconciler(InvoiceResolver(billing), PaymentRecorder(billing), **kwargs)


class TestEligibility:
    """Tests for should_posting_be_reconciled."""

    def test_incoming_payment_with_reference_and_amount(self):
        assert should_posting_be_reconciled(make_posting(1))

    @pytest.mark.parametrize("posting_type", [t for t in PostingType if t != PostingType.INCOMING_PAYMENT])
    def test_other_types_are_excluded(self, posting_type):
        assert not should_posting_be_reconciled(make_posting(1, type=posting_type))

    @pytest.mark.parametrize("external_ref", [None, ""])
    def test_missing_reference_is_excluded(self, external_ref):
        assert not should_posting_be_reconciled(make_posting(1, external_ref=external_ref))

    def test_zero_amount_is_excluded(self):
        assert not should_posting_be_reconciled(make_posting(1, amount=0.0))

    def test_positive_amount_is_eligible(self):
        assert should_posting_be_reconciled(make_posting(1, amount=75.5))


class TestToCents:

    @pytest.mark.parametrize("amount, expected", [
        (-50.0, 5000),
        (-123.456, 12346),
        (-0.005, 1),
        (19.99, 1999),
        (-1234.5, 123450),
    ])
    def test_conversion(self, amount, expected):
        assert to_cents(amount) == expected


class TestIdempotencyKey:

    def test_key_is_deterministic(self):
        assert make_idempotency_key("inv_001", 5000) == "inv_001-5000"
        assert make_idempotency_key("inv_001", 5000) == make_idempotency_key("inv_001", 5000)

    def test_key_differs_by_amount(self):
        assert make_idempotency_key("inv_001", 5000) != make_idempotency_key("inv_001", 5001)


class TestInvoiceResolver:

    async def test_delegates_to_billing(self, mock_billing):
        resolver = InvoiceResolver(mock_billing)

        assert await resolver.get_invoice("KID123") == "inv_001"
        mock_billing.find_invoice_id.assert_awaited_once_with("KID123")

    async def test_not_found_propagates(self, mock_billing):
        mock_billing.find_invoice_id.side_effect = InvoiceNotFoundError("KID999")
        resolver = InvoiceResolver(mock_billing)

        with pytest.raises(InvoiceNotFoundError):
            await resolver.get_invoice("KID999")


class TestPaymentRecorder:

    async def test_records_with_idempotency_key(self, mock_billing):
        recorder = PaymentRecorder(mock_billing)

        result = await recorder.record_invoice_payment("inv_001", 5000)

        mock_billing.record_payment.assert_awaited_once_with("inv_001", 5000, "inv_001-5000")
        mock_billing.retrieve_customer.assert_awaited_once_with("cust_001")
        assert result.amount_cents == 5000
        assert result.invoice.id == "inv_001"
        assert result.customer.company == "Acme AS"
        assert result.already_settled is False

    async def test_repeated_calls_use_same_key(self, mock_billing):
        recorder = PaymentRecorder(mock_billing)

        await recorder.record_invoice_payment("inv_001", 5000)
        await recorder.record_invoice_payment("inv_001", 5000)

        keys = [c.args[2] for c in mock_billing.record_payment.await_args_list]
        assert keys == ["inv_001-5000", "inv_001-5000"]

    async def test_already_settled_returns_current_state(self, mock_billing):
        mock_billing.record_payment.side_effect = InvoiceAlreadySettledError("inv_001")
        mock_billing.retrieve_invoice.return_value = make_invoice(amount_paid=5000, amount_due=0)
        recorder = PaymentRecorder(mock_billing)

        result = await recorder.record_invoice_payment("inv_001", 5000)

        assert result.already_settled is True
        mock_billing.retrieve_invoice.assert_awaited_once_with("inv_001")
        mock_billing.retrieve_customer.assert_awaited_once_with("cust_001")

    async def test_customer_failure_fails_the_call(self, mock_billing):
        mock_billing.retrieve_customer.side_effect = InvoiceChargebeeError("customer gone")
        recorder = PaymentRecorder(mock_billing)

        with pytest.raises(InvoiceChargebeeError):
            await recorder.record_invoice_payment("inv_001", 5000)

    async def test_record_failure_propagates(self, mock_billing):
        mock_billing.record_payment.side_effect = InvoiceChargebeeError("rejected")
        recorder = PaymentRecorder(mock_billing)

        with pytest.raises(InvoiceChargebeeError):
            await recorder.record_invoice_payment("inv_001", 5000)
        mock_billing.retrieve_customer.assert_not_awaited()

    @pytest.mark.parametrize("amount", [0, -100, 12.5, True])
    async def test_rejects_invalid_amount(self, mock_billing, amount):
        recorder = PaymentRecorder(mock_billing)

        with pytest.raises(InvalidAmountError):
            await recorder.record_invoice_payment("inv_001", amount)
        mock_billing.record_payment.assert_not_awaited()


class TestReconciler:
    """Tests for the Reconciler class."""

    async def test_records_eligible_postings(self, mock_billing):
        reconciler = build_reconciler(mock_billing)
        postings = [
            make_posting(1, external_ref="KID123", amount=-50.0),
            make_posting(2, type=PostingType.WAGE),
        ]

        recorded, failures = await reconciler.reconcile(postings)

        assert len(recorded) == 1
        assert recorded[0].posting_id == 1
        assert recorded[0].external_ref == "KID123"
        assert recorded[0].amount_cents == 5000
        assert failures == []
        mock_billing.find_invoice_id.assert_awaited_once_with("KID123")

    async def test_failures_are_isolated(self, mock_billing):
        async def find(external_ref):
            if external_ref == "KID404":
                raise InvoiceNotFoundError(external_ref)
            if external_ref == "KID999":
                raise InvoiceNotLinkedError(external_ref)
            return f"inv_{external_ref}"

        mock_billing.find_invoice_id.side_effect = find
        reconciler = build_reconciler(mock_billing)
        postings = [
            make_posting(1, external_ref="KID1"),
            make_posting(2, external_ref="KID404"),
            make_posting(3, external_ref="KID2"),
            make_posting(4, external_ref="KID999"),
            make_posting(5, external_ref="KID3"),
        ]

        recorded, failures = await reconciler.reconcile(postings)

        assert sorted(r.posting_id for r in recorded) == [1, 3, 5]
        kinds = {f.posting_id: f.kind for f in failures}
        assert kinds == {
            2: FailureKind.INVOICE_NOT_FOUND,
            4: FailureKind.INVOICE_NOT_LINKED,
        }

    async def test_billing_error_is_classified(self, mock_billing):
        mock_billing.record_payment.side_effect = InvoiceChargebeeError("rejected")
        reconciler = build_reconciler(mock_billing)

        recorded, failures = await reconciler.reconcile([make_posting(1)])

        assert recorded == []
        assert failures[0].kind == FailureKind.BILLING
        assert failures[0].external_ref == "KID123"

    async def test_sub_cent_amount_is_isolated(self, mock_billing):
        reconciler = build_reconciler(mock_billing)
        postings = [
            make_posting(1, external_ref="KID123", amount=-50.0),
            make_posting(2, external_ref="KID777", amount=-0.004),
        ]

        recorded, failures = await reconciler.reconcile(postings)

        assert [r.posting_id for r in recorded] == [1]
        assert len(failures) == 1
        assert failures[0].posting_id == 2
        assert failures[0].kind == FailureKind.BILLING
        mock_billing.record_payment.assert_awaited_once_with("inv_001", 5000, "inv_001-5000")

    async def test_unexpected_error_is_isolated(self, mock_billing):
        async def find(external_ref):
            if external_ref == "KID2":
                raise AttributeError("'NoneType' object has no attribute 'invoice_id'")
            return "inv_001"

        mock_billing.find_invoice_id.side_effect = find
        reconciler = build_reconciler(mock_billing)
        postings = [make_posting(i, external_ref=f"KID{i}") for i in range(1, 4)]

        recorded, failures = await reconciler.reconcile(postings)

        assert sorted(r.posting_id for r in recorded) == [1, 3]
        assert [(f.posting_id, f.kind) for f in failures] == [(2, FailureKind.BILLING)]
        assert "invoice_id" in failures[0].message

    async def test_at_most_two_units_in_flight(self, mock_billing):
        in_flight = 0
        peak = 0

        async def find(external_ref):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return "inv_001"

        mock_billing.find_invoice_id.side_effect = find
        reconciler = build_reconciler(mock_billing)

        recorded, _ = await reconciler.reconcile(
            [make_posting(i, external_ref=f"KID{i}") for i in range(1, 7)]
        )

        assert len(recorded) == 6
        assert peak == 2

    async def test_no_eligible_postings(self, mock_billing):
        reconciler = build_reconciler(mock_billing)

        recorded, failures = await reconciler.reconcile([make_posting(1, external_ref=None)])

        assert recorded == []
        assert failures == []
        mock_billing.find_invoice_id.assert_not_awaited()

    def test_rejects_zero_concurrency(self, mock_billing):
        with pytest.raises(ValueError):
            build_reconciler(mock_billing, max_concurrency=0)


@pytest.fixture
def sample_report():
    recorded = [
        RecordedPayment(
            posting_id=1,
            external_ref="KID123",
            amount_cents=5000,
            invoice=make_invoice(),
            customer=make_customer(),
        ),
        RecordedPayment(
            posting_id=2,
            external_ref="KID456",
            amount_cents=2500,
            invoice=make_invoice("inv_002"),
            customer=make_customer(),
            already_settled=True,
        ),
    ]
    failures = [
        PostingFailure(
            posting_id=3,
            external_ref="KID999",
            kind=FailureKind.INVOICE_NOT_LINKED,
            message="Payment reference KID999 has no invoice",
        ),
    ]
    return ReconciliationReport(
        id="run-1",
        status=RunStatus.COMPLETED,
        window=LedgerWindow(date_from=date(2024, 1, 1), date_to=date(2024, 1, 3)),
        total_postings=4,
        total_eligible=3,
        recorded=recorded,
        failures=failures,
    )


class TestReportGenerator:
    """Tests for the ReportGenerator class."""

    def test_summary_statistics(self, sample_report):
        stats = sample_report.to_summary_dict()["statistics"]

        assert stats == {
            "total_postings": 4,
            "total_eligible": 3,
            "total_recorded": 1,
            "total_already_settled": 1,
            "total_failed": 1,
        }

    def test_json_with_details(self, sample_report):
        data = json.loads(ReportGenerator(sample_report).to_json())

        assert data["status"] == "completed"
        assert data["date_from"] == "2024-01-01"
        assert len(data["recorded"]) == 2
        assert data["failures"][0]["kind"] == "invoice_not_linked"

    def test_json_summary_only(self, sample_report):
        data = json.loads(ReportGenerator(sample_report).to_json(include_details=False))

        assert "recorded" not in data
        assert "failures" not in data

    def test_summary_text(self, sample_report):
        text = ReportGenerator(sample_report).to_summary_text()

        assert "PAYMENT MATCHER RUN SUMMARY" in text
        assert "Run ID: run-1" in text
        assert "Payments Recorded: 1" in text
        assert "Already Paid: 1" in text

    def test_detailed_text(self, sample_report):
        text = ReportGenerator(sample_report).to_detailed_text()

        assert "RECORDED PAYMENTS" in text
        assert "(already paid)" in text
        assert "FAILED POSTINGS" in text
        assert "invoice_not_linked" in text

    def test_run_summary_fields_success(self, sample_report):
        fields = ReportGenerator(sample_report).run_summary_fields()

        assert fields["status"] == "success"
        assert fields["Recorded"] == "1"
        assert fields["Failed"] == "1"

    def test_run_summary_fields_failure(self):
        report = ReconciliationReport(id="run-2", status=RunStatus.FAILED, error_message="token denied")

        assert ReportGenerator(report).run_summary_fields() == {"message": "token denied"}


class TestMessageFields:

    def test_payment_fields(self):
        payment = RecordedPayment(
            amount_cents=5000,
            invoice=make_invoice(amount_paid=12399, amount_due=101),
            customer=make_customer(),
        )

        assert payment_fields(payment) == {
            "Invoice ID": "inv_001",
            "Company": "Acme AS",
            "User": "billing@acme.test (+4799999999)",
            "Amount Paid": "NOK 123",
            "Amount Due": "NOK 1",
        }

    def test_user_without_phone(self):
        payment = RecordedPayment(
            amount_cents=5000,
            invoice=make_invoice(),
            customer=make_customer(phone=None),
        )

        assert payment_fields(payment)["User"] == "billing@acme.test"

    def test_major_units_are_floored(self):
        assert format_major_units("NOK", 199) == "NOK 1"
        assert format_major_units("EUR", 0) == "EUR 0"

    def test_failure_fields_default_message(self):
        assert failure_fields("") == {"message": "Internal Server Error"}
        assert failure_fields("boom") == {"message": "boom"}
