"""Report generation for reconciliation runs."""

import json
from datetime import date, datetime
from typing import Dict

from .models import (
    FailureKind,
    PostingFailure,
    ReconciliationReport,
    RecordedPayment,
    RunStatus,
)

RUN_SUCCEEDED_TITLE = "Successfully ran tripletex matcher job"
RUN_FAILED_TITLE = "Failed to run tripletex matcher job"
PAYMENT_RECORDED_TITLE = "Invoice payment recorded (bank transfer)"
POSTING_FAILED_TITLE = "Could not reconcile ledger posting"


def format_major_units(currency_code: str, amount_minor: int) -> str:
    """Whole major units, floored, prefixed with the currency code."""
    return f"{currency_code} {amount_minor // 100}"


def payment_fields(payment: RecordedPayment) -> Dict[str, str]:
    """Slack fields for one recorded invoice payment."""
    invoice = payment.invoice
    customer = payment.customer
    user = f"{customer.email} ({customer.phone})" if customer.phone else f"{customer.email}"
    return {
        "Invoice ID": invoice.id,
        "Company": f"{customer.company}",
        "User": user,
        "Amount Paid": format_major_units(invoice.currency_code, invoice.amount_paid),
        "Amount Due": format_major_units(invoice.currency_code, invoice.amount_due),
    }


def posting_failure_fields(failure: PostingFailure) -> Dict[str, str]:
    return {
        "Posting ID": str(failure.posting_id),
        "External Reference": failure.external_ref or "-",
        "Reason": failure.kind.value,
        "message": failure.message,
    }


def failure_fields(message: str) -> Dict[str, str]:
    return {"message": message or "Internal Server Error"}


class ReportGenerator:
    """Generator for reconciliation reports in various formats."""

    def __init__(self, report: ReconciliationReport):
        self.report = report

    def to_json(self, include_details: bool = True, indent: int = 2) -> str:
        """Generate JSON representation of the report.

        Args:
            include_details: If True, include all records. If False, only summary.
            indent: JSON indentation level.
        """
        if include_details:
            data = self.report.to_full_dict()
        else:
            data = self.report.to_summary_dict()

        def json_serializer(obj):
            if isinstance(obj, (datetime, date)):
                return obj.isoformat()
            if isinstance(obj, (FailureKind, RunStatus)):
                return obj.value
            raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

        return json.dumps(data, indent=indent, default=json_serializer)

    def run_summary_fields(self) -> Dict[str, str]:
        """Slack fields for the end-of-run message."""
        stats = self.report.to_summary_dict()["statistics"]
        if self.report.status != RunStatus.COMPLETED:
            return failure_fields(self.report.error_message)
        return {
            "status": "success",
            "Postings": str(stats["total_postings"]),
            "Recorded": str(stats["total_recorded"]),
            "Already Paid": str(stats["total_already_settled"]),
            "Failed": str(stats["total_failed"]),
        }

    def to_summary_text(self) -> str:
        """Generate a human-readable text summary of the report."""
        summary = self.report.to_summary_dict()
        stats = summary["statistics"]

        lines = [
            "=" * 60,
            "PAYMENT MATCHER RUN SUMMARY",
            "=" * 60,
            f"Run ID: {summary['id']}",
            f"Status: {summary['status']}",
            "",
            "Ledger Window:",
            f"  From (incl.): {summary['date_from'] or 'N/A'}",
            f"  To (excl.): {summary['date_to'] or 'N/A'}",
            "",
            "Statistics:",
            f"  Postings Fetched: {stats['total_postings']}",
            f"  Eligible Postings: {stats['total_eligible']}",
            f"  Payments Recorded: {stats['total_recorded']}",
            f"  Already Paid: {stats['total_already_settled']}",
            f"  Failed Postings: {stats['total_failed']}",
            "",
            f"Started At: {summary['started_at']}",
            f"Completed At: {summary['completed_at'] or 'N/A'}",
        ]

        if summary.get("error_message"):
            lines.extend([
                "",
                "Error:",
                f"  {summary['error_message']}",
            ])

        lines.append("=" * 60)

        return "\n".join(lines)

    def to_detailed_text(self) -> str:
        """Summary followed by every recorded payment and failure."""
        lines = [self.to_summary_text(), ""]

        if self.report.recorded:
            lines.extend(["RECORDED PAYMENTS", "-" * 40])
            for r in self.report.recorded:
                marker = " (already paid)" if r.already_settled else ""
                lines.append(
                    f"  Posting {r.posting_id} | Ref {r.external_ref} | "
                    f"Invoice {r.invoice.id} | {r.amount_cents} cents{marker}"
                )
            lines.append("")

        if self.report.failures:
            lines.extend(["FAILED POSTINGS", "-" * 40])
            for f in self.report.failures:
                lines.append(
                    f"  Posting {f.posting_id} | Ref {f.external_ref or '-'} | "
                    f"{f.kind.value}: {f.message}"
                )
            lines.append("")

        return "\n".join(lines)
