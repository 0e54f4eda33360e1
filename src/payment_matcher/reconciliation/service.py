"""Service layer orchestrating one reconciliation run."""

import uuid
import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from ..config import Settings
from ..connectors.base import BillingConnectorBase, LedgerConnectorBase
from ..connectors.chargebee_connector import ChargebeeConnector
from ..connectors.tripletex_connector import TripletexConnector
from ..errors import LedgerError, TokenError
from ..notifier import SlackNotifier
from .fetcher import PostingFetcher
from .models import LedgerWindow, ReconciliationReport, RunStatus
from .recorder import InvoiceResolver, PaymentRecorder
from .reconciler import Reconciler
from .report import (
    PAYMENT_RECORDED_TITLE,
    POSTING_FAILED_TITLE,
    RUN_FAILED_TITLE,
    RUN_SUCCEEDED_TITLE,
    ReportGenerator,
    payment_fields,
    posting_failure_fields,
)

logger = logging.getLogger(__name__)


class ReconciliationService:
    """Runs the matcher job: token, ledger window, postings, invoices, report."""

    def __init__(
        self,
        ledger: LedgerConnectorBase,
        billing: BillingConnectorBase,
        notifier: SlackNotifier,
        notify_failed_postings: bool = False,
        today: Callable[[], date] = date.today,
        fetcher: Optional[PostingFetcher] = None,
        reconciler: Optional[Reconciler] = None,
    ):
        """Initialize the reconciliation service.

        Args:
            ledger: Ledger connector used for the token, window and postings.
            billing: Billing connector used to resolve and record payments.
            notifier: Destination for per-invoice and per-run messages.
            notify_failed_postings: Also send one message per dropped posting.
            today: Clock used to compute the ledger window.
            fetcher: Optional pre-built posting fetcher.
            reconciler: Optional pre-built reconciler.
        """
        self.ledger = ledger
        self.billing = billing
        self.notifier = notifier
        self.notify_failed_postings = notify_failed_postings
        self._today = today
        self.fetcher = fetcher or PostingFetcher(ledger)
        self.reconciler = reconciler or Reconciler(
            InvoiceResolver(billing),
            PaymentRecorder(billing),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReconciliationService":
        """Wire the production connectors from settings."""
        return cls(
            ledger=TripletexConnector(settings),
            billing=ChargebeeConnector(settings),
            notifier=SlackNotifier(settings.slack_webhook_url),
            notify_failed_postings=settings.notify_failed_postings,
        )

    async def run_reconciliation(self) -> ReconciliationReport:
        """Execute one reconciliation run.

        Token and ledger-window failures mark the report FAILED. Failures on
        individual postings are kept in the report and do not change its
        status.

        Returns:
            ReconciliationReport with results.
        """
        today = self._today()
        window = LedgerWindow.around(today)
        report = ReconciliationReport(
            id=str(uuid.uuid4()),
            status=RunStatus.IN_PROGRESS,
            window=window,
        )

        logger.info(
            f"Starting matcher run {report.id} for {window.date_from.isoformat()} "
            f"to {window.date_to.isoformat()}"
        )

        try:
            credential = await self.ledger.create_session_token(today + timedelta(days=1))
            postings, fetch_failures = await self.fetcher.fetch_postings(window, credential)
            report.total_postings = len(postings) + len(fetch_failures)
            report.failures.extend(fetch_failures)
            report.total_eligible = len(Reconciler.filter_eligible(postings))

            recorded, failures = await self.reconciler.reconcile(postings)
            report.recorded = recorded
            report.failures.extend(failures)
            report.status = RunStatus.COMPLETED

            logger.info(
                f"Matcher run {report.id} completed: "
                f"{len(report.newly_recorded)} recorded, "
                f"{len(report.recorded) - len(report.newly_recorded)} already paid, "
                f"{len(report.failures)} failed"
            )
        except (TokenError, LedgerError) as e:
            logger.error(f"Matcher run {report.id} failed: {e}")
            report.status = RunStatus.FAILED
            report.error_message = str(e)
        finally:
            report.completed_at = datetime.utcnow()
            await self.ledger.aclose()

        await self.notify(report)
        return report

    async def notify(self, report: ReconciliationReport) -> None:
        """Send per-invoice messages and the run summary."""
        for payment in report.newly_recorded:
            logger.info(
                f"Successfully reconciled invoice {payment.invoice.id} "
                f"{payment.invoice.customer_id}"
            )
            await self.notifier.send(PAYMENT_RECORDED_TITLE, payment_fields(payment))

        if self.notify_failed_postings:
            for failure in report.failures:
                await self.notifier.send(POSTING_FAILED_TITLE, posting_failure_fields(failure))

        title = RUN_SUCCEEDED_TITLE if report.status == RunStatus.COMPLETED else RUN_FAILED_TITLE
        await self.notifier.send(title, ReportGenerator(report).run_summary_fields())

    def generate_report(
        self,
        report: ReconciliationReport,
        format: str = "json",
        include_details: bool = True,
    ) -> str:
        """Generate a formatted report from reconciliation results.

        Args:
            report: ReconciliationReport to format.
            format: Output format ('json', 'text', 'detailed_text').
            include_details: Include detailed records (for JSON format).

        Returns:
            Formatted report string.
        """
        generator = ReportGenerator(report)

        if format == "json":
            return generator.to_json(include_details=include_details)
        elif format == "text":
            return generator.to_summary_text()
        elif format == "detailed_text":
            return generator.to_detailed_text()
        else:
            raise ValueError(f"Unsupported report format: {format}")
