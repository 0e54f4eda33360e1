"""Ledger posting fetching for reconciliation."""

import asyncio
import logging
from typing import Awaitable, Callable, List, Tuple, TypeVar

from ..connectors.base import LedgerConnectorBase
from ..errors import PostingError
from .models import (
    FailureKind,
    Ledger,
    LedgerWindow,
    Posting,
    PostingFailure,
    SessionCredential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES = 3
BASE_DELAY_SECONDS = 0.25


def backoff_delays(retries: int = MAX_RETRIES, base_delay: float = BASE_DELAY_SECONDS) -> List[float]:
    """Exponential delays between attempts: base, 2*base, 4*base, ..."""
    return [base_delay * (2 ** n) for n in range(retries)]


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    retry_on: Tuple[type, ...],
    retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY_SECONDS,
) -> T:
    """Await ``operation`` until it succeeds, at most ``retries + 1`` times.

    Only exceptions in ``retry_on`` are retried; the last one is re-raised once
    the retries are used up. There is no jitter.
    """
    delays = backoff_delays(retries, base_delay)
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except retry_on as e:
            if attempt > len(delays):
                raise
            delay = delays[attempt - 1]
            logger.warning(f"Attempt {attempt} failed ({e}); retrying in {delay:.2f}s")
            await asyncio.sleep(delay)


class PostingFetcher:
    """Fetches a ledger window and hydrates each posting's full detail."""

    def __init__(
        self,
        connector: LedgerConnectorBase,
        max_retries: int = MAX_RETRIES,
        base_delay: float = BASE_DELAY_SECONDS,
    ):
        self.connector = connector
        self.max_retries = max_retries
        self.base_delay = base_delay

    async def fetch_ledger(self, window: LedgerWindow, credential: SessionCredential) -> Ledger:
        """Single attempt; a LedgerError aborts the run."""
        logger.info(
            f"Fetching ledger from {window.date_from.isoformat()} "
            f"to {window.date_to.isoformat()}"
        )
        return await self.connector.fetch_ledger(window, credential)

    async def fetch_posting(self, posting_id: int, credential: SessionCredential) -> Posting:
        """Fetch one posting, retrying transient failures with exponential backoff.

        Args:
            posting_id: Ledger posting id.
            credential: Session credential for this run.

        Returns:
            The fully populated Posting.

        Raises:
            PostingError: If every attempt failed.
        """
        try:
            return await retry_async(
                lambda: self.connector.fetch_posting(posting_id, credential),
                retry_on=(PostingError,),
                retries=self.max_retries,
                base_delay=self.base_delay,
            )
        except PostingError as e:
            logger.error(
                f"Giving up on posting {posting_id} after {self.max_retries + 1} attempts: {e}"
            )
            raise

    async def fetch_postings(
        self,
        window: LedgerWindow,
        credential: SessionCredential,
    ) -> Tuple[List[Posting], List[PostingFailure]]:
        """Fetch every posting in the window with full detail.

        Hydration runs concurrently without a cap. A posting that exhausts its
        retries is returned as a failure; it does not cancel its siblings.

        Returns:
            Tuple of (hydrated postings, failures).
        """
        ledger = await self.fetch_ledger(window, credential)
        posting_ids = ledger.posting_ids()
        logger.info(f"Fetched ledger successfully with {len(posting_ids)} postings")

        results = await asyncio.gather(
            *(self.fetch_posting(posting_id, credential) for posting_id in posting_ids),
            return_exceptions=True,
        )

        postings: List[Posting] = []
        failures: List[PostingFailure] = []
        for posting_id, result in zip(posting_ids, results):
            if isinstance(result, PostingError):
                failures.append(PostingFailure(
                    posting_id=posting_id,
                    kind=FailureKind.POSTING_FETCH,
                    message=str(result),
                ))
            elif isinstance(result, BaseException):
                raise result
            else:
                postings.append(result)

        if failures:
            logger.warning(f"{len(failures)} of {len(posting_ids)} postings could not be fetched")
        return postings, failures
