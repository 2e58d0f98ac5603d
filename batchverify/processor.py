"""Batch verification with bounded concurrency, resume and fail-fast."""
import asyncio
import logging
from typing import List, Optional, Sequence

from batchverify import config
from batchverify.contract_store import ContractStore
from batchverify.progress import ProgressTracker
from batchverify.types import (
    CHAIN_UNREACHABLE,
    MATCH_NONE,
    BatchResult,
    BatchRunOptions,
    ContractIdentity,
    VerificationFailed,
    VerificationResult,
)
from batchverify.verifier import Verifier

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "internal-error"


class BatchProcessor:
    """Drives a Verifier over an ordered list of contracts."""

    def __init__(
        self,
        store: ContractStore,
        verifier: Verifier,
        checkpoint_file: Optional[str] = None,
        retry_backoff: Optional[float] = None,
    ):
        self.store = store
        self.verifier = verifier
        self.checkpoint_file = checkpoint_file
        self.retry_backoff = config.RETRY_BACKOFF_SEC if retry_backoff is None else retry_backoff
        self.progress: Optional[ProgressTracker] = None

    async def _verify_with_retry(self, contract: ContractIdentity, options: BatchRunOptions) -> VerificationResult:
        attempt = 0
        while True:
            result = await self.verifier.verify(contract, save=options.save)
            failure = result.failure
            if failure is None or failure.reason != CHAIN_UNREACHABLE or attempt >= options.retries:
                return result
            attempt += 1
            logger.info(f"[BATCH] {contract} chain unreachable, retry {attempt}/{options.retries}")
            await asyncio.sleep(self.retry_backoff * attempt)

    def _checkpoint(self, tracker: ProgressTracker) -> None:
        if not self.checkpoint_file:
            return
        try:
            tracker.save_checkpoint(self.checkpoint_file)
        except OSError as e:
            logger.warning(f"[BATCH] cannot write checkpoint {self.checkpoint_file}: {e}")

    async def process(
        self,
        contracts: Sequence[ContractIdentity],
        options: BatchRunOptions,
        tracker: Optional[ProgressTracker] = None,
    ) -> BatchResult:
        """
        Verify contracts[options.jump:] with at most options.concurrency in flight.

        Args:
            contracts: Ordered contracts to verify
            options: Run options
            tracker: Progress tracker for this run (a new one by default)

        Returns:
            BatchResult once every dispatched verification has settled
        """
        contracts = list(contracts)
        tracker = tracker or ProgressTracker()
        tracker.reset(total=len(contracts), jump=options.jump)
        self.progress = tracker

        semaphore = asyncio.Semaphore(options.concurrency)
        results: List[VerificationResult] = []
        tasks: List[asyncio.Task] = []

        logger.info(
            f"[BATCH] {len(contracts)} contracts, jump={options.jump} "
            f"concurrency={options.concurrency} fail_fast={options.fail_fast} "
            f"skip={options.skip} save={options.save}"
        )

        async def run(position: int, contract: ContractIdentity) -> None:
            try:
                try:
                    result = await self._verify_with_retry(contract, options)
                except Exception as e:
                    logger.error(f"[BATCH] {contract} verifier raised: {e!r}")
                    result = VerificationResult(
                        identity=contract,
                        matched=False,
                        match_type=MATCH_NONE,
                        failure=VerificationFailed(reason=INTERNAL_ERROR, detail=repr(e)),
                    )
                results.append(result)
                tracker.record(position, result)
                if result.is_error and options.fail_fast and not tracker.cancelled:
                    logger.warning(f"[BATCH] fail-fast: {contract} failed, stopping dispatch")
                    tracker.cancel()
                self._checkpoint(tracker)
            finally:
                semaphore.release()

        for position in range(options.jump, len(contracts)):
            if tracker.cancelled:
                break
            contract = contracts[position]
            if options.skip and self.store.has_metadata(contract):
                logger.debug(f"[BATCH] {contract} already verified, skipping")
                tracker.mark_skipped(position)
                continue

            await semaphore.acquire()
            if tracker.cancelled:
                semaphore.release()
                break
            tracker.mark_dispatched(position)
            tasks.append(asyncio.create_task(run(position, contract)))

        if tasks:
            await asyncio.gather(*tasks)
        tracker.complete()
        self._checkpoint(tracker)

        state = tracker.snapshot()
        logger.info(
            f"[BATCH] done: {state.succeeded} verified, {state.failed} failed, "
            f"{state.skipped} skipped of {state.total}"
            + (" (cancelled early)" if state.cancelled else "")
        )
        return BatchResult(
            total=state.total,
            succeeded=state.succeeded,
            failed=state.failed,
            cancelled_early=state.cancelled,
            results=results,
        )
