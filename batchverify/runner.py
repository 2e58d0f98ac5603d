"""Entry point: verify every contract in the configured store."""
import asyncio
import logging
from typing import Optional, Sequence

from batchverify import config
from batchverify.chain_reader import ChainReader, Web3ChainReader
from batchverify.compiler import Compiler, build_compiler
from batchverify.contract_store import ContractStore
from batchverify.processor import BatchProcessor
from batchverify.progress import ProgressTracker
from batchverify.types import BatchResult, BatchRunOptions, ContractIdentity
from batchverify.verifier import Verifier

logger = logging.getLogger(__name__)


def options_from_config() -> BatchRunOptions:
    jump = config.JUMP
    if config.CHECKPOINT_FILE and jump == 0:
        checkpoint = ProgressTracker.load_checkpoint(config.CHECKPOINT_FILE)
        if checkpoint and not checkpoint.get("cancelled") and not checkpoint.get("completed"):
            jump = int(checkpoint.get("resume_index", 0))
            if jump:
                logger.info(f"[RECOVERY] Resuming from checkpoint at index {jump}")
    return BatchRunOptions(
        concurrency=config.CONCURRENCY,
        fail_fast=config.FAIL_FAST,
        jump=jump,
        skip=config.SKIP,
        save=config.SAVE,
        retries=config.RETRIES,
    )


async def run(
    contracts: Optional[Sequence[ContractIdentity]] = None,
    options: Optional[BatchRunOptions] = None,
    store: Optional[ContractStore] = None,
    compiler: Optional[Compiler] = None,
    reader: Optional[ChainReader] = None,
) -> BatchResult:
    """
    Verify contracts with collaborators built from config.

    Args:
        contracts: Contracts to verify (default: the whole store, sorted)
        options: Run options (default: from config)
        store: Contract store (default: CONTRACTS_DIR)
        compiler: Compiler backend (default: COMPILER_BACKEND)
        reader: Chain reader (default: RPC_URLS)

    Returns:
        BatchResult of the run
    """
    store = store or ContractStore()
    compiler = compiler or build_compiler()
    reader = reader or Web3ChainReader()
    options = options or options_from_config()
    if contracts is None:
        contracts = store.iter_identities()

    processor = BatchProcessor(
        store,
        Verifier(store, compiler, reader),
        checkpoint_file=config.CHECKPOINT_FILE or None,
    )
    try:
        return await processor.process(contracts, options)
    finally:
        await reader.close()


def main() -> int:
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    result = asyncio.run(run())
    print(
        f"[RESULT] total={result.total} verified={result.succeeded} "
        f"failed={result.failed} cancelled_early={result.cancelled_early}"
    )
    return 1 if result.cancelled_early else 0


if __name__ == "__main__":
    raise SystemExit(main())
