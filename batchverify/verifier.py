"""Verify one contract: load, compile, read chain, compare, persist."""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from eth_utils import keccak

from batchverify import matching
from batchverify.chain_reader import ChainReader
from batchverify.compiler import Compiler
from batchverify.contract_store import ContractStore
from batchverify.errors import ArtifactError, ChainError, CompileError, NotFoundError, WriteError
from batchverify.types import (
    BAD_ARTIFACT,
    CHAIN_UNREACHABLE,
    COMPILE_ERROR,
    MATCH_NONE,
    MISSING_ARTIFACT,
    WRITE_ERROR,
    ContractIdentity,
    VerificationFailed,
    VerificationResult,
    VerifiedMetadata,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Verifier:
    """
    Orchestrates verification of a single contract.

    Every per-contract error is turned into a VerificationResult carrying a
    VerificationFailed; nothing raised by the store, the compiler or the
    chain reader escapes verify(). No step is retried here.
    """

    def __init__(
        self,
        store: ContractStore,
        compiler: Compiler,
        reader: ChainReader,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.compiler = compiler
        self.reader = reader
        self.clock = clock or _utcnow

    def _fail(self, contract: ContractIdentity, reason: str, detail: str) -> VerificationResult:
        logger.warning(f"[VERIFY] {contract} failed: {reason}: {detail.splitlines()[0] if detail else ''}")
        return VerificationResult(
            identity=contract,
            matched=False,
            match_type=MATCH_NONE,
            failure=VerificationFailed(reason=reason, detail=detail),
        )

    async def verify(self, contract: ContractIdentity, save: bool = False) -> VerificationResult:
        """
        Verify that the stored source compiles to the code deployed on-chain.

        Args:
            contract: Contract to verify
            save: Persist metadata when the contract matches

        Returns:
            VerificationResult; a no-match is a normal result without failure
        """
        logger.debug(f"[VERIFY] start {contract}")

        # 1. Artifacts
        try:
            cfg = self.store.get_config(contract)
            source = self.store.get_input(contract)
        except NotFoundError as e:
            return self._fail(contract, MISSING_ARTIFACT, str(e))
        except ArtifactError as e:
            return self._fail(contract, BAD_ARTIFACT, str(e))

        # 2. Compile
        try:
            artifact = await self.compiler.compile(source, cfg)
        except CompileError as e:
            return self._fail(contract, COMPILE_ERROR, e.diagnostics)
        except Exception as e:
            logger.error(f"[VERIFY] {contract} unexpected compiler error: {e!r}")
            return self._fail(contract, COMPILE_ERROR, repr(e))

        # 3. On-chain code
        try:
            onchain = await self.reader.get_code(contract.chain_id, contract.address)
        except ChainError as e:
            return self._fail(contract, CHAIN_UNREACHABLE, str(e))
        except Exception as e:
            logger.error(f"[VERIFY] {contract} unexpected chain reader error: {e!r}")
            return self._fail(contract, CHAIN_UNREACHABLE, repr(e))

        # 4. Compare
        match_type = matching.compare(artifact.bytecode, onchain, artifact.immutable_references)
        if match_type == MATCH_NONE:
            if not matching.normalize_hex(onchain):
                logger.info(f"[VERIFY] {contract} has no code on chain")
            else:
                logger.info(f"[VERIFY] {contract} does not match deployed bytecode")
            return VerificationResult(identity=contract, matched=False, match_type=MATCH_NONE)

        # 5. Metadata
        metadata = VerifiedMetadata(
            identity=contract,
            match_type=match_type,
            verified_at=self.clock().isoformat(timespec="seconds"),
            compiler_used=artifact.compiler or cfg.compiler,
            contract_name=artifact.contract_name,
            runtime_code_hash="0x" + keccak(hexstr=matching.normalize_hex(onchain)).hex(),
            metadata_hash=artifact.metadata_hash,
        )
        if save:
            try:
                self.store.save_metadata(contract, metadata)
            except WriteError as e:
                return self._fail(contract, WRITE_ERROR, str(e))

        logger.info(f"[VERIFY] {contract} {match_type} match")
        return VerificationResult(
            identity=contract,
            matched=True,
            match_type=match_type,
            metadata=metadata,
        )
