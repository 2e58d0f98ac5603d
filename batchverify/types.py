"""Data model shared across the verification pipeline."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

MATCH_PERFECT = "perfect"
MATCH_PARTIAL = "partial"
MATCH_NONE = "none"

# VerificationFailed reasons
MISSING_ARTIFACT = "missing-artifact"
BAD_ARTIFACT = "bad-artifact"
COMPILE_ERROR = "compile-error"
CHAIN_UNREACHABLE = "chain-unreachable"
WRITE_ERROR = "write-error"

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")


def normalize_address(address: str) -> str:
    """
    Normalize an address to lowercase 0x-prefixed hex.

    Raises:
        ValueError: If the address is not 20 bytes of hex
    """
    a = (address or "").strip().lower()
    if not a.startswith("0x"):
        a = "0x" + a
    if not _ADDRESS_RE.match(a):
        raise ValueError(f"invalid address: {address!r}")
    return a


@dataclass(frozen=True)
class ContractIdentity:
    chain_id: int
    address: str

    def __post_init__(self) -> None:
        if not isinstance(self.chain_id, int) or self.chain_id < 0:
            raise ValueError(f"invalid chain id: {self.chain_id!r}")
        object.__setattr__(self, "address", normalize_address(self.address))

    def __str__(self) -> str:
        return f"{self.chain_id}:{self.address}"


@dataclass(frozen=True)
class ContractFileMatch:
    original: str
    dir: str
    chain_id: int
    address: str
    subpath: str = ""

    @property
    def identity(self) -> ContractIdentity:
        return ContractIdentity(self.chain_id, self.address)


@dataclass(frozen=True)
class CompilerConfig:
    compiler: str
    contract_name: Optional[str] = None
    source_path: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class CompilerInput:
    sources: Dict[str, Any]
    language: str = "Solidity"
    settings: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)

    def to_standard_json(self) -> Dict[str, Any]:
        """Standard-JSON document to hand to the compiler."""
        doc = dict(self.raw)
        doc["language"] = self.language
        doc["sources"] = self.sources
        doc["settings"] = dict(self.settings)
        return doc


@dataclass
class CompiledArtifact:
    bytecode: str
    abi: Optional[List[Any]] = None
    metadata_hash: Optional[str] = None
    immutable_references: Dict[str, List[Dict[str, int]]] = field(default_factory=dict)
    contract_name: Optional[str] = None
    compiler: Optional[str] = None


@dataclass(frozen=True)
class VerifiedMetadata:
    identity: ContractIdentity
    match_type: str
    verified_at: str
    compiler_used: str
    contract_name: Optional[str] = None
    runtime_code_hash: Optional[str] = None
    metadata_hash: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "chainId": self.identity.chain_id,
            "address": self.identity.address,
            "matchType": self.match_type,
            "verifiedAt": self.verified_at,
            "compilerUsed": self.compiler_used,
        }
        if self.contract_name:
            data["contractName"] = self.contract_name
        if self.runtime_code_hash:
            data["runtimeCodeHash"] = self.runtime_code_hash
        if self.metadata_hash:
            data["metadataHash"] = self.metadata_hash
        return data


@dataclass(frozen=True)
class VerificationFailed:
    reason: str
    detail: str = ""


@dataclass
class VerificationResult:
    identity: ContractIdentity
    matched: bool
    match_type: str = MATCH_NONE
    metadata: Optional[VerifiedMetadata] = None
    failure: Optional[VerificationFailed] = None

    @property
    def is_error(self) -> bool:
        return self.failure is not None


@dataclass(frozen=True)
class BatchRunOptions:
    concurrency: int = 5
    fail_fast: bool = False
    jump: int = 0
    skip: bool = False
    save: bool = False
    retries: int = 0

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be a positive integer")
        if self.jump < 0:
            raise ValueError("jump must be non-negative")
        if self.retries < 0:
            raise ValueError("retries must be non-negative")


@dataclass
class ProgressState:
    total: int = 0
    index: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False
    completed: bool = False


@dataclass
class BatchResult:
    total: int
    succeeded: int
    failed: int
    cancelled_early: bool
    results: List[VerificationResult] = field(default_factory=list)
