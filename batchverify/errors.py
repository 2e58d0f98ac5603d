"""Error taxonomy for contract verification."""
from typing import Optional


class VerifyError(Exception):
    """Base class for all verification errors."""


class ArtifactError(VerifyError):
    """Config or input artifact is missing or malformed."""


class NotFoundError(ArtifactError):
    """Artifact or directory does not exist in the store."""


class ParseError(ArtifactError):
    """Artifact exists but is not valid JSON or fails validation."""


class CompileError(VerifyError):
    """Compiler rejected the source."""

    def __init__(self, message: str, diagnostics: Optional[str] = None):
        super().__init__(message)
        self.diagnostics = diagnostics if diagnostics is not None else message


class ChainError(VerifyError):
    """Transport or RPC failure while reading on-chain code."""


class WriteError(VerifyError):
    """Persisting verification metadata failed."""
