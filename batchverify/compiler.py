"""Compiler backends producing runtime bytecode from standard-JSON input."""
import asyncio
import logging
import re
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
import solcx
from solcx.exceptions import (
    SolcError,
    SolcInstallationError,
    SolcNotInstalled,
    UnsupportedVersionError,
)

from batchverify import config
from batchverify.errors import CompileError
from batchverify.matching import metadata_hash, normalize_hex
from batchverify.types import CompiledArtifact, CompilerConfig, CompilerInput

logger = logging.getLogger(__name__)

OUTPUT_SELECTION: Dict[str, Dict[str, List[str]]] = {
    "*": {
        "*": [
            "abi",
            "metadata",
            "evm.deployedBytecode.object",
            "evm.deployedBytecode.immutableReferences",
        ]
    }
}

_VERSION_RE = re.compile(r"^v?(\d+\.\d+\.\d+)")


def solc_version(compiler: str) -> str:
    """
    Reduce a long compiler version to its semver part.

    "v0.8.17+commit.8df45f5f" -> "0.8.17"

    Raises:
        CompileError: If no version can be read
    """
    m = _VERSION_RE.match((compiler or "").strip())
    if not m:
        raise CompileError(f"unsupported compiler version: {compiler!r}")
    return m.group(1)


def standard_json(source: CompilerInput) -> Dict[str, Any]:
    """Standard-JSON input with the output selection the verifier needs."""
    doc = source.to_standard_json()
    doc["settings"]["outputSelection"] = OUTPUT_SELECTION
    return doc


def _format_errors(errors: List[Dict[str, Any]]) -> str:
    lines = []
    for err in errors:
        msg = err.get("formattedMessage") or err.get("message") or str(err)
        lines.append(msg.strip())
    return "\n".join(lines)


def _select_contract(
    contracts: Dict[str, Dict[str, Any]],
    cfg: CompilerConfig,
) -> Tuple[str, Dict[str, Any]]:
    if cfg.source_path:
        by_name = contracts.get(cfg.source_path) or {}
        if cfg.contract_name:
            if cfg.contract_name in by_name:
                return cfg.contract_name, by_name[cfg.contract_name]
        elif len(by_name) == 1:
            return next(iter(by_name.items()))
        raise CompileError(
            f"contract {cfg.contract_name or '?'} not found in {cfg.source_path}"
        )

    candidates: List[Tuple[str, Dict[str, Any]]] = []
    for by_name in contracts.values():
        for name, data in by_name.items():
            if cfg.contract_name:
                if name == cfg.contract_name:
                    candidates.append((name, data))
                continue
            code = ((data.get("evm") or {}).get("deployedBytecode") or {}).get("object")
            if code:
                candidates.append((name, data))

    if len(candidates) == 1:
        return candidates[0]
    if not candidates:
        raise CompileError(f"contract {cfg.contract_name or '?'} not found in compiler output")
    names = ", ".join(sorted(name for name, _ in candidates))
    raise CompileError(f"ambiguous contract selection ({names}); set contractName/sourcePath")


def parse_output(output: Dict[str, Any], cfg: CompilerConfig, compiler: Optional[str] = None) -> CompiledArtifact:
    """
    Extract the selected contract from standard-JSON compiler output.

    Args:
        output: Parsed compiler output
        cfg: Contract compiler config
        compiler: Compiler actually used (defaults to cfg.compiler)

    Returns:
        CompiledArtifact with runtime bytecode

    Raises:
        CompileError: If the output holds errors or no usable contract
    """
    if not isinstance(output, dict):
        raise CompileError("compiler output is not a JSON object")

    errors = [e for e in output.get("errors") or [] if e.get("severity", "error") == "error"]
    if errors:
        raise CompileError("compilation failed", diagnostics=_format_errors(errors))

    name, data = _select_contract(output.get("contracts") or {}, cfg)
    deployed = (data.get("evm") or {}).get("deployedBytecode") or {}
    bytecode = normalize_hex(deployed.get("object"))
    if not bytecode:
        raise CompileError(f"contract {name} has no runtime bytecode (abstract or interface?)")

    return CompiledArtifact(
        bytecode=bytecode,
        abi=data.get("abi"),
        metadata_hash=metadata_hash(bytecode),
        immutable_references=deployed.get("immutableReferences") or {},
        contract_name=name,
        compiler=compiler or cfg.compiler,
    )


class Compiler(ABC):
    """Compiles a contract input against its config."""

    @abstractmethod
    async def compile(self, source: CompilerInput, cfg: CompilerConfig) -> CompiledArtifact:
        """Compile source and return the selected contract's runtime artifact."""


class SolcCompiler(Compiler):
    """Local solc binaries managed by py-solc-x."""

    _install_lock = threading.Lock()

    def __init__(self, allow_install: bool = True):
        self.allow_install = allow_install

    def _ensure_installed(self, version: str) -> None:
        with self._install_lock:
            installed = {str(v) for v in solcx.get_installed_solc_versions()}
            if version in installed:
                return
            if not self.allow_install:
                raise CompileError(f"solc {version} is not installed")
            logger.info(f"[COMPILE] installing solc {version}")
            solcx.install_solc(version)

    def _compile_sync(self, doc: Dict[str, Any], version: str) -> Dict[str, Any]:
        try:
            self._ensure_installed(version)
            return solcx.compile_standard(doc, solc_version=version, allow_empty=True)
        except SolcError as e:
            raise CompileError("solc rejected the input", diagnostics=str(e)) from e
        except (SolcInstallationError, SolcNotInstalled, UnsupportedVersionError, OSError) as e:
            raise CompileError(f"solc {version} unavailable: {e}") from e

    async def compile(self, source: CompilerInput, cfg: CompilerConfig) -> CompiledArtifact:
        version = solc_version(cfg.compiler)
        output = await asyncio.to_thread(self._compile_sync, standard_json(source), version)
        return parse_output(output, cfg)


class RemoteCompiler(Compiler):
    """
    HTTP compile service.

    POST <url>?compiler=<version> with the standard-JSON input as body.
    The service answers {"compiler": ..., "output": ...} or, when the
    version is unknown, {"errors": [...]}.
    """

    def __init__(self, url: Optional[str] = None, timeout: Optional[int] = None):
        self.url = url or config.COMPILER_URL
        self.timeout = timeout or config.COMPILER_TIMEOUT_SEC
        if not self.url:
            raise ValueError("COMPILER_URL is not configured")

    async def _post(self, doc: Dict[str, Any], compiler: str) -> Dict[str, Any]:
        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as session:
                async with session.post(
                    self.url, params={"compiler": compiler}, json=doc
                ) as response:
                    if response.status != 200:
                        text = await response.text()
                        raise CompileError(
                            f"compile service returned {response.status}",
                            diagnostics=text[:2000],
                        )
                    return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise CompileError(f"compile service request failed: {e}") from e

    async def compile(self, source: CompilerInput, cfg: CompilerConfig) -> CompiledArtifact:
        data = await self._post(standard_json(source), cfg.compiler)
        if not isinstance(data, dict):
            raise CompileError("compile service returned a non-object body")
        if "output" not in data:
            raise CompileError(
                "compile service rejected the request",
                diagnostics=_format_errors(data.get("errors") or []),
            )
        return parse_output(data["output"], cfg, compiler=data.get("compiler") or cfg.compiler)


def build_compiler(backend: Optional[str] = None) -> Compiler:
    """Compiler selected by COMPILER_BACKEND."""
    backend = (backend or config.COMPILER_BACKEND).lower()
    if backend == "remote":
        return RemoteCompiler()
    if backend == "solc":
        return SolcCompiler()
    raise ValueError(f"unknown compiler backend: {backend}")
