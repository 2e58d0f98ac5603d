"""Filesystem store of contract configs, inputs and verified metadata."""
import json
import logging
import os
import tempfile
from typing import Any, Dict, Iterable, List, Optional

from batchverify import config, identity as identity_resolver
from batchverify.errors import ArtifactError, NotFoundError, ParseError, WriteError
from batchverify.types import (
    CompilerConfig,
    CompilerInput,
    ContractFileMatch,
    ContractIdentity,
    VerifiedMetadata,
)

logger = logging.getLogger(__name__)

MatchedContracts = Dict[str, ContractFileMatch]
MatchedChains = Dict[int, MatchedContracts]


def _optional_str(doc: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = doc.get(key)
        if value is None:
            continue
        if not isinstance(value, str) or not value:
            raise ParseError(f"'{key}' must be a non-empty string")
        return value
    return None


def parse_config(doc: Any) -> CompilerConfig:
    """
    Validate a parsed config document.

    Raises:
        ParseError: If the document does not describe a compiler
    """
    if not isinstance(doc, dict):
        raise ParseError("config must be a JSON object")
    compiler = _optional_str(doc, "compiler", "compilerVersion")
    if not compiler:
        raise ParseError("config is missing 'compiler'")
    return CompilerConfig(
        compiler=compiler,
        contract_name=_optional_str(doc, "contractName", "name"),
        source_path=_optional_str(doc, "sourcePath", "fileName"),
        raw=doc,
    )


def parse_input(doc: Any) -> CompilerInput:
    """
    Validate a parsed standard-JSON input document.

    Raises:
        ParseError: If the document has no sources
    """
    if not isinstance(doc, dict):
        raise ParseError("input must be a JSON object")
    sources = doc.get("sources")
    if not isinstance(sources, dict) or not sources:
        raise ParseError("input has no 'sources'")
    language = doc.get("language", "Solidity")
    if not isinstance(language, str):
        raise ParseError("'language' must be a string")
    settings = doc.get("settings", {})
    if not isinstance(settings, dict):
        raise ParseError("'settings' must be an object")
    return CompilerInput(sources=sources, language=language, settings=settings, raw=doc)


class ContractStore:
    """Provides access to contracts laid out as <dirname>/<chainId>/<address>/."""

    def __init__(
        self,
        dirname: Optional[str] = None,
        config_basename: Optional[str] = None,
        input_basename: Optional[str] = None,
        metadata_basename: Optional[str] = None,
    ):
        self.dirname = dirname or config.CONTRACTS_DIR
        self.config_basename = config_basename or config.CONFIG_BASENAME
        self.input_basename = input_basename or config.INPUT_BASENAME
        self.metadata_basename = metadata_basename or config.METADATA_BASENAME

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def chain_dirname(self, chain_id: int) -> str:
        return os.path.join(self.dirname, str(chain_id))

    def address_dirname(self, contract: ContractIdentity) -> str:
        return os.path.join(self.chain_dirname(contract.chain_id), contract.address)

    def config_filename(self, contract: ContractIdentity) -> str:
        return os.path.join(self.address_dirname(contract), self.config_basename)

    def input_filename(self, contract: ContractIdentity) -> str:
        return os.path.join(self.address_dirname(contract), self.input_basename)

    def metadata_filename(self, contract: ContractIdentity) -> str:
        return os.path.join(self.address_dirname(contract), self.metadata_basename)

    def match(self, path: str) -> Optional[ContractFileMatch]:
        return identity_resolver.match(path, self.dirname)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def _match_all(self, paths: Iterable[str]) -> MatchedChains:
        chains: MatchedChains = {}
        for path in paths:
            m = self.match(path)
            if m is None:
                continue
            chains.setdefault(m.chain_id, {})[m.address] = m
        return chains

    def get_contracts(self) -> MatchedChains:
        """
        Get all saved contracts.

        Returns:
            Mapping of chain id to a mapping of address to file match
        """
        if not os.path.isdir(self.dirname):
            logger.warning(f"[STORE] contracts directory {self.dirname} does not exist")
            return {}

        paths: List[str] = []
        with os.scandir(self.dirname) as chain_entries:
            for chain_entry in chain_entries:
                if not chain_entry.is_dir():
                    continue
                chain_dir = os.path.join(self.dirname, chain_entry.name)
                with os.scandir(chain_dir) as addr_entries:
                    paths.extend(os.path.join(chain_dir, e.name) for e in addr_entries)

        return self._match_all(paths)

    def get_chain_contracts(self, chain_id: int) -> MatchedContracts:
        """
        Get all saved contracts for one chain.

        Raises:
            NotFoundError: If the chain directory does not exist
        """
        chain_dir = self.chain_dirname(chain_id)
        try:
            names = os.listdir(chain_dir)
        except (FileNotFoundError, NotADirectoryError) as e:
            raise NotFoundError(f"no contracts for chain {chain_id}: {chain_dir}") from e

        matches = self._match_all(os.path.join(chain_dir, name) for name in names)
        return matches.get(chain_id, {})

    def iter_identities(self) -> List[ContractIdentity]:
        """All identities in the store sorted by (chain_id, address)."""
        contracts = self.get_contracts()
        return [
            ContractIdentity(chain_id, address)
            for chain_id in sorted(contracts)
            for address in sorted(contracts[chain_id])
        ]

    # ------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------

    def _read_json(self, filename: str) -> Any:
        try:
            with open(filename, "r", encoding="utf-8") as f:
                return json.load(f)
        except (FileNotFoundError, NotADirectoryError) as e:
            raise NotFoundError(f"{filename} not found") from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseError(f"{filename} is not valid JSON: {e}") from e
        except OSError as e:
            raise ArtifactError(f"cannot read {filename}: {e}") from e

    def get_config(self, contract: ContractIdentity) -> CompilerConfig:
        filename = self.config_filename(contract)
        try:
            return parse_config(self._read_json(filename))
        except ParseError as e:
            raise ParseError(f"{filename}: {e}") from e

    def get_input(self, contract: ContractIdentity) -> CompilerInput:
        filename = self.input_filename(contract)
        try:
            return parse_input(self._read_json(filename))
        except ParseError as e:
            raise ParseError(f"{filename}: {e}") from e

    def has_metadata(self, contract: ContractIdentity) -> bool:
        return os.path.isfile(self.metadata_filename(contract))

    def save_metadata(self, contract: ContractIdentity, metadata: VerifiedMetadata) -> None:
        """
        Save contract metadata as pretty-printed JSON.

        The file is replaced atomically so concurrent writers never leave a
        partial document behind.

        Raises:
            WriteError: If the file cannot be written
        """
        filename = self.metadata_filename(contract)
        directory = os.path.dirname(filename)
        payload = json.dumps(metadata.to_json(), ensure_ascii=False, indent=2) + "\n"
        tmp_name = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".metadata-", suffix=".tmp", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, filename)
            tmp_name = None
        except OSError as e:
            raise WriteError(f"cannot write {filename}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.remove(tmp_name)
        logger.debug(f"[STORE] saved {filename}")
