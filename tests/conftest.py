"""Pytest fixtures for the verification pipeline."""
import json
from pathlib import Path

import pytest

from batchverify.contract_store import ContractStore
from batchverify.types import ContractIdentity


@pytest.fixture
def store(tmp_path):
    """Empty contract store rooted in a temp directory."""
    root = tmp_path / "contracts"
    root.mkdir()
    return ContractStore(dirname=str(root))


@pytest.fixture
def write_contract(store):
    """Create <root>/<chain>/<address>/ with a config and an input."""

    def _write(chain_id: int, address: str, name: str = "Token", config=None, source=None) -> ContractIdentity:
        contract = ContractIdentity(chain_id, address)
        directory = Path(store.address_dirname(contract))
        directory.mkdir(parents=True, exist_ok=True)
        if config is not False:
            cfg = config if config is not None else {"compiler": "v0.8.17+commit.8df45f5f", "contractName": name}
            text = cfg if isinstance(cfg, str) else json.dumps(cfg)
            (directory / store.config_basename).write_text(text, encoding="utf-8")
        if source is not False:
            src = source if source is not None else {
                "language": "Solidity",
                "sources": {f"{name}.sol": {"content": f"contract {name} {{}}"}},
                "settings": {"optimizer": {"enabled": True, "runs": 200}},
            }
            text = src if isinstance(src, str) else json.dumps(src)
            (directory / store.input_basename).write_text(text, encoding="utf-8")
        return contract

    return _write
