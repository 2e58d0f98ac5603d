"""Tests for the web3 chain reader and RPC configuration."""
import asyncio

import pytest
from web3.exceptions import Web3Exception

from batchverify import config
from batchverify.chain_reader import ChainReader, Web3ChainReader
from batchverify.errors import ChainError

from fakes import address


class _Eth:
    def __init__(self, code=None, error=None):
        self.code = code
        self.error = error
        self.calls = []

    async def get_code(self, addr, block):
        self.calls.append((addr, block))
        if self.error:
            raise self.error
        return self.code


class _W3:
    def __init__(self, eth):
        self.eth = eth


def _reader_with(monkeypatch, eth):
    reader = Web3ChainReader(rpc_urls={1: "http://node.local"})
    monkeypatch.setattr(reader, "_client", lambda chain_id: _W3(eth))
    return reader


def test_get_code_returns_prefixed_hex(monkeypatch):
    eth = _Eth(code=bytes.fromhex("6080604052"))
    reader = _reader_with(monkeypatch, eth)
    assert asyncio.run(reader.get_code(1, address(0xAB))) == "0x6080604052"
    checksummed, block = eth.calls[0]
    assert checksummed.lower() == address(0xAB)
    assert block == "latest"


def test_empty_code(monkeypatch):
    reader = _reader_with(monkeypatch, _Eth(code=b""))
    assert asyncio.run(reader.get_code(1, address(1))) == "0x"


@pytest.mark.parametrize("error", [Web3Exception("rpc error"), OSError("connection reset"), asyncio.TimeoutError()])
def test_transport_errors_become_chain_error(monkeypatch, error):
    reader = _reader_with(monkeypatch, _Eth(error=error))
    with pytest.raises(ChainError):
        asyncio.run(reader.get_code(1, address(1)))


def test_unknown_chain():
    reader = Web3ChainReader(rpc_urls={1: "http://node.local"})
    with pytest.raises(ChainError, match="chain 56"):
        asyncio.run(reader.get_code(56, address(1)))


def test_client_cached_per_chain():
    reader = Web3ChainReader(rpc_urls={1: "http://a.local", 10: "http://b.local"})
    assert reader._client(1) is reader._client(1)
    assert reader._client(1) is not reader._client(10)


def test_parse_rpc_urls():
    urls = config.parse_rpc_urls("1=https://eth.local, 0x89=https://polygon.local,bad,=x,5=,abc=http://y")
    assert urls == {1: "https://eth.local", 137: "https://polygon.local"}


def test_rpc_url_for_prefers_env(monkeypatch):
    monkeypatch.setattr(config, "RPC_URLS", {1: "https://list.local"})
    monkeypatch.delenv("RPC_URL_1", raising=False)
    assert config.rpc_url_for(1) == "https://list.local"
    monkeypatch.setenv("RPC_URL_1", "https://env.local")
    assert config.rpc_url_for(1) == "https://env.local"
    monkeypatch.delenv("RPC_URL_2", raising=False)
    assert config.rpc_url_for(2) is None


def test_reader_requires_get_code():
    class Incomplete(ChainReader):
        pass

    with pytest.raises(TypeError):
        Incomplete()
