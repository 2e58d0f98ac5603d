"""Tests for single contract verification."""
import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path

from batchverify.errors import WriteError
from batchverify.types import (
    BAD_ARTIFACT,
    CHAIN_UNREACHABLE,
    COMPILE_ERROR,
    MATCH_NONE,
    MATCH_PARTIAL,
    MATCH_PERFECT,
    MISSING_ARTIFACT,
    WRITE_ERROR,
)
from batchverify.verifier import Verifier

from fakes import EXEC, FakeCompiler, FakeReader, metadata_trailer

ADDR = "0xabc" + "0" * 37
BYTECODE = EXEC + metadata_trailer(1)
FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def _verifier(store, compiler, reader):
    return Verifier(store, compiler, reader, clock=lambda: FIXED_NOW)


def test_end_to_end_perfect_match_saves_metadata(store, write_contract):
    contract = write_contract(1, ADDR, name="Token")
    compiler = FakeCompiler({"Token": BYTECODE})
    reader = FakeReader({(1, ADDR): "0x" + BYTECODE})

    result = asyncio.run(_verifier(store, compiler, reader).verify(contract, save=True))

    assert result.matched is True
    assert result.match_type == MATCH_PERFECT
    assert result.failure is None
    assert store.has_metadata(contract)
    data = json.loads(Path(store.metadata_filename(contract)).read_text())
    assert data["matchType"] == "perfect"
    assert data["verifiedAt"] == "2024-05-01T12:00:00+00:00"
    assert data["compilerUsed"] == "v0.8.17+commit.8df45f5f"
    assert data["contractName"] == "Token"
    assert data["runtimeCodeHash"].startswith("0x") and len(data["runtimeCodeHash"]) == 66
    assert data["metadataHash"] == "1220" + "01" * 32


def test_match_without_save_does_not_persist(store, write_contract):
    contract = write_contract(1, ADDR, name="Token")
    verifier = _verifier(store, FakeCompiler({"Token": BYTECODE}), FakeReader({(1, ADDR): BYTECODE}))
    result = asyncio.run(verifier.verify(contract))
    assert result.matched
    assert result.metadata is not None
    assert not store.has_metadata(contract)


def test_partial_match(store, write_contract):
    contract = write_contract(1, ADDR, name="Token")
    reader = FakeReader({(1, ADDR): EXEC + metadata_trailer(9)})
    result = asyncio.run(_verifier(store, FakeCompiler({"Token": BYTECODE}), reader).verify(contract))
    assert result.matched
    assert result.match_type == MATCH_PARTIAL
    assert result.metadata.match_type == MATCH_PARTIAL


def test_no_match_is_not_an_error(store, write_contract):
    contract = write_contract(1, ADDR, name="Token")
    reader = FakeReader({(1, ADDR): "60016002" + metadata_trailer(1)})
    result = asyncio.run(_verifier(store, FakeCompiler({"Token": BYTECODE}), reader).verify(contract, save=True))
    assert result.matched is False
    assert result.match_type == MATCH_NONE
    assert result.failure is None
    assert not result.is_error
    assert not store.has_metadata(contract)


def test_no_code_deployed(store, write_contract):
    contract = write_contract(1, ADDR, name="Token")
    result = asyncio.run(_verifier(store, FakeCompiler({"Token": BYTECODE}), FakeReader({})).verify(contract))
    assert result.matched is False
    assert result.failure is None


def test_missing_artifact(store, write_contract):
    contract = write_contract(1, ADDR, source=False)
    compiler = FakeCompiler({"Token": BYTECODE})
    result = asyncio.run(_verifier(store, compiler, FakeReader({})).verify(contract))
    assert result.failure.reason == MISSING_ARTIFACT
    assert compiler.calls == 0


def test_bad_artifact(store, write_contract):
    contract = write_contract(1, ADDR, config="not json at all")
    result = asyncio.run(_verifier(store, FakeCompiler({}), FakeReader({})).verify(contract))
    assert result.failure.reason == BAD_ARTIFACT
    assert result.is_error


def test_compile_error_skips_chain(store, write_contract):
    contract = write_contract(1, ADDR, name="Broken")
    reader = FakeReader({(1, ADDR): BYTECODE})
    result = asyncio.run(_verifier(store, FakeCompiler({}, failing=["Broken"]), reader).verify(contract))
    assert result.failure.reason == COMPILE_ERROR
    assert "ParserError" in result.failure.detail
    assert reader.calls == {}


def test_unexpected_compiler_exception_is_contained(store, write_contract):
    contract = write_contract(1, ADDR, name="Missing")
    # KeyError from the fake: no bytecode registered for "Missing"
    result = asyncio.run(_verifier(store, FakeCompiler({}), FakeReader({})).verify(contract))
    assert result.failure.reason == COMPILE_ERROR


def test_chain_unreachable(store, write_contract):
    contract = write_contract(1, ADDR, name="Token")
    reader = FakeReader({}, unreachable=[(1, ADDR)])
    result = asyncio.run(_verifier(store, FakeCompiler({"Token": BYTECODE}), reader).verify(contract))
    assert result.failure.reason == CHAIN_UNREACHABLE
    assert reader.calls[(1, ADDR)] == 1


def test_write_error_reports_failure(store, write_contract, monkeypatch):
    contract = write_contract(1, ADDR, name="Token")

    def broken_save(identity, metadata):
        raise WriteError("disk full")

    monkeypatch.setattr(store, "save_metadata", broken_save)
    verifier = _verifier(store, FakeCompiler({"Token": BYTECODE}), FakeReader({(1, ADDR): BYTECODE}))
    result = asyncio.run(verifier.verify(contract, save=True))
    assert result.matched is False
    assert result.failure.reason == WRITE_ERROR
    assert "disk full" in result.failure.detail


def test_malformed_code_on_both_sides_is_no_match(store, write_contract):
    contract = write_contract(1, ADDR, name="Token")
    verifier = _verifier(store, FakeCompiler({"Token": "abc"}), FakeReader({(1, ADDR): "0xabc"}))
    result = asyncio.run(verifier.verify(contract, save=True))
    assert result.matched is False
    assert result.match_type == MATCH_NONE
    assert not store.has_metadata(contract)
