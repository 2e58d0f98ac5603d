"""Tests for path to identity resolution."""
import pytest

from batchverify.identity import match
from batchverify.types import ContractIdentity

ADDR = "0xdeadbeef" + "00" * 16


class TestMatch:

    def test_full_path_with_subpath(self):
        m = match(f"root/123/{ADDR}/sub/path", "root")
        assert m is not None
        assert m.chain_id == 123
        assert m.address == ADDR
        assert m.subpath == "/sub/path"
        assert m.dir == f"root/123/{ADDR}"
        assert m.original == f"root/123/{ADDR}/sub/path"

    def test_address_directory_has_empty_subpath(self):
        m = match(f"contracts/1/{ADDR}")
        assert m is not None
        assert m.subpath == ""
        assert m.identity == ContractIdentity(1, ADDR)

    def test_trailing_slash(self):
        m = match(f"contracts/1/{ADDR}/")
        assert m is not None
        assert m.subpath == "/"

    @pytest.mark.parametrize("segment,expected", [
        ("0x89", 0x89),
        ("0xA4B1", 0xA4B1),
        ("137", 137),
        ("0", 0),
    ])
    def test_chain_id_hex_or_decimal(self, segment, expected):
        m = match(f"contracts/{segment}/{ADDR}")
        assert m is not None
        assert m.chain_id == expected

    @pytest.mark.parametrize("path", [
        "",
        "contracts",
        "contracts/1",
        f"contracts/1/{ADDR.upper().replace('0X', '0x')}",
        f"contracts/1/{ADDR[:-1]}",
        f"contracts/1/{ADDR}0",
        f"contracts/abc/{ADDR}",
        f"other/1/{ADDR}",
        f"x/contracts/1/{ADDR}",
        f"contracts/1/{ADDR[2:]}",
        f"contractsX/1/{ADDR}",
    ])
    def test_rejects_other_shapes(self, path):
        assert match(path) is None

    def test_non_string_input(self):
        assert match(None) is None
        assert match(123) is None

    def test_root_with_directories_and_regex_chars(self):
        root = "/tmp/a.b+c/contracts"
        m = match(f"{root}/5/{ADDR}/input.json", root)
        assert m is not None
        assert m.chain_id == 5
        assert m.subpath == "/input.json"
        assert match(f"/tmp/aXb+c/contracts/5/{ADDR}", root) is None

    def test_pure(self):
        path = f"contracts/10/{ADDR}/a"
        assert match(path) == match(path)


class TestContractIdentity:

    def test_address_normalized_to_lowercase(self):
        a = ContractIdentity(1, "0xDEADBEEF" + "00" * 16)
        b = ContractIdentity(1, ADDR)
        assert a == b
        assert hash(a) == hash(b)
        assert a.address == ADDR

    @pytest.mark.parametrize("chain_id,address", [
        (-1, ADDR),
        (1, "0x1234"),
        (1, "0x" + "zz" * 20),
    ])
    def test_invalid(self, chain_id, address):
        with pytest.raises(ValueError):
            ContractIdentity(chain_id, address)
