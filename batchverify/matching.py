"""Two-tier bytecode matching (perfect / partial / none).

Deployed Solidity runtime code ends with a CBOR encoded metadata map followed
by its length as a big-endian uint16:

    <executable code> <cbor map> <len(cbor map): 2 bytes>

See https://docs.soliditylang.org/en/latest/metadata.html#encoding-of-the-metadata-hash-in-the-bytecode

Immutable variables are written into the runtime code by the constructor, so
the compiled template holds zeros where the deployed code holds values. The
compiler reports those byte ranges in evm.deployedBytecode.immutableReferences.
"""
import io
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

import cbor2

from batchverify.types import MATCH_NONE, MATCH_PARTIAL, MATCH_PERFECT

ImmutableReferences = Mapping[str, List[Mapping[str, int]]]

_HASH_KEYS = ("ipfs", "bzzr1", "bzzr0")

_HEX_RE = re.compile(r"\A(?:[0-9a-f]{2})*\Z")


def normalize_hex(code: Optional[str]) -> str:
    """Strip an optional 0x prefix and lowercase."""
    code = (code or "").strip()
    if code[:2].lower() == "0x":
        code = code[2:]
    return code.lower()


def is_hex(code: str) -> bool:
    """True for whole bytes of lowercase hex (normalized input)."""
    return bool(_HEX_RE.match(code))


def _decode_cbor_map(segment_hex: str) -> Optional[Dict[Any, Any]]:
    try:
        raw = bytes.fromhex(segment_hex)
    except ValueError:
        return None
    fp = io.BytesIO(raw)
    try:
        decoded = cbor2.CBORDecoder(fp).decode()
    except (cbor2.CBORDecodeError, ValueError, EOFError):
        return None
    # The map must span the whole segment.
    if fp.tell() != len(raw) or not isinstance(decoded, dict):
        return None
    return decoded


def split_metadata(code: str) -> Tuple[str, Optional[str]]:
    """
    Split runtime code into its executable part and trailing metadata.

    Args:
        code: Normalized hex (no 0x)

    Returns:
        Tuple of (executable hex, metadata hex including the length field),
        the metadata being None when no well-formed trailer is present
    """
    if len(code) < 4:
        return code, None
    try:
        length = int(code[-4:], 16)
    except ValueError:
        return code, None
    total = (length + 2) * 2
    if length == 0 or total > len(code):
        return code, None
    if _decode_cbor_map(code[-total:-4]) is None:
        return code, None
    return code[:-total], code[-total:]


def decode_metadata(code: str) -> Optional[Dict[Any, Any]]:
    """Decoded CBOR metadata map of runtime code, if present."""
    _, trailer = split_metadata(normalize_hex(code))
    if trailer is None:
        return None
    return _decode_cbor_map(trailer[:-4])


def metadata_hash(code: str) -> Optional[str]:
    """
    Source metadata hash (IPFS or Swarm) embedded in runtime code.

    Returns:
        Hex string of the hash or None
    """
    meta = decode_metadata(code)
    if not meta:
        return None
    for key in _HASH_KEYS:
        value = meta.get(key)
        if isinstance(value, bytes) and value:
            return value.hex()
    return None


def mask_immutables(code: str, immutable_references: Optional[ImmutableReferences]) -> str:
    """
    Zero out every immutable byte range.

    Ranges falling outside the code are clipped.
    """
    if not immutable_references or not code:
        return code
    chars = list(code)
    for refs in immutable_references.values():
        for ref in refs:
            start = int(ref.get("start", 0)) * 2
            end = min(start + int(ref.get("length", 0)) * 2, len(chars))
            for i in range(max(start, 0), end):
                chars[i] = "0"
    return "".join(chars)


def compare(
    compiled: str,
    onchain: str,
    immutable_references: Optional[ImmutableReferences] = None,
) -> str:
    """
    Compare compiled runtime code with deployed code.

    Args:
        compiled: Compiled runtime bytecode (hex)
        onchain: Deployed bytecode (hex)
        immutable_references: Immutable ranges reported by the compiler

    Returns:
        "perfect" when identical including metadata, "partial" when identical
        after masking immutables and stripping metadata, else "none"
    """
    a = normalize_hex(compiled)
    b = normalize_hex(onchain)
    if not a or not b or not is_hex(a) or not is_hex(b):
        return MATCH_NONE
    if a == b:
        return MATCH_PERFECT

    a_exec, _ = split_metadata(mask_immutables(a, immutable_references))
    b_exec, _ = split_metadata(mask_immutables(b, immutable_references))
    if a_exec and a_exec == b_exec:
        return MATCH_PARTIAL
    return MATCH_NONE
