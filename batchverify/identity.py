"""Contract identity resolution from store paths."""
import os
import re
from functools import lru_cache
from typing import Optional, Pattern

from batchverify.types import ContractFileMatch

DEFAULT_DIRNAME = "contracts"


@lru_cache(maxsize=32)
def _pattern(dirname: str) -> Pattern[str]:
    root = re.escape(dirname.replace(os.sep, "/").rstrip("/"))
    return re.compile(
        rf"^({root}/([0-9]+|0x[0-9a-fA-F]+)/(0x[0-9a-f]{{40}}))(/.*)?\Z",
        re.DOTALL,
    )


def match(path: str, dirname: str = DEFAULT_DIRNAME) -> Optional[ContractFileMatch]:
    """
    Extract the contract identity from a file or directory path.

    The accepted shape is <dirname>/<chainId>/<address>[/<anything>] where
    chainId is decimal or 0x-prefixed hex and address is 0x + 40 lowercase
    hex digits. Matching is anchored at the start of the path.

    Args:
        path: File or directory path inside the store
        dirname: Root directory of the store

    Returns:
        ContractFileMatch or None if the path does not follow the layout
    """
    if not isinstance(path, str) or not isinstance(dirname, str) or not dirname:
        return None

    normalized = path.replace(os.sep, "/") if os.sep != "/" else path
    m = _pattern(dirname).match(normalized)
    if not m:
        return None

    rdir, rchain, raddress, rsubpath = m.groups()
    if rchain.startswith("0x"):
        chain_id = int(rchain, 16)
    else:
        chain_id = int(rchain, 10)

    return ContractFileMatch(
        original=path,
        dir=rdir,
        chain_id=chain_id,
        address=raddress,
        subpath=rsubpath or "",
    )
