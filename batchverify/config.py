"""Configuration constants for the verifier."""
import os
from typing import Dict, Optional

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# Contract store layout
CONTRACTS_DIR: str = os.getenv("CONTRACTS_DIR", "contracts")
CONFIG_BASENAME: str = os.getenv("CONFIG_BASENAME", "configs.json")
INPUT_BASENAME: str = os.getenv("INPUT_BASENAME", "input.json")
METADATA_BASENAME: str = os.getenv("METADATA_BASENAME", "metadata.json")

# Batch settings
CONCURRENCY: int = int(os.getenv("CONCURRENCY", "5"))
FAIL_FAST: bool = _flag("FAIL_FAST", "0")
JUMP: int = int(os.getenv("JUMP", "0"))
SKIP: bool = _flag("SKIP", "0")
SAVE: bool = _flag("SAVE", "1")
RETRIES: int = int(os.getenv("RETRIES", "0"))
RETRY_BACKOFF_SEC: float = float(os.getenv("RETRY_BACKOFF_SEC", "1.0"))
CHECKPOINT_FILE: str = os.getenv("CHECKPOINT_FILE", "")  # empty = disabled

# Compiler
COMPILER_BACKEND: str = os.getenv("COMPILER_BACKEND", "solc").lower()  # solc | remote
COMPILER_URL: str = os.getenv("COMPILER_URL", "")
COMPILER_TIMEOUT_SEC: int = int(os.getenv("COMPILER_TIMEOUT_SEC", "120"))

# Chain RPC
RPC_TIMEOUT_SEC: int = int(os.getenv("RPC_TIMEOUT_SEC", "30"))
rpc_urls_raw = os.getenv("RPC_URLS", "")

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


def parse_rpc_urls(raw: str) -> Dict[int, str]:
    """
    Parse a "chainId=url,chainId=url" list.

    Args:
        raw: Raw comma separated list

    Returns:
        Dictionary mapping chain id to RPC url
    """
    urls: Dict[int, str] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item or "=" not in item:
            continue
        chain, url = item.split("=", 1)
        chain = chain.strip()
        url = url.strip()
        if not url:
            continue
        try:
            chain_id = int(chain, 16) if chain.startswith("0x") else int(chain)
        except ValueError:
            continue
        urls[chain_id] = url
    return urls


RPC_URLS: Dict[int, str] = parse_rpc_urls(rpc_urls_raw)


def rpc_url_for(chain_id: int) -> Optional[str]:
    """
    Resolve the RPC endpoint for a chain.

    RPC_URL_<chainId> takes precedence over the RPC_URLS list.
    """
    return os.getenv(f"RPC_URL_{chain_id}") or RPC_URLS.get(chain_id)
