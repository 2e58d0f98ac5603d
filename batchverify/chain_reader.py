"""Read deployed bytecode from chain RPC endpoints."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import Web3Exception

from batchverify import config
from batchverify.errors import ChainError

logger = logging.getLogger(__name__)


class ChainReader(ABC):
    """
    Returns the runtime code deployed at an address.

    Implementations own their timeouts: a hanging call keeps one batch
    slot busy until it returns.
    """

    @abstractmethod
    async def get_code(self, chain_id: int, address: str) -> str:
        """Runtime code at address as 0x-prefixed hex."""

    async def close(self) -> None:
        return None


class Web3ChainReader(ChainReader):
    """AsyncWeb3 over one HTTP provider per chain."""

    def __init__(self, rpc_urls: Optional[Dict[int, str]] = None, timeout: Optional[int] = None):
        self.rpc_urls = dict(rpc_urls) if rpc_urls is not None else None
        self.timeout = timeout or config.RPC_TIMEOUT_SEC
        self._clients: Dict[int, AsyncWeb3] = {}

    def _url(self, chain_id: int) -> Optional[str]:
        if self.rpc_urls is not None:
            return self.rpc_urls.get(chain_id)
        return config.rpc_url_for(chain_id)

    def _client(self, chain_id: int) -> AsyncWeb3:
        w3 = self._clients.get(chain_id)
        if w3 is None:
            url = self._url(chain_id)
            if not url:
                raise ChainError(f"no RPC url configured for chain {chain_id}")
            provider = AsyncHTTPProvider(url, request_kwargs={"timeout": aiohttp.ClientTimeout(total=self.timeout)})
            w3 = AsyncWeb3(provider)
            self._clients[chain_id] = w3
        return w3

    async def get_code(self, chain_id: int, address: str) -> str:
        """
        Fetch the code at address on the latest block.

        Args:
            chain_id: Chain to query
            address: Contract address

        Returns:
            0x-prefixed hex, "0x" when nothing is deployed

        Raises:
            ChainError: On transport or RPC failure
        """
        w3 = self._client(chain_id)
        try:
            code = await w3.eth.get_code(Web3.to_checksum_address(address), "latest")
        except (Web3Exception, aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            raise ChainError(f"eth_getCode failed for {address} on chain {chain_id}: {e}") from e
        return "0x" + bytes(code).hex()

    async def close(self) -> None:
        for chain_id, w3 in list(self._clients.items()):
            try:
                await w3.provider.disconnect()
            except (aiohttp.ClientError, OSError) as e:
                logger.debug(f"[CHAIN] disconnect failed for chain {chain_id}: {e}")
        self._clients.clear()
