"""
Block-explorer ABI lookup.

Diagnostic tooling only; the synchronizer never calls it.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any

import aiohttp
from eth_utils import is_address, to_checksum_address

from rollsync.exceptions import ProtocolError, TransportError
from rollsync.utils.logging import get_logger

logger = get_logger("rollsync.explorer")

DEFAULT_BASE_URL = "https://api.etherscan.io/api"


class ExplorerClient:
    """
    Etherscan-compatible contract metadata client.

    Example:
        ```python
        async with ExplorerClient(api_key="...") as explorer:
            abi = await explorer.get_abi("0x...")
        ```
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL, api_key: str | None = None, timeout: float = 30):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> ExplorerClient:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    async def get_abi(self, address: str) -> list[dict[str, Any]]:
        """
        Fetch the verified ABI of the contract at ``address``.

        Raises:
            ValueError: ``address`` is not an Ethereum address
            TransportError: the explorer could not be reached
            ProtocolError: the explorer answered without a usable ABI
        """
        if not is_address(address):
            raise ValueError(f"Not an Ethereum address: {address!r}")
        address = to_checksum_address(address)

        params = {"module": "contract", "action": "getsourcecode", "address": address}
        if self.api_key:
            params["apikey"] = self.api_key

        await self.__aenter__()
        assert self.session is not None
        start_time = time.monotonic()
        try:
            async with self.session.get(self.base_url, params=params) as response:
                status = response.status
                text = await response.text()
        except asyncio.TimeoutError as e:
            raise TransportError(f"Timed out querying {self.base_url}", details={"url": self.base_url}) from e
        except aiohttp.ClientError as e:
            raise TransportError(f"Error querying {self.base_url}: {e}", details={"url": self.base_url}) from e
        logger.debug(f"GET {self.base_url} {status} {time.monotonic() - start_time:.2f}s")

        if status > 299:
            raise ProtocolError(f"Explorer returned HTTP {status}: {text[:200]}", details={"status": status})
        try:
            body = json.loads(text)
        except ValueError as e:
            raise ProtocolError(f"Explorer response is not JSON: {text[:200]}") from e

        if not isinstance(body, dict):
            raise ProtocolError(f"Unexpected explorer response: {text[:200]}")
        result = body.get("result")
        if str(body.get("status")) != "1" or not isinstance(result, list) or not result:
            raise ProtocolError(
                f"Explorer has no source for {address}: {body.get('message') or result}", details={"address": address}
            )

        abi_json = result[0].get("ABI") if isinstance(result[0], dict) else None
        try:
            abi = json.loads(abi_json or "")
        except ValueError as e:
            raise ProtocolError(f"Contract {address} has no verified ABI: {abi_json!r}") from e
        if not isinstance(abi, list):
            raise ProtocolError(f"Unexpected ABI shape for {address}")
        return abi
