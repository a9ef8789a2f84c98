"""Minimal async JSON-RPC client for EVM nodes and ERC-4337 bundlers.

All calls go through httpx with an explicit timeout. Errors are raised, never
swallowed: the execution engine decides how to report them.
"""

import itertools
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class RpcError(Exception):
    """JSON-RPC transport or protocol error."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        self.code = code
        self.data = data
        super().__init__(message)


def to_hex(value: int) -> str:
    """Encode an int as a JSON-RPC quantity."""
    return hex(value)


def from_hex(value: Optional[str]) -> int:
    """Decode a JSON-RPC quantity (None -> 0)."""
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16)


class JsonRpcClient:
    """JSON-RPC 2.0 client over HTTP."""

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self._ids = itertools.count(1)

    async def call(self, method: str, params: Optional[list] = None) -> Any:
        """Invoke a method and return its result.

        Raises:
            RpcError: HTTP failure, malformed response or JSON-RPC error object
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": next(self._ids),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"RPC {method} transport error: {e}")
            raise RpcError(f"{method} failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"RPC {method} HTTP {response.status_code}")
            raise RpcError(f"{method} failed: HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise RpcError(f"{method} returned invalid JSON") from e

        if "error" in data and data["error"]:
            error = data["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            logger.error(f"RPC {method} error: {message}")
            raise RpcError(message, code=code, data=error)

        return data.get("result")


class EthRpc(JsonRpcClient):
    """Typed wrappers for the eth_* namespace."""

    async def block_number(self) -> int:
        return from_hex(await self.call("eth_blockNumber"))

    async def chain_id(self) -> int:
        return from_hex(await self.call("eth_chainId"))

    async def get_balance(self, address: str, block: str = "latest") -> int:
        return from_hex(await self.call("eth_getBalance", [address, block]))

    async def get_code(self, address: str, block: str = "latest") -> str:
        return await self.call("eth_getCode", [address, block]) or "0x"

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        return await self.call("eth_call", [{"to": to, "data": data}, block]) or "0x"

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return from_hex(await self.call("eth_getTransactionCount", [address, block]))

    async def gas_price(self) -> int:
        return from_hex(await self.call("eth_gasPrice"))

    async def max_priority_fee(self) -> int:
        return from_hex(await self.call("eth_maxPriorityFeePerGas"))

    async def estimate_gas(self, tx: dict) -> int:
        return from_hex(await self.call("eth_estimateGas", [tx]))

    async def send_raw_transaction(self, raw_tx: str) -> str:
        if not raw_tx.startswith("0x"):
            raw_tx = f"0x{raw_tx}"
        return await self.call("eth_sendRawTransaction", [raw_tx])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict]:
        return await self.call("eth_getTransactionReceipt", [tx_hash])

    async def get_logs(self, log_filter: dict) -> list[dict]:
        return await self.call("eth_getLogs", [log_filter]) or []
