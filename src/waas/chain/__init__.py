"""EVM chain access over JSON-RPC."""

from waas.chain.rpc import EthRpc, JsonRpcClient, RpcError

__all__ = ["EthRpc", "JsonRpcClient", "RpcError"]
