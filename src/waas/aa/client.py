"""Smart account client for gas-sponsored user operations.

Flow for one send:
1. Resolve the counterfactual account address from the factory
2. Wrap the call in SimpleAccount.execute(dest, value, data)
3. Build the user operation (nonce from EntryPoint, initCode if undeployed)
4. Ask the paymaster to sponsor it (pm_sponsorUserOperation)
5. Sign the userOpHash with the owner key and submit to the bundler
6. Poll the bundler for the inclusion receipt to get the transaction hash
"""

import asyncio
import logging
from typing import Optional

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from waas.aa.userop import UserOperation
from waas.chain.rpc import EthRpc, JsonRpcClient, RpcError, from_hex
from waas.custody.keys import CustodialKey

logger = logging.getLogger(__name__)

GET_ADDRESS_SELECTOR = function_signature_to_4byte_selector("getAddress(address,uint256)")
CREATE_ACCOUNT_SELECTOR = function_signature_to_4byte_selector("createAccount(address,uint256)")
GET_NONCE_SELECTOR = function_signature_to_4byte_selector("getNonce(address,uint192)")
EXECUTE_SELECTOR = function_signature_to_4byte_selector("execute(address,uint256,bytes)")

# Starting gas limits; the paymaster response overrides them when it returns its own
DEFAULT_CALL_GAS = 100_000
DEFAULT_VERIFICATION_GAS = 150_000
DEPLOY_VERIFICATION_GAS = 500_000
DEFAULT_PRE_VERIFICATION_GAS = 60_000


def _hex(data: bytes) -> str:
    return "0x" + data.hex()


class SmartAccountClient:
    """Bundler + paymaster client for SimpleAccount-style smart accounts."""

    def __init__(
        self,
        rpc: EthRpc,
        bundler: JsonRpcClient,
        paymaster: JsonRpcClient,
        entry_point: str,
        factory: str,
        chain_id: int,
        salt: int = 0,
        poll_interval: float = 2.0,
        timeout: float = 60.0,
    ):
        self.rpc = rpc
        self.bundler = bundler
        self.paymaster = paymaster
        self.entry_point = to_checksum_address(entry_point)
        self.factory = to_checksum_address(factory)
        self.chain_id = chain_id
        self.salt = salt
        self.poll_interval = poll_interval
        self.timeout = timeout

    async def get_account_address(self, owner: str) -> str:
        """Counterfactual smart account address for an owner."""
        args = encode(["address", "uint256"], [to_checksum_address(owner), self.salt])
        data = GET_ADDRESS_SELECTOR + args
        result = await self.rpc.eth_call(self.factory, _hex(data))
        raw = bytes.fromhex(result[2:])
        if len(raw) < 32:
            raise RpcError("Factory returned no account address")
        return to_checksum_address(decode(["address"], raw)[0])

    def build_init_code(self, owner: str) -> str:
        """Factory address + createAccount(owner, salt) call data."""
        args = encode(["address", "uint256"], [to_checksum_address(owner), self.salt])
        call = CREATE_ACCOUNT_SELECTOR + args
        return _hex(bytes.fromhex(self.factory[2:]) + call)

    @staticmethod
    def encode_execute(dest: str, value: int, data: str) -> str:
        """SimpleAccount.execute(dest, value, data) call data."""
        payload = bytes.fromhex(data[2:] if data.startswith("0x") else data)
        args = encode(["address", "uint256", "bytes"], [to_checksum_address(dest), value, payload])
        return _hex(EXECUTE_SELECTOR + args)

    async def get_nonce(self, sender: str, key: int = 0) -> int:
        """EntryPoint nonce for a sender."""
        args = encode(["address", "uint192"], [to_checksum_address(sender), key])
        data = GET_NONCE_SELECTOR + args
        result = await self.rpc.eth_call(self.entry_point, _hex(data))
        return from_hex(result) if result and result != "0x" else 0

    async def is_deployed(self, address: str) -> bool:
        code = await self.rpc.get_code(address)
        return code not in ("0x", "0x0", "")

    async def build_user_operation(
        self, owner: str, sender: str, dest: str, data: str, value: int = 0
    ) -> UserOperation:
        """Unsigned, unsponsored user operation for a single call."""
        deployed, nonce, gas_price, priority_fee = await asyncio.gather(
            self.is_deployed(sender),
            self.get_nonce(sender),
            self.rpc.gas_price(),
            self.rpc.max_priority_fee(),
        )
        return UserOperation(
            sender=sender,
            nonce=nonce,
            init_code="0x" if deployed else self.build_init_code(owner),
            call_data=self.encode_execute(dest, value, data),
            call_gas_limit=DEFAULT_CALL_GAS,
            verification_gas_limit=(
                DEFAULT_VERIFICATION_GAS if deployed else DEPLOY_VERIFICATION_GAS
            ),
            pre_verification_gas=DEFAULT_PRE_VERIFICATION_GAS,
            max_fee_per_gas=gas_price + priority_fee,
            max_priority_fee_per_gas=priority_fee,
        )

    async def sponsor(self, op: UserOperation) -> UserOperation:
        """Have the paymaster cover gas for an operation."""
        result = await self.paymaster.call(
            "pm_sponsorUserOperation", [op.to_rpc(), self.entry_point]
        )
        if not isinstance(result, dict) or not result.get("paymasterAndData"):
            raise RpcError("Paymaster declined to sponsor user operation")
        return op.with_sponsorship(result)

    async def send_transaction(
        self, key: CustodialKey, sender: str, dest: str, data: str, value: int = 0
    ) -> str:
        """Build, sponsor, sign and submit a user operation.

        Returns:
            userOpHash reported by the bundler
        """
        op = await self.build_user_operation(key.address, sender, dest, data, value)
        op = await self.sponsor(op)
        op.signature = _hex(key.sign_message_hash(op.hash(self.entry_point, self.chain_id)))

        user_op_hash = await self.bundler.call(
            "eth_sendUserOperation", [op.to_rpc(), self.entry_point]
        )
        if not user_op_hash:
            raise RpcError("Bundler returned no user operation hash")
        logger.info(f"Submitted user operation {user_op_hash} from {sender}")
        return user_op_hash

    async def wait_for_transaction_hash(self, user_op_hash: str) -> Optional[str]:
        """Poll the bundler until the operation lands on chain.

        Returns:
            Transaction hash, or None if not observed within the timeout
        """
        try:
            return await asyncio.wait_for(self._poll_receipt(user_op_hash), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"User operation {user_op_hash} not mined in {self.timeout}s")
            return None

    async def _poll_receipt(self, user_op_hash: str) -> str:
        while True:
            try:
                receipt = await self.bundler.call("eth_getUserOperationReceipt", [user_op_hash])
            except RpcError as e:
                logger.warning(f"Receipt lookup for {user_op_hash} failed: {e}")
                receipt = None

            if receipt:
                tx_hash = (receipt.get("receipt") or {}).get("transactionHash")
                if tx_hash:
                    return tx_hash

            await asyncio.sleep(self.poll_interval)
