"""Tests for the smart account client."""

import asyncio
import time
from unittest.mock import AsyncMock

import pytest
from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_defunct

from waas.aa.client import (
    CREATE_ACCOUNT_SELECTOR,
    DEPLOY_VERIFICATION_GAS,
    SmartAccountClient,
)
from waas.aa.userop import DUMMY_SIGNATURE, UserOperation
from waas.chain.rpc import EthRpc, JsonRpcClient, RpcError
from waas.config import ENTRYPOINT_ADDRESS_V06, SIMPLE_ACCOUNT_FACTORY_V06
from waas.custody.keys import CustodialKey

from conftest import OWNER_ADDRESS, OWNER_KEY, TOKEN_ADDRESS

SMART_ACCOUNT = "0x1111111111111111111111111111111111111111"


def abi_word(value) -> str:
    if isinstance(value, str):
        return "0x" + encode(["address"], [value]).hex()
    return "0x" + encode(["uint256"], [value]).hex()


@pytest.fixture
def chain() -> AsyncMock:
    rpc = AsyncMock(spec=EthRpc)
    rpc.gas_price.return_value = 1_000_000
    rpc.max_priority_fee.return_value = 100
    rpc.get_code.return_value = "0x"
    return rpc


@pytest.fixture
def bundler() -> AsyncMock:
    return AsyncMock(spec=JsonRpcClient)


@pytest.fixture
def paymaster() -> AsyncMock:
    client = AsyncMock(spec=JsonRpcClient)
    client.call.return_value = {
        "paymasterAndData": "0x" + "ab" * 20,
        "callGasLimit": "0x30d40",
        "verificationGasLimit": 200_000,
    }
    return client


@pytest.fixture
def client(chain, bundler, paymaster) -> SmartAccountClient:
    return SmartAccountClient(
        rpc=chain,
        bundler=bundler,
        paymaster=paymaster,
        entry_point=ENTRYPOINT_ADDRESS_V06,
        factory=SIMPLE_ACCOUNT_FACTORY_V06,
        chain_id=84532,
        poll_interval=0.01,
        timeout=0.05,
    )


class TestUserOperation:
    """Tests for user operation serialization and hashing."""

    def test_dummy_signature_is_65_bytes(self):
        """Test that the placeholder signature has the length of a real one."""
        assert len(bytes.fromhex(DUMMY_SIGNATURE[2:])) == 65

    def test_to_rpc_quantities_are_hex(self):
        """Test that numeric fields serialize as hex quantities."""
        op = UserOperation(sender=SMART_ACCOUNT, nonce=3, call_gas_limit=100_000)
        payload = op.to_rpc()

        assert payload["nonce"] == "0x3"
        assert payload["callGasLimit"] == "0x186a0"
        assert payload["paymasterAndData"] == "0x"

    def test_with_sponsorship(self):
        """Test merging paymaster data into a copy of the operation."""
        op = UserOperation(sender=SMART_ACCOUNT, nonce=0, call_gas_limit=1, pre_verification_gas=5)
        sponsored = op.with_sponsorship(
            {"paymasterAndData": "0xabcd", "callGasLimit": "0x10", "verificationGasLimit": 20}
        )

        assert sponsored.paymaster_and_data == "0xabcd"
        assert sponsored.call_gas_limit == 16
        assert sponsored.verification_gas_limit == 20
        assert sponsored.pre_verification_gas == 5
        assert op.paymaster_and_data == "0x"

    def test_hash_depends_on_chain_and_entry_point(self):
        """Test that the operation hash binds chain id and entry point."""
        op = UserOperation(sender=SMART_ACCOUNT, nonce=0)
        base = op.hash(ENTRYPOINT_ADDRESS_V06, 84532)

        assert len(base) == 32
        assert op.hash(ENTRYPOINT_ADDRESS_V06, 1) != base
        assert op.hash(SIMPLE_ACCOUNT_FACTORY_V06, 84532) != base

    def test_hash_ignores_signature(self):
        """Test that the signature is not part of the hashed payload."""
        op = UserOperation(sender=SMART_ACCOUNT, nonce=0)
        signed = UserOperation(sender=SMART_ACCOUNT, nonce=0, signature="0x1234")

        assert op.hash(ENTRYPOINT_ADDRESS_V06, 84532) == signed.hash(ENTRYPOINT_ADDRESS_V06, 84532)


class TestSmartAccountClient:
    """Tests for SmartAccountClient."""

    @pytest.mark.asyncio
    async def test_get_account_address(self, client, chain):
        """Test counterfactual address lookup through the factory."""
        chain.eth_call.return_value = abi_word(SMART_ACCOUNT)

        assert await client.get_account_address(OWNER_ADDRESS) == SMART_ACCOUNT
        to, data = chain.eth_call.call_args.args
        assert to == SIMPLE_ACCOUNT_FACTORY_V06
        assert OWNER_ADDRESS[2:].lower() in data

    @pytest.mark.asyncio
    async def test_get_account_address_empty_result(self, client, chain):
        """Test that an empty factory response is an error."""
        chain.eth_call.return_value = "0x"

        with pytest.raises(RpcError):
            await client.get_account_address(OWNER_ADDRESS)

    def test_init_code(self, client):
        """Test initCode is factory address followed by createAccount call data."""
        init_code = client.build_init_code(OWNER_ADDRESS)

        assert init_code.startswith(SIMPLE_ACCOUNT_FACTORY_V06.lower())
        assert CREATE_ACCOUNT_SELECTOR.hex() in init_code

    def test_encode_execute(self):
        """Test SimpleAccount execute() call data."""
        data = SmartAccountClient.encode_execute(TOKEN_ADDRESS, 0, "0xa9059cbb")

        assert data.startswith("0xb61d27f6")
        assert TOKEN_ADDRESS[2:].lower() in data

    @pytest.mark.asyncio
    async def test_build_user_operation_undeployed(self, client, chain):
        """Test an undeployed account gets initCode and deployment gas."""
        chain.eth_call.return_value = abi_word(7)

        op = await client.build_user_operation(
            OWNER_ADDRESS, SMART_ACCOUNT, TOKEN_ADDRESS, "0xa9059cbb"
        )

        assert op.nonce == 7
        assert op.init_code == client.build_init_code(OWNER_ADDRESS)
        assert op.verification_gas_limit == DEPLOY_VERIFICATION_GAS
        assert op.max_fee_per_gas == 1_000_100
        assert op.max_priority_fee_per_gas == 100

    @pytest.mark.asyncio
    async def test_build_user_operation_deployed(self, client, chain):
        """Test a deployed account gets no initCode."""
        chain.eth_call.return_value = abi_word(0)
        chain.get_code.return_value = "0x6080"

        op = await client.build_user_operation(
            OWNER_ADDRESS, SMART_ACCOUNT, TOKEN_ADDRESS, "0xa9059cbb"
        )

        assert op.init_code == "0x"

    @pytest.mark.asyncio
    async def test_sponsor_declined(self, client, paymaster):
        """Test that a paymaster response without paymasterAndData is an error."""
        paymaster.call.return_value = {}

        with pytest.raises(RpcError):
            await client.sponsor(UserOperation(sender=SMART_ACCOUNT, nonce=0))

    @pytest.mark.asyncio
    async def test_send_transaction_signs_user_op_hash(self, client, chain, bundler, paymaster):
        """Test the submitted operation is sponsored and signed by the owner key."""
        chain.eth_call.return_value = abi_word(0)
        bundler.call.return_value = "0xuserop"
        key = CustodialKey(OWNER_KEY)

        user_op_hash = await client.send_transaction(
            key, sender=SMART_ACCOUNT, dest=TOKEN_ADDRESS, data="0xa9059cbb"
        )

        assert user_op_hash == "0xuserop"
        method, (payload, entry_point) = bundler.call.call_args.args
        assert method == "eth_sendUserOperation"
        assert entry_point == ENTRYPOINT_ADDRESS_V06
        assert payload["paymasterAndData"] == "0x" + "ab" * 20
        assert payload["callGasLimit"] == "0x30d40"

        op = UserOperation(
            sender=payload["sender"],
            nonce=int(payload["nonce"], 16),
            init_code=payload["initCode"],
            call_data=payload["callData"],
            call_gas_limit=int(payload["callGasLimit"], 16),
            verification_gas_limit=int(payload["verificationGasLimit"], 16),
            pre_verification_gas=int(payload["preVerificationGas"], 16),
            max_fee_per_gas=int(payload["maxFeePerGas"], 16),
            max_priority_fee_per_gas=int(payload["maxPriorityFeePerGas"], 16),
            paymaster_and_data=payload["paymasterAndData"],
        )
        message = encode_defunct(primitive=op.hash(ENTRYPOINT_ADDRESS_V06, 84532))
        signer = Account.recover_message(message, signature=payload["signature"])
        assert signer == OWNER_ADDRESS

    @pytest.mark.asyncio
    async def test_send_transaction_no_hash(self, client, chain, bundler):
        """Test that a bundler returning no hash is an error."""
        chain.eth_call.return_value = abi_word(0)
        bundler.call.return_value = None

        with pytest.raises(RpcError):
            await client.send_transaction(
                CustodialKey(OWNER_KEY), sender=SMART_ACCOUNT, dest=TOKEN_ADDRESS, data="0x"
            )

    @pytest.mark.asyncio
    async def test_wait_for_transaction_hash(self, client, bundler):
        """Test polling through empty and failed receipt lookups."""
        bundler.call.side_effect = [
            None,
            RpcError("not found"),
            {"receipt": {"transactionHash": "0xtx"}},
        ]
        client.timeout = 5

        assert await client.wait_for_transaction_hash("0xuserop") == "0xtx"
        assert bundler.call.call_count == 3

    @pytest.mark.asyncio
    async def test_wait_for_transaction_hash_timeout(self, client, bundler):
        """Test None is returned when the operation never lands."""
        bundler.call.return_value = None

        assert await client.wait_for_transaction_hash("0xuserop") is None


    @pytest.mark.asyncio
    async def test_wait_for_transaction_hash_stalled_bundler(self, client, bundler):
        """A receipt call that never returns is cut off at the timeout."""

        async def stall(*args):
            await asyncio.sleep(10)

        bundler.call.side_effect = stall

        started = time.monotonic()
        assert await client.wait_for_transaction_hash("0xuserop") is None
        assert time.monotonic() - started < 1
