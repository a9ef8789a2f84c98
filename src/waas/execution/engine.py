"""Transaction execution engine.

Single entry point, execute(), dispatching on the transfer variant. Neither
path retries: once a transaction is signed and broadcast, resubmitting after
an unknown outcome risks a double spend, so TimedOut and SubmissionIncomplete
are reported for the caller to re-query.
"""

import asyncio
import logging
from typing import Optional

from eth_utils import is_address, to_checksum_address

from waas.aa.client import SmartAccountClient
from waas.chain import erc20
from waas.chain.rpc import EthRpc, JsonRpcClient, RpcError, from_hex
from waas.config import Settings
from waas.custody.keys import CustodialKey
from waas.errors import BadRequest, NotConfigured
from waas.execution.base import (
    Balance,
    DirectTransfer,
    SponsoredTransfer,
    Transfer,
    TransferEvent,
    TransferResult,
    TransferStatus,
)
from waas.store.base import AccountRecord, RecordStore

logger = logging.getLogger(__name__)

NATIVE_SELECTORS = ("ETH", "NATIVE")


class TransactionEngine:
    """Builds, signs and submits transfers for custodial accounts."""

    def __init__(
        self,
        rpc: EthRpc,
        store: RecordStore,
        token_address: str,
        chain_id: int,
        token_symbol: str = "USDC",
        aa_client: Optional[SmartAccountClient] = None,
        confirmation_timeout: float = 60.0,
        poll_interval: float = 2.0,
        history_lookback_blocks: int = 9500,
    ):
        self.rpc = rpc
        self.store = store
        self.token_address = to_checksum_address(token_address)
        self.token_symbol = token_symbol.upper()
        self.chain_id = chain_id
        self.aa_client = aa_client
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval
        self.history_lookback_blocks = history_lookback_blocks

    @classmethod
    def from_settings(cls, settings: Settings, store: RecordStore) -> "TransactionEngine":
        """Build an engine; the AA client is only created when fully configured."""
        rpc = EthRpc(settings.rpc_url, timeout=settings.rpc_timeout)

        aa_client = None
        if settings.aa_configured:
            aa_client = SmartAccountClient(
                rpc=rpc,
                bundler=JsonRpcClient(settings.biconomy_bundler_url, timeout=settings.rpc_timeout),
                paymaster=JsonRpcClient(
                    settings.biconomy_paymaster_url, timeout=settings.rpc_timeout
                ),
                entry_point=settings.entry_point_address,
                factory=settings.smart_account_factory_address,
                chain_id=settings.chain_id,
                salt=settings.smart_account_salt,
                poll_interval=settings.poll_interval,
                timeout=settings.userop_timeout,
            )

        return cls(
            rpc=rpc,
            store=store,
            token_address=settings.usdc_contract_address,
            chain_id=settings.chain_id,
            token_symbol=settings.token_symbol,
            aa_client=aa_client,
            confirmation_timeout=settings.confirmation_timeout,
            poll_interval=settings.poll_interval,
            history_lookback_blocks=settings.history_lookback_blocks,
        )

    @property
    def aa_configured(self) -> bool:
        return self.aa_client is not None

    async def execute(
        self, record: AccountRecord, key: CustodialKey, transfer: Transfer
    ) -> TransferResult:
        """Run a transfer to a terminal state.

        Raises:
            BadRequest: Invalid destination, amount or token selector
            NotConfigured: Sponsored transfer without bundler/paymaster
        """
        _validate(transfer.to, transfer.amount)
        if isinstance(transfer, DirectTransfer):
            return await self._execute_direct(key, transfer)
        if isinstance(transfer, SponsoredTransfer):
            return await self._execute_sponsored(record, key, transfer)
        raise TypeError(f"Unsupported transfer type: {type(transfer).__name__}")

    # Direct path

    def _build_call(self, transfer: DirectTransfer) -> dict:
        selector = (transfer.token or self.token_symbol).upper()
        if selector == self.token_symbol:
            return {
                "to": self.token_address,
                "value": 0,
                "data": erc20.encode_transfer(transfer.to, transfer.amount),
            }
        if selector in NATIVE_SELECTORS:
            return {"to": to_checksum_address(transfer.to), "value": transfer.amount, "data": "0x"}
        raise BadRequest(f"Unsupported token: {transfer.token}")

    async def _execute_direct(self, key: CustodialKey, transfer: DirectTransfer) -> TransferResult:
        call = self._build_call(transfer)

        try:
            nonce, gas_price, gas = await asyncio.gather(
                self.rpc.get_transaction_count(key.address, "pending"),
                self.rpc.gas_price(),
                self.rpc.estimate_gas(
                    {
                        "from": key.address,
                        "to": call["to"],
                        "value": hex(call["value"]),
                        "data": call["data"],
                    }
                ),
            )
            tx = {
                "nonce": nonce,
                "gasPrice": gas_price,
                "gas": gas,
                "to": call["to"],
                "value": call["value"],
                "data": call["data"],
                "chainId": self.chain_id,
            }
            signed = key.sign_transaction(tx)
            tx_hash = await self.rpc.send_raw_transaction(signed.raw_transaction.hex())
        except (RpcError, ValueError, TypeError) as e:
            logger.error(f"Direct transfer from {key.address} failed: {e}")
            return TransferResult(status=TransferStatus.FAILED, error=str(e))

        logger.info(f"Broadcast {tx_hash} from {key.address} to {transfer.to}")
        return await self._wait_for_confirmation(tx_hash)

    async def _wait_for_confirmation(self, tx_hash: str) -> TransferResult:
        """Wait for one confirmation, bounded by confirmation_timeout."""
        try:
            return await asyncio.wait_for(
                self._poll_receipt(tx_hash), timeout=self.confirmation_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Transaction {tx_hash} not confirmed in {self.confirmation_timeout}s")
            return TransferResult(status=TransferStatus.TIMED_OUT, tx_hash=tx_hash)

    async def _poll_receipt(self, tx_hash: str) -> TransferResult:
        while True:
            try:
                receipt = await self.rpc.get_transaction_receipt(tx_hash)
            except RpcError as e:
                # Already broadcast; keep waiting rather than report a failure
                logger.warning(f"Receipt lookup for {tx_hash} failed: {e}")
                receipt = None

            if receipt and receipt.get("blockNumber"):
                if from_hex(receipt.get("status", "0x1")) == 0:
                    logger.error(f"Transaction {tx_hash} reverted")
                    return TransferResult(
                        status=TransferStatus.FAILED,
                        tx_hash=tx_hash,
                        error="Transaction reverted",
                    )
                logger.info(f"Transaction {tx_hash} confirmed")
                return TransferResult(status=TransferStatus.CONFIRMED, tx_hash=tx_hash)

            await asyncio.sleep(self.poll_interval)

    # Sponsored path

    async def resolve_smart_account(self, record: AccountRecord, owner: str) -> str:
        """Return the cached smart account address, deriving it once if absent.

        Raises:
            NotConfigured: No cached address and no AA client
        """
        if record.smart_account_address:
            return record.smart_account_address
        if self.aa_client is None:
            raise NotConfigured()

        derived = await self.aa_client.get_account_address(owner)
        if not await self.store.set_if_absent(record.account_id, "smart_account_address", derived):
            current = await self.store.get(record.account_id)
            if current and current.smart_account_address:
                derived = current.smart_account_address
        else:
            logger.info(f"Cached smart account {derived} for {record.account_id}")

        record.smart_account_address = derived
        return derived

    async def _execute_sponsored(
        self, record: AccountRecord, key: CustodialKey, transfer: SponsoredTransfer
    ) -> TransferResult:
        if self.aa_client is None:
            raise NotConfigured()

        try:
            sender = await self.resolve_smart_account(record, key.address)
        except RpcError as e:
            logger.error(f"Smart account resolution for {record.account_id} failed: {e}")
            return TransferResult(status=TransferStatus.FAILED, error=str(e))
        result = TransferResult(
            status=TransferStatus.ACCOUNT_RESOLVED, smart_account_address=sender
        )

        call_data = erc20.encode_transfer(transfer.to, transfer.amount)
        result.status = TransferStatus.ENCODED

        try:
            user_op_hash = await self.aa_client.send_transaction(
                key, sender=sender, dest=self.token_address, data=call_data
            )
        except (RpcError, ValueError, TypeError) as e:
            logger.error(f"Sponsored transfer from {sender} failed: {e}")
            result.status = TransferStatus.FAILED
            result.error = str(e)
            return result
        result.status = TransferStatus.SUBMITTED
        result.user_op_hash = user_op_hash

        tx_hash = await self.aa_client.wait_for_transaction_hash(user_op_hash)
        if not tx_hash:
            logger.error(f"No transaction hash for user operation {user_op_hash}")
            result.status = TransferStatus.SUBMISSION_INCOMPLETE
            return result

        logger.info(f"User operation {user_op_hash} included in {tx_hash}")
        result.status = TransferStatus.HASH_OBTAINED
        result.tx_hash = tx_hash
        return result

    # Reads

    async def get_balance(self, address: str) -> Balance:
        """Native and token balances in base units."""
        native, token_raw = await asyncio.gather(
            self.rpc.get_balance(address),
            self.rpc.eth_call(self.token_address, erc20.encode_balance_of(address)),
        )
        return Balance(address=address, native=native, token=erc20.decode_uint256(token_raw))

    async def get_history(self, address: str) -> list[TransferEvent]:
        """Token transfers touching address in the lookback window.

        Outbound matches come first, then inbound, each in node order. Not
        sorted chronologically.
        """
        current = await self.rpc.block_number()
        from_block = max(current - self.history_lookback_blocks, 0)
        own = erc20.address_topic(address)
        base = {
            "address": self.token_address,
            "fromBlock": hex(from_block),
            "toBlock": hex(current),
        }
        sent, received = await asyncio.gather(
            self.rpc.get_logs({**base, "topics": [erc20.TRANSFER_TOPIC, own, None]}),
            self.rpc.get_logs({**base, "topics": [erc20.TRANSFER_TOPIC, None, own]}),
        )

        events = []
        for raw in [*sent, *received]:
            log = erc20.decode_transfer_log(raw)
            events.append(
                TransferEvent(
                    hash=log.tx_hash,
                    direction="receive" if log.recipient.lower() == address.lower() else "send",
                    amount=str(log.value),
                    sender=log.sender,
                    recipient=log.recipient,
                    block_number=log.block_number,
                    log_index=log.log_index,
                    token=self.token_symbol,
                )
            )
        return events


def _validate(to: str, amount: int) -> None:
    if not to or not is_address(to):
        raise BadRequest("Invalid destination address")
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise BadRequest("Amount must be a positive integer in base units")
