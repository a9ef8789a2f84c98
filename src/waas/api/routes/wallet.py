"""Wallet endpoints: addresses, balances, history and transfers."""

import logging

from fastapi import APIRouter, Depends

from waas.api.deps import (
    get_app_settings,
    get_current_account,
    get_custody,
    get_engine,
    get_limiter,
)
from waas.api.schemas import (
    AddressResponse,
    BalanceResponse,
    SendRequest,
    SendResponse,
    SmartAccountResponse,
    TransactionItem,
    TransactionsResponse,
)
from waas.chain.rpc import RpcError
from waas.config import Settings
from waas.custody.manager import CustodyManager
from waas.errors import Failed, Gone, LimitExceeded, NotConfigured
from waas.execution.base import DirectTransfer, SponsoredTransfer, TransferStatus
from waas.execution.engine import TransactionEngine
from waas.limits import SpendLimiter
from waas.store.base import AccountRecord

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/wallet", tags=["Wallet"])


async def _account_address(account: AccountRecord, custody: CustodyManager) -> str:
    """Primary address, derived from the key for records that predate it."""
    if account.primary_address:
        return account.primary_address
    async with custody.open_key(account) as key:
        return key.address


@router.get("/address", response_model=AddressResponse)
async def get_address(account: AccountRecord = Depends(get_current_account)) -> AddressResponse:
    return AddressResponse(address=account.primary_address)


@router.get("/aa-address", response_model=SmartAccountResponse)
async def get_smart_account_address(
    account: AccountRecord = Depends(get_current_account),
    custody: CustodyManager = Depends(get_custody),
    engine: TransactionEngine = Depends(get_engine),
) -> SmartAccountResponse:
    """Cached smart account address, derived on first request."""
    if account.smart_account_address:
        return SmartAccountResponse(smart_account_address=account.smart_account_address)
    if not engine.aa_configured:
        raise NotConfigured()

    async with custody.open_key(account) as key:
        try:
            address = await engine.resolve_smart_account(account, key.address)
        except RpcError as e:
            raise Failed(str(e))
    return SmartAccountResponse(smart_account_address=address)


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    account: AccountRecord = Depends(get_current_account),
    custody: CustodyManager = Depends(get_custody),
    engine: TransactionEngine = Depends(get_engine),
) -> BalanceResponse:
    address = await _account_address(account, custody)
    try:
        balance = await engine.get_balance(address)
    except RpcError as e:
        raise Failed(str(e))
    return BalanceResponse(
        address=balance.address,
        eth_wei=str(balance.native),
        usdc_wei=str(balance.token),
    )


@router.get("/transactions", response_model=TransactionsResponse)
async def get_transactions(
    account: AccountRecord = Depends(get_current_account),
    custody: CustodyManager = Depends(get_custody),
    engine: TransactionEngine = Depends(get_engine),
) -> TransactionsResponse:
    """Recent token transfers, in discovery order (not sorted)."""
    address = await _account_address(account, custody)
    try:
        events = await engine.get_history(address)
    except RpcError as e:
        raise Failed(str(e))
    return TransactionsResponse(
        transactions=[
            TransactionItem(
                hash=e.hash,
                type=e.direction,
                amount=e.amount,
                to=e.recipient,
                from_=e.sender,
                block_number=e.block_number,
                log_index=e.log_index,
                status=e.status,
                token=e.token,
            )
            for e in events
        ]
    )


@router.post(
    "/send", status_code=201, response_model=SendResponse, response_model_exclude_none=True
)
async def send(
    body: SendRequest,
    account: AccountRecord = Depends(get_current_account),
    custody: CustodyManager = Depends(get_custody),
    engine: TransactionEngine = Depends(get_engine),
) -> SendResponse:
    """Direct transfer signed by the custodial key; waits for one confirmation."""
    to, amount = body.require()
    async with custody.open_key(account) as key:
        transfer = DirectTransfer(to=to, amount=amount, token=body.token)
        result = await engine.execute(account, key, transfer)
    result.raise_for_status()
    return SendResponse(tx_hash=result.tx_hash)


@router.post("/sponsor")
async def sponsor():
    """Retired in-house gas top-up."""
    raise Gone()


@router.post("/send-sponsored")
async def send_sponsored():
    """Retired top-up-then-send flow."""
    raise Gone()


@router.post("/send-aa", status_code=201, response_model=SendResponse)
async def send_aa(
    body: SendRequest,
    account: AccountRecord = Depends(get_current_account),
    custody: CustodyManager = Depends(get_custody),
    engine: TransactionEngine = Depends(get_engine),
    limiter: SpendLimiter = Depends(get_limiter),
    settings: Settings = Depends(get_app_settings),
) -> SendResponse:
    """Token transfer from the smart account with paymaster-sponsored gas."""
    to, amount = body.require()
    if not engine.aa_configured:
        raise NotConfigured()
    if limiter.would_exceed(account.account_id, amount, settings.daily_sponsor_limit):
        logger.warning(f"Daily sponsorship limit reached for {account.account_id}")
        raise LimitExceeded("Daily sponsorship limit exceeded")

    async with custody.open_key(account) as key:
        result = await engine.execute(account, key, SponsoredTransfer(to=to, amount=amount))

    # Funds may have moved even without a hash, so count both outcomes
    if result.status in (TransferStatus.HASH_OBTAINED, TransferStatus.SUBMISSION_INCOMPLETE):
        limiter.record_spend(account.account_id, amount)

    result.raise_for_status()
    return SendResponse(tx_hash=result.tx_hash, smart_account_address=result.smart_account_address)
