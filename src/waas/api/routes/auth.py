"""Account endpoints: sign-up, sign-in, session check."""

from fastapi import APIRouter, Depends

from waas.api.deps import get_current_account, get_custody
from waas.api.schemas import CredentialsRequest, MeResponse, SessionResponse
from waas.custody.manager import CustodyManager
from waas.store.base import AccountRecord

router = APIRouter(prefix="/v1/auth", tags=["Auth"])


@router.post("/signup", status_code=201, response_model=SessionResponse)
async def signup(
    body: CredentialsRequest,
    custody: CustodyManager = Depends(get_custody),
) -> SessionResponse:
    """Create an account and its custodial wallet."""
    session = await custody.create_account(body.email or "", body.password or "")
    return SessionResponse(access_token=session.token, wallet_address=session.primary_address)


@router.post("/signin", response_model=SessionResponse)
async def signin(
    body: CredentialsRequest,
    custody: CustodyManager = Depends(get_custody),
) -> SessionResponse:
    """Sign in. Legacy records are upgraded on the way through."""
    session = await custody.authenticate(body.email or "", body.password or "")
    return SessionResponse(access_token=session.token, wallet_address=session.primary_address)


@router.get("/me", response_model=MeResponse)
async def me(account: AccountRecord = Depends(get_current_account)) -> MeResponse:
    return MeResponse(wallet_address=account.primary_address)
