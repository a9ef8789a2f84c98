"""FastAPI dependencies.

Services are created once in create_app() and kept on ``app.state``.
"""

from typing import Optional

from fastapi import Depends, Header, Request

from waas.config import Settings
from waas.custody.manager import CustodyManager
from waas.errors import Unauthorized
from waas.execution.engine import TransactionEngine
from waas.limits import SpendLimiter
from waas.store.base import AccountRecord


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_custody(request: Request) -> CustodyManager:
    return request.app.state.custody


def get_engine(request: Request) -> TransactionEngine:
    return request.app.state.engine


def get_limiter(request: Request) -> SpendLimiter:
    return request.app.state.limiter


def bearer_token(authorization: Optional[str] = Header(None)) -> str:
    """Extract the token from ``Authorization: Bearer <token>``."""
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized()
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise Unauthorized()
    return token


async def get_current_account(
    token: str = Depends(bearer_token),
    custody: CustodyManager = Depends(get_custody),
) -> AccountRecord:
    """Resolve the session to its account record."""
    return await custody.resolve_session(token)
