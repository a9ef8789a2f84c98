"""Pytest configuration and fixtures."""

import os
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["USDC_CONTRACT_ADDRESS"] = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("BICONOMY_BUNDLER_URL", None)
os.environ.pop("BICONOMY_PAYMASTER_URL", None)

from waas.chain.rpc import EthRpc
from waas.config import Settings
from waas.crypto import get_cipher
from waas.custody.manager import CustodyManager
from waas.custody.sessions import SessionSigner
from waas.execution.engine import TransactionEngine
from waas.limits import SpendLimiter
from waas.store.database import create_engine
from waas.store.file import FileRecordStore
from waas.store.sql import SqlRecordStore

SECRET = "test-secret"
TOKEN_ADDRESS = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"
RECIPIENT = "0x000000000000000000000000000000000000dEaD"

# Well-known hardhat test key
OWNER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
OWNER_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the developer's .env."""
    return Settings(
        _env_file=None,
        jwt_secret=SECRET,
        usdc_contract_address=TOKEN_ADDRESS,
        data_dir=str(tmp_path / "data"),
        rate_limit_per_minute=0,
        confirmation_timeout=0.05,
        userop_timeout=0.05,
        poll_interval=0.01,
    )


@pytest.fixture
def file_store(tmp_path) -> FileRecordStore:
    return FileRecordStore(str(tmp_path / "data"))


@pytest_asyncio.fixture
async def sql_store(tmp_path):
    """SQL store on a throwaway sqlite file."""
    store = SqlRecordStore(create_engine(f"sqlite+aiosqlite:///{tmp_path}/waas.db"))
    yield store
    await store.close()


@pytest_asyncio.fixture(params=["file", "sql"])
async def store(request, tmp_path):
    """Each backend in turn."""
    if request.param == "file":
        yield FileRecordStore(str(tmp_path / "data"))
    else:
        sql = SqlRecordStore(create_engine(f"sqlite+aiosqlite:///{tmp_path}/waas.db"))
        yield sql
        await sql.close()


@pytest.fixture
def custody(file_store) -> CustodyManager:
    return CustodyManager(file_store, get_cipher(SECRET), SessionSigner(SECRET))


@pytest.fixture
def rpc() -> AsyncMock:
    """Chain RPC double; every eth_* wrapper is an AsyncMock."""
    return AsyncMock(spec=EthRpc)


@pytest.fixture
def aa_client() -> AsyncMock:
    from waas.aa.client import SmartAccountClient

    return AsyncMock(spec=SmartAccountClient)


@pytest.fixture
def engine(rpc, file_store) -> TransactionEngine:
    """Engine without account abstraction."""
    return TransactionEngine(
        rpc=rpc,
        store=file_store,
        token_address=TOKEN_ADDRESS,
        chain_id=84532,
        confirmation_timeout=0.05,
        poll_interval=0.01,
    )


@pytest.fixture
def aa_engine(rpc, aa_client, file_store) -> TransactionEngine:
    """Engine with a mocked smart account client."""
    return TransactionEngine(
        rpc=rpc,
        store=file_store,
        token_address=TOKEN_ADDRESS,
        chain_id=84532,
        aa_client=aa_client,
        confirmation_timeout=0.05,
        poll_interval=0.01,
    )


@pytest.fixture
def limiter() -> SpendLimiter:
    return SpendLimiter()
