"""Credential and key custody manager.

Account lifecycle:
1. create_account: generate key, hash password, encrypt key, save, issue session
2. authenticate: verify password (bcrypt, or legacy plaintext with upgrade),
   recover the custodial key, backfill primary address if missing
3. Authenticated requests: resolve_session -> open_key -> sign -> discard

Legacy records may carry a plaintext ``password`` and/or ``private_key``.
They stay readable, but every write replaces them with the hashed/encrypted
form; plaintext is never written back.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import AsyncIterator, Optional

from eth_account import Account

from waas.config import Settings
from waas.crypto import KeyCipher, get_cipher
from waas.custody.keys import CustodialKey
from waas.custody.passwords import hash_password, verify_legacy_password, verify_password
from waas.custody.sessions import SessionClaims, SessionSigner
from waas.errors import (
    BadRequest,
    Conflict,
    DecryptionFailed,
    InvalidCredentials,
    MigrationRequired,
    Unauthorized,
)
from waas.store.base import AccountRecord, RecordStore

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Issued session."""
    token: str
    primary_address: Optional[str]


class CustodyManager:
    """Owns passwords, custodial keys and sessions for all accounts."""

    def __init__(self, store: RecordStore, cipher: KeyCipher, sessions: SessionSigner):
        self.store = store
        self.cipher = cipher
        self.sessions = sessions

    @classmethod
    def from_settings(cls, store: RecordStore, settings: Settings) -> "CustodyManager":
        """Build a manager keyed by JWT_SECRET."""
        return cls(
            store=store,
            cipher=get_cipher(settings.jwt_secret),
            sessions=SessionSigner(
                settings.jwt_secret, ttl=timedelta(hours=settings.session_ttl_hours)
            ),
        )

    # Account operations

    async def create_account(self, account_id: str, password: str) -> Session:
        """Create an account with a freshly generated custodial key.

        Raises:
            BadRequest: Empty id or password
            Conflict: Account already exists
        """
        if not account_id or not password:
            raise BadRequest("Missing email/password")

        if await self.store.get(account_id) is not None:
            raise Conflict()

        account = Account.create()
        private_key = "0x" + bytes(account.key).hex()
        record = AccountRecord(
            account_id=account_id,
            password_hash=await self._run_blocking(hash_password, password),
            custodial_key_ciphertext=self.cipher.encrypt(private_key),
            primary_address=account.address,
        )
        del private_key, account
        await self.store.create(record)

        logger.info(f"Created account {account_id} with address {record.primary_address}")
        return Session(
            token=self.issue_session(account_id, record.primary_address),
            primary_address=record.primary_address,
        )

    async def authenticate(self, account_id: str, password: str) -> Session:
        """Verify credentials and confirm the account has a usable key.

        Raises:
            InvalidCredentials: Unknown account, wrong password or undecryptable key
            MigrationRequired: Password ok but no custodial key on record
        """
        record = await self.store.get(account_id) if account_id else None
        if record is None or not password:
            logger.info(f"Sign-in rejected for {account_id}: unknown account")
            raise InvalidCredentials()

        if not await self._check_password(record, password):
            logger.info(f"Sign-in rejected for {account_id}: password mismatch")
            raise InvalidCredentials()

        try:
            key = self.decrypt_custodial_key(record)
        except DecryptionFailed as e:
            logger.warning(f"Custodial key for {account_id} failed to decrypt: {e}")
            raise InvalidCredentials()

        try:
            if not record.custodial_key_ciphertext:
                await self._migrate_plaintext_key(record, key)
            address = await self._backfill_address(record, key)
        finally:
            key.discard()

        return Session(token=self.issue_session(account_id, address), primary_address=address)

    async def _check_password(self, record: AccountRecord, password: str) -> bool:
        if record.password_hash:
            return await self._run_blocking(verify_password, password, record.password_hash)

        if record.password:
            if not verify_legacy_password(password, record.password):
                return False
            # Write-through upgrade; save() drops the plaintext once a hash exists
            record.password_hash = await self._run_blocking(hash_password, password)
            record.password = None
            await self.store.save(record)
            logger.info(f"Migrated plaintext password to bcrypt for {record.account_id}")
            return True

        return False

    async def _migrate_plaintext_key(self, record: AccountRecord, key: CustodialKey) -> None:
        record.custodial_key_ciphertext = self.cipher.encrypt(key.to_hex())
        record.private_key = None
        await self.store.save(record)
        logger.info(f"Encrypted legacy plaintext key for {record.account_id}")

    async def _backfill_address(self, record: AccountRecord, key: CustodialKey) -> str:
        if record.primary_address:
            if record.primary_address.lower() != key.address.lower():
                logger.warning(
                    f"Stored address for {record.account_id} does not match its key; "
                    "keeping stored value"
                )
            return record.primary_address

        if await self.store.set_if_absent(record.account_id, "primary_address", key.address):
            logger.info(f"Backfilled primary address for {record.account_id}")
            record.primary_address = key.address
            return key.address

        # Another writer filled it first
        current = await self.store.get(record.account_id)
        record.primary_address = current.primary_address if current else key.address
        return record.primary_address

    @staticmethod
    async def _run_blocking(func, *args):
        # bcrypt is CPU-bound; keep it off the event loop
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    # Keys

    def decrypt_custodial_key(self, record: AccountRecord) -> CustodialKey:
        """Recover the plaintext key for a record.

        Raises:
            DecryptionFailed: Ciphertext does not authenticate
            MigrationRequired: Record holds neither ciphertext nor legacy key
        """
        if record.custodial_key_ciphertext:
            plaintext = self.cipher.decrypt(record.custodial_key_ciphertext)
        elif record.private_key:
            plaintext = record.private_key
        else:
            raise MigrationRequired(walletAddress=record.primary_address)

        try:
            return CustodialKey(plaintext)
        except ValueError as e:
            raise DecryptionFailed("Stored key is not a valid private key") from e

    @asynccontextmanager
    async def open_key(self, record: AccountRecord) -> AsyncIterator[CustodialKey]:
        """Yield the record's key for one request, then discard it.

        Decryption failures surface as Unauthorized so the client cannot
        distinguish them from a bad session.
        """
        try:
            key = self.decrypt_custodial_key(record)
        except DecryptionFailed as e:
            logger.warning(f"Custodial key for {record.account_id} failed to decrypt: {e}")
            raise Unauthorized()
        try:
            yield key
        finally:
            key.discard()

    # Sessions

    def issue_session(self, account_id: str, address: Optional[str]) -> str:
        """Issue a session token bound to account and address."""
        return self.sessions.issue(account_id, address)

    def verify_session(self, token: Optional[str]) -> SessionClaims:
        """Verify a session token."""
        return self.sessions.verify(token)

    async def resolve_session(self, token: Optional[str]) -> AccountRecord:
        """Verify a token and load its account.

        Raises:
            Unauthorized: Bad token or the account no longer exists
        """
        claims = self.verify_session(token)
        record = await self.store.get(claims.account_id)
        if record is None:
            raise Unauthorized()
        return record
