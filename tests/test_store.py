"""Tests for the account record stores."""

import asyncio
import json

import pytest

from waas.config import Settings
from waas.errors import Conflict
from waas.store.base import AccountRecord
from waas.store.factory import create_record_store
from waas.store.file import FileRecordStore
from waas.store.sql import SqlRecordStore

SMART_ACCOUNT = "0x1111111111111111111111111111111111111111"


def make_record(account_id: str = "alice@example.com", **overrides) -> AccountRecord:
    values = dict(
        password_hash="$2b$10$hash",
        custodial_key_ciphertext="nonce.ct.tag",
        primary_address="0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
    )
    values.update(overrides)
    return AccountRecord(account_id=account_id, **values)


class TestRecordStore:
    """Contract shared by both backends."""

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        """Test loading an unknown account."""
        assert await store.get("nobody@example.com") is None

    @pytest.mark.asyncio
    async def test_save_and_get(self, store):
        """Test saving and loading a record."""
        await store.save(make_record())

        record = await store.get("alice@example.com")
        assert record is not None
        assert record.password_hash == "$2b$10$hash"
        assert record.custodial_key_ciphertext == "nonce.ct.tag"
        assert record.primary_address == "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
        assert record.smart_account_address is None

    @pytest.mark.asyncio
    async def test_save_is_upsert(self, store):
        """Test save() replaces an existing record."""
        await store.save(make_record())
        await store.save(make_record(password_hash="$2b$10$other"))

        record = await store.get("alice@example.com")
        assert record.password_hash == "$2b$10$other"

    @pytest.mark.asyncio
    async def test_save_keeps_smart_account_address(self, store):
        """Test save() never clears a smart account address."""
        await store.save(make_record(smart_account_address=SMART_ACCOUNT))
        await store.save(make_record(password_hash="$2b$10$other"))

        record = await store.get("alice@example.com")
        assert record.smart_account_address == SMART_ACCOUNT
        assert record.password_hash == "$2b$10$other"

    @pytest.mark.asyncio
    async def test_save_drops_plaintext_when_protected(self, store):
        """Test plaintext is dropped once a protected form exists."""
        await store.save(make_record(password="hunter2", private_key="0xabc"))

        record = await store.get("alice@example.com")
        assert record.password is None
        assert record.private_key is None
        assert not record.is_legacy

    @pytest.mark.asyncio
    async def test_save_legacy_record(self, store):
        """Test a legacy record keeps its plaintext until upgraded."""
        legacy = AccountRecord(account_id="old@example.com", password="hunter2")
        await store.save(legacy)

        record = await store.get("old@example.com")
        assert record.password == "hunter2"
        assert record.is_legacy

    @pytest.mark.asyncio
    async def test_create(self, store):
        """create() inserts a new record."""
        await store.create(make_record(password="hunter2"))

        record = await store.get("alice@example.com")
        assert record.password_hash == "$2b$10$hash"
        assert record.password is None

    @pytest.mark.asyncio
    async def test_create_existing_conflicts(self, store):
        """create() never overwrites an existing record."""
        await store.save(make_record())

        with pytest.raises(Conflict):
            await store.create(make_record(password_hash="$2b$10$other"))

        record = await store.get("alice@example.com")
        assert record.password_hash == "$2b$10$hash"

    @pytest.mark.asyncio
    async def test_concurrent_create(self, store):
        """Racing inserts on a cold store: one wins, the other gets Conflict."""
        results = await asyncio.gather(
            store.create(make_record()),
            store.create(make_record(password_hash="$2b$10$other")),
            return_exceptions=True,
        )

        assert results.count(None) == 1
        assert [type(r) for r in results if r is not None] == [Conflict]

    @pytest.mark.asyncio
    async def test_set_field(self, store):
        """Test a single-field update."""
        await store.save(make_record())
        await store.set_field("alice@example.com", "smart_account_address", SMART_ACCOUNT)

        record = await store.get("alice@example.com")
        assert record.smart_account_address == SMART_ACCOUNT
        assert record.password_hash == "$2b$10$hash"

    @pytest.mark.asyncio
    async def test_set_field_unknown_field(self, store):
        """Test set_field() with an unknown field."""
        await store.save(make_record())

        with pytest.raises(ValueError):
            await store.set_field("alice@example.com", "balance", 1)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["password", "private_key", "account_id"])
    async def test_set_field_rejects_protected_fields(self, store, field):
        """Plaintext secrets and the account id are not writable through set_field."""
        await store.save(make_record())

        with pytest.raises(ValueError):
            await store.set_field("alice@example.com", field, "hunter2")

        record = await store.get("alice@example.com")
        assert record.password is None

    @pytest.mark.asyncio
    async def test_set_if_absent(self, store):
        """Test set_if_absent() writes only once."""
        await store.save(make_record())

        field = "smart_account_address"
        other = "0x2222222222222222222222222222222222222222"
        assert await store.set_if_absent("alice@example.com", field, SMART_ACCOUNT)
        assert not await store.set_if_absent("alice@example.com", field, other)

        record = await store.get("alice@example.com")
        assert record.smart_account_address == SMART_ACCOUNT

    @pytest.mark.asyncio
    async def test_set_if_absent_missing_record(self, store):
        """Test set_if_absent() on a missing record."""
        assert not await store.set_if_absent("nobody@example.com", "primary_address", "0x1")


class TestFileRecordStore:
    """File-backend specifics."""

    @pytest.mark.asyncio
    async def test_reads_legacy_camel_case(self, tmp_path):
        """Test reading records written with camelCase keys."""
        data_dir = tmp_path / "data"
        data_dir.mkdir()
        (data_dir / "users.json").write_text(
            json.dumps(
                {
                    "old@example.com": {
                        "passwordHash": "$2b$10$hash",
                        "encryptedPk": "nonce.ct.tag",
                        "walletAddress": "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
                        "smartAccountAddress": SMART_ACCOUNT,
                    }
                }
            )
        )

        record = await FileRecordStore(str(data_dir)).get("old@example.com")

        assert record.password_hash == "$2b$10$hash"
        assert record.custodial_key_ciphertext == "nonce.ct.tag"
        assert record.primary_address == "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
        assert record.smart_account_address == SMART_ACCOUNT

    @pytest.mark.asyncio
    async def test_writes_snake_case(self, file_store):
        """Test records are written with snake_case keys."""
        await file_store.save(make_record())

        data = json.loads(file_store.path.read_text())
        entry = data["alice@example.com"]
        assert entry["custodial_key_ciphertext"] == "nonce.ct.tag"
        assert "encryptedPk" not in entry
        assert "password" not in entry

    @pytest.mark.asyncio
    async def test_creates_store_file(self, file_store):
        """Test the store file is created on first access."""
        assert await file_store.get("alice@example.com") is None
        assert file_store.path.exists()

    @pytest.mark.asyncio
    async def test_set_field_missing_record_is_noop(self, file_store):
        """Test set_field() on a missing record does nothing."""
        await file_store.set_field("nobody@example.com", "primary_address", "0x1")

        assert await file_store.get("nobody@example.com") is None


class TestStoreFactory:
    """Backend selection from configuration."""

    def test_file_backend_by_default(self, tmp_path):
        """Test the file backend without DATABASE_URL."""
        settings = Settings(_env_file=None, jwt_secret="s", data_dir=str(tmp_path))
        assert isinstance(create_record_store(settings), FileRecordStore)

    @pytest.mark.asyncio
    async def test_sql_backend_with_database_url(self, tmp_path):
        """Test the SQL backend with DATABASE_URL."""
        settings = Settings(
            _env_file=None, jwt_secret="s", database_url=f"sqlite:///{tmp_path}/waas.db"
        )
        store = create_record_store(settings)

        assert isinstance(store, SqlRecordStore)
        assert settings.database_url.startswith("sqlite+aiosqlite:///")
        await store.close()
