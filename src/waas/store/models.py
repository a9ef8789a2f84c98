"""SQLAlchemy models for the relational record store."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Account(Base):
    """Custodial account keyed by email."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(320), primary_key=True)
    password_hash: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    wallet_address: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)
    encrypted_pk: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    smart_account_address: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)

    # Legacy plaintext columns, only ever cleared
    password: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    private_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


# AccountRecord field -> column attribute
COLUMN_MAP = {
    "password_hash": "password_hash",
    "custodial_key_ciphertext": "encrypted_pk",
    "primary_address": "wallet_address",
    "smart_account_address": "smart_account_address",
    "password": "password",
    "private_key": "private_key",
}
