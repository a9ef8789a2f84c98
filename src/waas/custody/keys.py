"""Request-scoped custodial key holder."""

from typing import Any, Optional

from eth_account import Account
from eth_account.datastructures import SignedTransaction
from eth_account.messages import encode_defunct


def parse_private_key(value: str) -> bytes:
    """Parse a hex private key with or without 0x prefix."""
    raw = value.strip()
    if raw.startswith(("0x", "0X")):
        raw = raw[2:]
    key = bytes.fromhex(raw)
    if len(key) != 32:
        raise ValueError("Private key must be 32 bytes")
    return key


def derive_address(private_key: str) -> str:
    """Derive the checksum address for a hex private key."""
    return Account.from_key(parse_private_key(private_key)).address


class CustodialKey:
    """Plaintext signing key scoped to a single request.

    Holds the raw key in a mutable buffer so discard() can zero it. Never
    logged or serialized; repr() hides the key.
    """

    def __init__(self, private_key: str):
        self._key: Optional[bytearray] = bytearray(parse_private_key(private_key))
        self.address: str = Account.from_key(bytes(self._key)).address

    def __repr__(self) -> str:
        state = "discarded" if self._key is None else "live"
        return f"CustodialKey(address={self.address}, {state})"

    def _raw(self) -> bytes:
        if self._key is None:
            raise RuntimeError("Custodial key already discarded")
        return bytes(self._key)

    def to_hex(self) -> str:
        """Hex form for re-encryption."""
        return "0x" + self._raw().hex()

    def sign_transaction(self, tx: dict[str, Any]) -> SignedTransaction:
        """Sign an EVM transaction dict."""
        return Account.sign_transaction(tx, self._raw())

    def sign_message_hash(self, message_hash: bytes) -> bytes:
        """EIP-191 personal-sign a 32-byte hash, returning the 65-byte signature."""
        signed = Account.sign_message(encode_defunct(primitive=message_hash), self._raw())
        return bytes(signed.signature)

    def discard(self) -> None:
        """Zero and drop the key buffer."""
        if self._key is not None:
            for i in range(len(self._key)):
                self._key[i] = 0
            self._key = None

    @property
    def discarded(self) -> bool:
        return self._key is None
