"""Request/response models.

Wire names are camelCase for compatibility with existing clients.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from waas.errors import BadRequest


class WireModel(BaseModel):
    """Accepts field names or their camelCase aliases."""
    model_config = ConfigDict(populate_by_name=True)


class CredentialsRequest(BaseModel):
    """Sign-up / sign-in body."""
    email: Optional[str] = None
    password: Optional[str] = None


class SessionResponse(WireModel):
    """Issued session."""
    access_token: str = Field(..., alias="accessToken")
    wallet_address: Optional[str] = Field(None, alias="walletAddress")


class MeResponse(WireModel):
    wallet_address: Optional[str] = Field(None, alias="walletAddress")


class AddressResponse(BaseModel):
    address: Optional[str] = None


class SmartAccountResponse(WireModel):
    smart_account_address: str = Field(..., alias="smartAccountAddress")


class BalanceResponse(WireModel):
    """Balances in base units, as decimal strings."""
    address: str
    eth_wei: str = Field(..., alias="ethWei")
    usdc_wei: str = Field(..., alias="usdcWei")


class TransactionItem(WireModel):
    hash: str
    type: str
    amount: str
    to: str
    from_: str = Field(..., alias="from")
    block_number: int = Field(..., alias="blockNumber")
    log_index: int = Field(..., alias="logIndex")
    status: str
    token: str


class TransactionsResponse(BaseModel):
    transactions: list[TransactionItem]


class SendRequest(BaseModel):
    """Transfer body. Amount is an integer in base units (string or number)."""
    model_config = ConfigDict(extra="ignore")

    to: Optional[str] = None
    amount: Optional[Union[int, str]] = None
    token: Optional[str] = None
    network: Optional[str] = None

    def require(self) -> tuple[str, int]:
        """Validated (to, amount).

        Raises:
            BadRequest: Missing destination or non-integer amount
        """
        if not self.to or self.amount in (None, ""):
            raise BadRequest("Missing to/amount")
        try:
            amount = int(self.amount)
        except (TypeError, ValueError):
            raise BadRequest("Amount must be an integer in base units")
        if amount <= 0:
            raise BadRequest("Amount must be positive")
        return self.to, amount


class SendResponse(WireModel):
    tx_hash: str = Field(..., alias="txHash")
    smart_account_address: Optional[str] = Field(
        None, alias="smartAccountAddress"
    )
