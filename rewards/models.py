from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Union
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel


class RegistrationPolicy(str, Enum):
    STRICT = "strict"
    AUTO = "auto"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterWalletRequest(CamelModel):
    wallet_address: str = Field(..., description="Customer wallet, 0x + 40 hex digits")
    name: Optional[str] = None
    email: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "walletAddress": "0xABCDEF0123456789ABCDEF0123456789ABCDEF01",
            "name": "Ana Customer",
            "email": "ana@example.com",
        }
    })


class SendRewardRequest(CamelModel):
    wallet_address: str
    purchase_id: Optional[Union[int, str]] = None
    purchase_amount: Optional[Decimal] = Field(default=None, ge=0)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "walletAddress": "0xABCDEF0123456789ABCDEF0123456789ABCDEF01",
            "purchaseId": 42,
            "purchaseAmount": "59.90",
        }
    })


class CustomerRecord(CamelModel):
    wallet_address: str
    display_name: str = "Customer"
    email: str = ""
    purchase_count: int = Field(default=0, ge=0)
    total_rewards: Decimal = Field(default=Decimal("0"), ge=0)
    registered_at: datetime
    last_purchase_at: Optional[datetime] = None


class RewardTransaction(CamelModel):
    sequence_id: int = 0
    recipient_wallet: str
    amount: Decimal
    token_symbol: str
    chain_tx_hash: str
    block_number: int
    gas_used: int
    purchase_id: Optional[Union[int, str]] = None
    purchase_amount: Optional[Decimal] = None
    created_at: datetime

    model_config = ConfigDict(frozen=True)


class TokenMetadata(BaseModel):
    decimals: int
    symbol: str

    model_config = ConfigDict(frozen=True)


class PendingTransfer(BaseModel):
    tx_hash: str
    recipient: str
    amount: Decimal
    nonce: int
    submitted_at: datetime

    model_config = ConfigDict(frozen=True)


class Confirmation(BaseModel):
    tx_hash: str
    block_number: int
    gas_used: int

    model_config = ConfigDict(frozen=True)


class RewardSummary(CamelModel):
    amount: str
    recipient: str
    tx_hash: str
    explorer_url: str


class CustomerStats(CamelModel):
    total_purchases: int
    total_rewards: str


class RewardReceipt(CamelModel):
    success: bool = True
    message: str = "Reward sent successfully"
    reward: RewardSummary
    transaction: RewardTransaction
    customer_stats: CustomerStats


class RegistrationResponse(CamelModel):
    success: bool = True
    message: str = "Wallet registered successfully"
    wallet_address: str


class CustomerDetail(CamelModel):
    success: bool = True
    customer: CustomerRecord
    transactions: list[RewardTransaction]


class TransactionHistory(CamelModel):
    success: bool = True
    total: int
    transactions: list[RewardTransaction]


class Balances(CamelModel):
    token: str
    native: str


class BusinessStatus(CamelModel):
    success: bool = True
    business_wallet: str
    balances: Balances
    total_customers: int
    total_transactions: int
