"""
Purchase Rewards Service

This package provides:
- Wallet address validation
- An ERC-20 token client for the custodial business wallet
- In-memory customer registry and append-only reward history
- Reward issuance: validate → look up customer → transfer → confirm → record
- A FastAPI app consumed by the storefront plugin
"""

from .models import (
    CustomerRecord,
    RegistrationPolicy,
    RewardReceipt,
    RewardTransaction,
)
from .service import RewardService
from .storage import CustomerRegistry, TransactionLog
from .wallet import is_valid_address, normalize_address

__all__ = [
    "CustomerRecord",
    "RegistrationPolicy",
    "RewardReceipt",
    "RewardTransaction",
    "RewardService",
    "CustomerRegistry",
    "TransactionLog",
    "is_valid_address",
    "normalize_address",
]
