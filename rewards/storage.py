"""
In-memory stores owned by the reward service.

Both stores live for a single process lifetime. They enforce their own
key-uniqueness / append-only rules and guard every access with a lock,
since FastAPI runs synchronous handlers on a thread pool.
"""

import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from .errors import AlreadyRegisteredError, CustomerNotRegisteredError
from .models import CustomerRecord, RewardTransaction
from .wallet import normalize_address


class CustomerRegistry:
    def __init__(self):
        self._customers: dict[str, CustomerRecord] = {}
        self._lock = threading.Lock()

    def register(
        self,
        address: str,
        display_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> CustomerRecord:
        key = normalize_address(address)
        with self._lock:
            if key in self._customers:
                raise AlreadyRegisteredError()
            record = CustomerRecord(
                wallet_address=key,
                display_name=display_name or "Customer",
                email=email or "",
                registered_at=datetime.now(timezone.utc),
            )
            self._customers[key] = record
            return record.model_copy()

    def get(self, address: str) -> Optional[CustomerRecord]:
        with self._lock:
            record = self._customers.get(normalize_address(address))
            return record.model_copy() if record else None

    def record_purchase(self, address: str, amount: Decimal, timestamp: datetime) -> CustomerRecord:
        key = normalize_address(address)
        with self._lock:
            record = self._customers.get(key)
            if record is None:
                raise CustomerNotRegisteredError(f"Customer {key} not found")
            updated = record.model_copy(update={
                "purchase_count": record.purchase_count + 1,
                "total_rewards": record.total_rewards + amount,
                "last_purchase_at": timestamp,
            })
            self._customers[key] = updated
            return updated.model_copy()

    def __len__(self) -> int:
        with self._lock:
            return len(self._customers)

    def __contains__(self, address: str) -> bool:
        with self._lock:
            return normalize_address(address) in self._customers


class TransactionLog:
    def __init__(self):
        self._entries: list[RewardTransaction] = []
        self._lock = threading.Lock()

    def append(self, transaction: RewardTransaction) -> int:
        with self._lock:
            sequence_id = len(self._entries) + 1
            self._entries.append(transaction.model_copy(update={"sequence_id": sequence_id}))
            return sequence_id

    def get(self, sequence_id: int) -> Optional[RewardTransaction]:
        with self._lock:
            if 1 <= sequence_id <= len(self._entries):
                return self._entries[sequence_id - 1]
            return None

    def list_recent(self, limit: int) -> list[RewardTransaction]:
        if limit <= 0:
            return []
        with self._lock:
            return list(reversed(self._entries[-limit:]))

    def list_for(self, address: str) -> list[RewardTransaction]:
        key = normalize_address(address)
        with self._lock:
            return [t for t in self._entries if normalize_address(t.recipient_wallet) == key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
