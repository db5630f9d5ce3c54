import itertools
import threading
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from rewards.models import Confirmation, PendingTransfer, TokenMetadata
from rewards.service import RewardService

BUSINESS_WALLET = "0x9999999999999999999999999999999999999999"


class FakeTokenLedger:
    """Stands in for TokenLedgerClient without a node."""

    def __init__(self, token_balance=Decimal("1000"), native_balance=Decimal("0.5")):
        self.address = BUSINESS_WALLET
        self.token_balance = token_balance
        self.native_balance = native_balance
        self.submit_error = None
        self.confirm_error = None
        self.submitted: list[PendingTransfer] = []
        self._nonce = itertools.count()
        self._block = itertools.count(5_000_000)
        self._lock = threading.Lock()

    def get_token_metadata(self) -> TokenMetadata:
        return TokenMetadata(decimals=18, symbol="ARY")

    def get_chain_id(self) -> int:
        return 11155111

    def get_token_balance(self, address):
        return self.token_balance

    def get_native_balance(self, address):
        return self.native_balance

    def transfer_tokens(self, to_address, amount) -> PendingTransfer:
        if self.submit_error is not None:
            raise self.submit_error
        with self._lock:
            nonce = next(self._nonce)
            pending = PendingTransfer(
                tx_hash="0x" + f"{nonce + 1:064x}",
                recipient=to_address,
                amount=amount,
                nonce=nonce,
                submitted_at=datetime.now(timezone.utc),
            )
            self.submitted.append(pending)
            self.token_balance -= amount
        return pending

    def await_confirmation(self, pending) -> Confirmation:
        if self.confirm_error is not None:
            raise self.confirm_error
        with self._lock:
            block = next(self._block)
        return Confirmation(tx_hash=pending.tx_hash, block_number=block, gas_used=51_234)


@pytest.fixture
def ledger():
    return FakeTokenLedger()


@pytest.fixture
def service(ledger):
    return RewardService(ledger, reward_amount=Decimal("5"))
