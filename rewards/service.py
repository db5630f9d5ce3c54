import logging
import threading
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from .chain import format_amount
from .errors import (
    AlreadyRegisteredError,
    ChainError,
    CustomerNotRegisteredError,
    InternalInconsistencyError,
    InvalidAddressError,
    InvalidInputError,
    TransferRevertedError,
)
from .models import (
    Balances,
    BusinessStatus,
    CustomerDetail,
    CustomerRecord,
    CustomerStats,
    RegistrationPolicy,
    RewardReceipt,
    RewardSummary,
    RewardTransaction,
    TransactionHistory,
)
from .storage import CustomerRegistry, TransactionLog
from .wallet import is_valid_address, normalize_address

logger = logging.getLogger(__name__)

DEFAULT_EXPLORER_TX_URL = "https://sepolia.etherscan.io/tx/"
DEFAULT_TRANSACTION_LIMIT = 50


class RewardService:
    """
    Register customers and pay them a fixed token reward per purchase.

    A reward moves through: validate -> customer lookup -> transfer
    submitted -> awaiting confirmation -> recorded. Nothing local is
    mutated until the chain confirms the transfer.
    """

    def __init__(
        self,
        ledger,
        registry: Optional[CustomerRegistry] = None,
        transactions: Optional[TransactionLog] = None,
        reward_amount: Decimal = Decimal("5"),
        registration_policy: RegistrationPolicy = RegistrationPolicy.STRICT,
        explorer_tx_url: str = DEFAULT_EXPLORER_TX_URL,
        native_symbol: str = "ETH",
    ):
        self.ledger = ledger
        self.registry = registry if registry is not None else CustomerRegistry()
        self.transactions = transactions if transactions is not None else TransactionLog()
        self.reward_amount = Decimal(reward_amount)
        self.registration_policy = RegistrationPolicy(registration_policy)
        self.explorer_tx_url = explorer_tx_url
        self.native_symbol = native_symbol
        self._bookkeeping_lock = threading.Lock()

    def register_customer(
        self,
        wallet_address: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> CustomerRecord:
        address = self._validated_address(wallet_address)
        record = self.registry.register(address, display_name=name, email=email)
        logger.info("New wallet registered: %s", address)
        return record

    def send_reward(
        self,
        wallet_address: str,
        purchase_id: Optional[Union[int, str]] = None,
        purchase_amount=None,
    ) -> RewardReceipt:
        address = self._validated_address(wallet_address)
        purchase_id, purchase_amount = self._validated_purchase(purchase_id, purchase_amount)

        auto_register = self._needs_registration(address)

        metadata = self.ledger.get_token_metadata()
        logger.info(
            "Processing reward: customer=%s purchase=%s reward=%s",
            address, purchase_id if purchase_id is not None else "N/A",
            format_amount(self.reward_amount, metadata.symbol),
        )

        pending = self.ledger.transfer_tokens(address, self.reward_amount)
        logger.info("Transaction sent: %s, waiting for confirmation", pending.tx_hash)

        try:
            confirmation = self.ledger.await_confirmation(pending)
        except TransferRevertedError as e:
            logger.error("Transfer %s to %s reverted on-chain; no tokens moved", pending.tx_hash, address)
            if e.tx_hash is None:
                e.tx_hash = pending.tx_hash
            raise
        except ChainError as e:
            logger.error(
                "Confirmation failed for %s to %s (%s); the transfer may still land on-chain",
                pending.tx_hash, address, e.message,
            )
            if e.tx_hash is None:
                e.tx_hash = pending.tx_hash
            raise

        logger.info(
            "Confirmed in block %s, gas used %s", confirmation.block_number, confirmation.gas_used,
        )

        now = datetime.now(timezone.utc)
        draft = RewardTransaction(
            recipient_wallet=address,
            amount=self.reward_amount,
            token_symbol=metadata.symbol,
            chain_tx_hash=confirmation.tx_hash,
            block_number=confirmation.block_number,
            gas_used=confirmation.gas_used,
            purchase_id=purchase_id,
            purchase_amount=purchase_amount,
            created_at=now,
        )

        with self._bookkeeping_lock:
            if auto_register:
                self._auto_register(address)
            try:
                customer = self.registry.record_purchase(address, self.reward_amount, now)
            except CustomerNotRegisteredError as e:
                logger.critical(
                    "Reward transferred but not recorded: recipient=%s tx=%s block=%s amount=%s",
                    address, confirmation.tx_hash, confirmation.block_number, self.reward_amount,
                )
                raise InternalInconsistencyError(
                    f"Reward transferred in {confirmation.tx_hash} but the customer record is missing"
                ) from e
            sequence_id = self.transactions.append(draft)
            transaction = self.transactions.get(sequence_id)

        return RewardReceipt(
            reward=RewardSummary(
                amount=format_amount(self.reward_amount, metadata.symbol),
                recipient=address,
                tx_hash=confirmation.tx_hash,
                explorer_url=f"{self.explorer_tx_url}{confirmation.tx_hash}",
            ),
            transaction=transaction,
            customer_stats=CustomerStats(
                total_purchases=customer.purchase_count,
                total_rewards=format_amount(customer.total_rewards, metadata.symbol),
            ),
        )

    def get_customer(self, wallet_address: str) -> CustomerDetail:
        address = normalize_address(wallet_address)
        with self._bookkeeping_lock:
            record = self.registry.get(address)
            transactions = self.transactions.list_for(address)
        if record is None:
            raise CustomerNotRegisteredError("Customer not found")
        return CustomerDetail(customer=record, transactions=transactions)

    def list_transactions(self, limit: int = DEFAULT_TRANSACTION_LIMIT) -> TransactionHistory:
        with self._bookkeeping_lock:
            total = len(self.transactions)
            recent = self.transactions.list_recent(limit)
        return TransactionHistory(total=total, transactions=recent)

    def get_business_status(self) -> BusinessStatus:
        metadata = self.ledger.get_token_metadata()
        token_balance = self.ledger.get_token_balance(self.ledger.address)
        native_balance = self.ledger.get_native_balance(self.ledger.address)
        with self._bookkeeping_lock:
            total_customers = len(self.registry)
            total_transactions = len(self.transactions)
        return BusinessStatus(
            business_wallet=self.ledger.address,
            balances=Balances(
                token=format_amount(token_balance, metadata.symbol),
                native=format_amount(native_balance, self.native_symbol),
            ),
            total_customers=total_customers,
            total_transactions=total_transactions,
        )

    def _validated_address(self, wallet_address) -> str:
        if not is_valid_address(wallet_address):
            raise InvalidAddressError()
        return normalize_address(wallet_address)

    def _validated_purchase(self, purchase_id, purchase_amount):
        if purchase_id is not None and (
            isinstance(purchase_id, bool) or not isinstance(purchase_id, (int, str))
        ):
            raise InvalidInputError("purchaseId must be a string or an integer")
        if purchase_amount is None:
            return purchase_id, None
        if isinstance(purchase_amount, bool):
            raise InvalidInputError("purchaseAmount must be a number")
        try:
            amount = Decimal(str(purchase_amount))
        except InvalidOperation as e:
            raise InvalidInputError("purchaseAmount must be a number") from e
        if not amount.is_finite() or amount < 0:
            raise InvalidInputError("purchaseAmount must be a non-negative number")
        return purchase_id, amount

    def _needs_registration(self, address: str) -> bool:
        if address in self.registry:
            return False
        if self.registration_policy is RegistrationPolicy.STRICT:
            raise CustomerNotRegisteredError()
        return True

    def _auto_register(self, address: str) -> None:
        try:
            self.registry.register(address)
            logger.info("Wallet auto-registered on first reward: %s", address)
        except AlreadyRegisteredError:
            # registered by a concurrent request
            pass
