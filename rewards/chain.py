"""
ERC-20 reward token access over a JSON-RPC node.

TokenLedgerClient is the only code that talks to the chain. Raw web3 /
transport failures are turned into the tagged errors of `rewards.errors`
here, so callers never inspect node error text.
"""

import logging
import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import requests
from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception

from .errors import (
    ChainError,
    ChainUnavailableError,
    ConfirmationTimeoutError,
    InsufficientGasError,
    InsufficientTokenBalanceError,
    NonceConflictError,
    TransferRevertedError,
)
from .models import Confirmation, PendingTransfer, TokenMetadata

logger = logging.getLogger(__name__)

ERC20_ABI = [
    {
        "name": "transfer", "type": "function", "stateMutability": "nonpayable",
        "inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "balanceOf", "type": "function", "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "decimals", "type": "function", "stateMutability": "view",
        "inputs": [], "outputs": [{"name": "", "type": "uint8"}],
    },
    {
        "name": "symbol", "type": "function", "stateMutability": "view",
        "inputs": [], "outputs": [{"name": "", "type": "string"}],
    },
]

# Lower-cased fragments of node / contract error text, checked in order.
_GAS_PATTERNS = ("insufficient funds", "gas required exceeds allowance")
_TOKEN_BALANCE_PATTERNS = (
    "transfer amount exceeds balance",
    "erc20insufficientbalance",
    "0xe450d38c",  # ERC20InsufficientBalance(address,uint256) selector
)
_NONCE_PATTERNS = ("nonce",)

TRANSPORT_ERRORS = (Web3Exception, requests.RequestException, ValueError, OSError)


def classify_chain_error(exc: Exception, tx_hash: Optional[str] = None) -> ChainError:
    """Map a raw client exception onto the chain error taxonomy."""
    if isinstance(exc, ChainError):
        return exc
    raw = str(exc) or exc.__class__.__name__
    text = raw.lower()
    if any(p in text for p in _GAS_PATTERNS):
        return InsufficientGasError(tx_hash=tx_hash)
    if any(p in text for p in _TOKEN_BALANCE_PATTERNS):
        return InsufficientTokenBalanceError(tx_hash=tx_hash)
    if any(p in text for p in _NONCE_PATTERNS):
        return NonceConflictError(tx_hash=tx_hash)
    return ChainUnavailableError(raw, tx_hash=tx_hash)


def to_base_units(amount: Decimal, decimals: int) -> int:
    units = Decimal(amount).scaleb(decimals)
    if units != units.to_integral_value():
        raise ValueError(f"{amount} has more than {decimals} decimal places")
    return int(units)


def from_base_units(raw: int, decimals: int) -> Decimal:
    return Decimal(raw).scaleb(-decimals)


def format_amount(amount: Decimal, symbol: str) -> str:
    return f"{Decimal(amount).normalize():f} {symbol}"


class TokenLedgerClient:
    def __init__(
        self,
        w3: Web3,
        private_key: str,
        contract_address: str,
        confirmation_timeout: float = 120.0,
        poll_interval: float = 2.0,
    ):
        self._w3 = w3
        self._account = Account.from_key(private_key)
        self.address = self._account.address
        self.contract_address = Web3.to_checksum_address(contract_address)
        self._contract = w3.eth.contract(address=self.contract_address, abi=ERC20_ABI)
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval
        self._metadata: Optional[TokenMetadata] = None
        # One in-flight submission per custodial wallet keeps nonces ordered.
        self._submit_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "TokenLedgerClient":
        settings.require_chain_credentials()
        w3 = Web3(Web3.HTTPProvider(settings.rpc_url))
        return cls(
            w3,
            settings.business_private_key.get_secret_value(),
            settings.token_contract_address,
            confirmation_timeout=settings.confirmation_timeout,
            poll_interval=settings.confirmation_poll_interval,
        )

    def get_chain_id(self) -> int:
        try:
            return int(self._w3.eth.chain_id)
        except TRANSPORT_ERRORS as e:
            raise classify_chain_error(e) from e

    def get_token_metadata(self) -> TokenMetadata:
        if self._metadata is None:
            try:
                decimals = self._contract.functions.decimals().call()
                symbol = self._contract.functions.symbol().call()
            except TRANSPORT_ERRORS as e:
                raise ChainUnavailableError(str(e) or "Could not read token metadata") from e
            self._metadata = TokenMetadata(decimals=int(decimals), symbol=str(symbol))
        return self._metadata

    def get_token_balance(self, address: str) -> Decimal:
        metadata = self.get_token_metadata()
        try:
            raw = self._contract.functions.balanceOf(Web3.to_checksum_address(address)).call()
        except TRANSPORT_ERRORS as e:
            raise ChainUnavailableError(str(e) or "Could not read token balance") from e
        return from_base_units(raw, metadata.decimals)

    def get_native_balance(self, address: str) -> Decimal:
        try:
            wei = self._w3.eth.get_balance(Web3.to_checksum_address(address))
        except TRANSPORT_ERRORS as e:
            raise ChainUnavailableError(str(e) or "Could not read native balance") from e
        return Decimal(Web3.from_wei(wei, "ether"))

    def transfer_tokens(self, to_address: str, amount: Decimal) -> PendingTransfer:
        metadata = self.get_token_metadata()
        try:
            units = to_base_units(amount, metadata.decimals)
        except ValueError as e:
            raise ChainError(f"Reward amount not representable in {metadata.symbol}: {e}") from e
        recipient = Web3.to_checksum_address(to_address)

        with self._submit_lock:
            try:
                nonce = self._w3.eth.get_transaction_count(self.address, "pending")
                tx = self._contract.functions.transfer(recipient, units).build_transaction({
                    "from": self.address,
                    "nonce": nonce,
                    "chainId": self._w3.eth.chain_id,
                })
                signed = self._account.sign_transaction(tx)
                tx_hash = Web3.to_hex(self._w3.eth.send_raw_transaction(signed.raw_transaction))
            except TRANSPORT_ERRORS as e:
                error = classify_chain_error(e)
                logger.error("Transfer submission to %s failed: %s", recipient, error.message)
                raise error from e

        logger.info("Transfer submitted: %s (nonce %s)", tx_hash, nonce)
        return PendingTransfer(
            tx_hash=tx_hash,
            recipient=recipient,
            amount=Decimal(amount),
            nonce=nonce,
            submitted_at=datetime.now(timezone.utc),
        )

    def await_confirmation(self, pending: PendingTransfer) -> Confirmation:
        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(
                pending.tx_hash,
                timeout=self.confirmation_timeout,
                poll_latency=self.poll_interval,
            )
        except TimeExhausted as e:
            raise ConfirmationTimeoutError(
                f"Transaction {pending.tx_hash} not confirmed after {self.confirmation_timeout}s",
                tx_hash=pending.tx_hash,
            ) from e
        except TRANSPORT_ERRORS as e:
            raise ChainUnavailableError(str(e) or "Node unreachable while waiting", tx_hash=pending.tx_hash) from e

        if receipt["status"] != 1:
            raise TransferRevertedError(tx_hash=pending.tx_hash)
        return Confirmation(
            tx_hash=pending.tx_hash,
            block_number=int(receipt["blockNumber"]),
            gas_used=int(receipt["gasUsed"]),
        )
