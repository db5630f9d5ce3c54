from typing import Optional


class RewardServiceError(Exception):
    """Base class; `kind` is the tag reported to API clients."""

    kind = "RewardServiceError"
    default_message = "Reward service error"

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidAddressError(RewardServiceError):
    kind = "InvalidAddress"
    default_message = "Invalid wallet address"


class InvalidInputError(RewardServiceError):
    kind = "InvalidInput"
    default_message = "Invalid request input"


class AlreadyRegisteredError(RewardServiceError):
    kind = "AlreadyRegistered"
    default_message = "This wallet is already registered"


class CustomerNotRegisteredError(RewardServiceError):
    kind = "CustomerNotRegistered"
    default_message = "Wallet not registered. Please register your wallet first."


class ChainError(RewardServiceError):
    kind = "ChainError"
    default_message = "Blockchain error"

    def __init__(self, message: str = "", tx_hash: Optional[str] = None):
        super().__init__(message)
        # Set once the transfer has been broadcast and may still land.
        self.tx_hash = tx_hash


class ChainUnavailableError(ChainError):
    kind = "ChainUnavailable"
    default_message = "Blockchain node unavailable"


class NonceConflictError(ChainUnavailableError):
    default_message = "Synchronization error. Please try again."


class InsufficientGasError(ChainError):
    kind = "InsufficientGas"
    default_message = "The business wallet does not have enough native balance to pay for gas"


class InsufficientTokenBalanceError(ChainError):
    kind = "InsufficientTokenBalance"
    default_message = "The business wallet does not have enough reward tokens"


class ConfirmationTimeoutError(ChainError):
    kind = "ConfirmationTimeout"
    default_message = "Timed out waiting for transaction confirmation"


class TransferRevertedError(ChainError):
    kind = "TransferReverted"
    default_message = "The token transfer was reverted on-chain"


class InternalInconsistencyError(RewardServiceError):
    kind = "InternalInconsistency"
    default_message = "Reward was transferred on-chain but could not be recorded"
