"""Closed failure taxonomy for the trade pipeline."""
from __future__ import annotations

from enum import Enum
from typing import Optional


class FailureReason(str, Enum):
    # on-chain reasons produced by the error classifier
    OWNER_NOT_ALLOWED = 'owner-not-allowed'
    INSUFFICIENT_FUNDS = 'insufficient-funds'
    SLIPPAGE_EXCEEDED_INPUT = 'slippage-exceeded-input'
    SLIPPAGE_EXCEEDED_OUTPUT = 'slippage-exceeded-output'
    UNKNOWN_INSTRUCTION_ERROR = 'unknown-instruction-error'
    UNCLASSIFIED_ERROR = 'unclassified-error'
    # pipeline reasons
    NO_ROUTE = 'no-route'
    QUOTE_UNAVAILABLE = 'quote-unavailable'
    BUILD_FAILURE = 'build-failure'
    RELAY_REJECTED = 'relay-rejected'
    CONFIRMATION_TIMEOUT = 'confirmation-timeout'
    WALLET_UNAVAILABLE = 'wallet-unavailable'
    NO_BALANCE = 'no-balance'
    BALANCE_UNAVAILABLE = 'balance-unavailable'
    UNSUPPORTED_CURRENCY = 'unsupported-currency'

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    FailureReason.OWNER_NOT_ALLOWED: "Provided owner is not allowed",
    FailureReason.INSUFFICIENT_FUNDS: "custom program error: insufficient funds",
    FailureReason.SLIPPAGE_EXCEEDED_INPUT: "slippage: Too much SOL required to buy the given amount of tokens.",
    FailureReason.SLIPPAGE_EXCEEDED_OUTPUT: "slippage: Too little SOL received to sell the given amount of tokens.",
    FailureReason.UNKNOWN_INSTRUCTION_ERROR: "Unknown instruction error",
    FailureReason.UNCLASSIFIED_ERROR: "Not known Error",
    FailureReason.NO_ROUTE: "No swap route available for this pair",
    FailureReason.QUOTE_UNAVAILABLE: "Swap quote service unavailable",
    FailureReason.BUILD_FAILURE: "Could not build the swap transaction",
    FailureReason.RELAY_REJECTED: "Transaction was not accepted by the network",
    FailureReason.CONFIRMATION_TIMEOUT: "Transaction could not be confirmed in time",
    FailureReason.WALLET_UNAVAILABLE: "Wallet not found",
    FailureReason.NO_BALANCE: "Token not found in wallet",
    FailureReason.BALANCE_UNAVAILABLE: "Could not load wallet balances",
    FailureReason.UNSUPPORTED_CURRENCY: "Unsupported trade currency",
}


class InsufficientDataError(ValueError):
    """Raised when a price window is too short to compute indicators."""

    def __init__(self, available: int, required: int) -> None:
        super().__init__(f"Not enough price data for calculations ({available}/{required} samples)")
        self.available = available
        self.required = required


class RpcError(RuntimeError):
    """JSON-RPC level failure reported by a node."""


class TradeError(Exception):
    reason: FailureReason = FailureReason.UNCLASSIFIED_ERROR

    def __init__(self, detail: str = "", *, signature: Optional[str] = None) -> None:
        super().__init__(detail or self.reason.description)
        self.detail = detail
        self.signature = signature


class NoRouteError(TradeError):
    reason = FailureReason.NO_ROUTE


class QuoteUnavailableError(TradeError):
    reason = FailureReason.QUOTE_UNAVAILABLE


class BuildFailureError(TradeError):
    reason = FailureReason.BUILD_FAILURE


class RelayRejectedError(TradeError):
    reason = FailureReason.RELAY_REJECTED


class ConfirmationTimeoutError(TradeError):
    reason = FailureReason.CONFIRMATION_TIMEOUT


class OnChainError(TradeError):
    """Transaction landed but failed; carries the classified reason."""

    def __init__(self, reason: FailureReason, raw_error: object, *, signature: Optional[str] = None) -> None:
        super().__init__(f"Transaction failed: {raw_error}", signature=signature)
        self.reason = reason
        self.raw_error = raw_error
