"""
Typed exceptions for Spraay Batch.

Every error carries a machine-readable ``code`` and the structured data
needed to explain it, so callers catch by type instead of parsing messages.

    BatchTransferError
    |
    +-- ConfigurationError
    |   +-- UnknownAssetError
    |
    +-- ValidationError
    |   +-- MalformedAmountError
    |
    +-- SubmissionBlockedError
    |   +-- WalletNotConnectedError
    |   +-- NetworkMismatchError
    |   +-- ContractPausedError
    |   +-- InsufficientFundsError
    |   +-- ApprovalRequiredError
    |   +-- ApprovalNotRequiredError
    |   +-- TransactionPendingError
    |
    +-- TransactionError
    |   +-- UserRejectedError
    |   +-- TransactionRevertedError
    |   +-- TransactionSubmissionError
    |   +-- TransactionLookupError
    |
    +-- LedgerQueryError
    |
    +-- UnsupportedOperationError
    |
    +-- WorkflowStateError
        +-- InvalidTransitionError

Submission-blocking errors are raised before anything reaches the ledger.
Transaction errors originate from the ledger write service; any other
failure of the query service surfaces as LedgerQueryError.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence


class BatchTransferError(Exception):
    """Base exception for all batch transfer errors."""

    code: str = "BATCH_TRANSFER_ERROR"


# ── Configuration ────────────────────────────────────────────────


class ConfigurationError(BatchTransferError):
    """Static network/asset configuration is unusable."""

    code: str = "CONFIGURATION_ERROR"


class UnknownAssetError(ConfigurationError):
    code: str = "UNKNOWN_ASSET"

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"Unknown asset: {symbol}")


# ── Validation ───────────────────────────────────────────────────


class IssueReason(Enum):
    """Why a recipient row failed validation."""

    EMPTY_BATCH = "empty_batch"
    MISSING_FIELD = "missing_field"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_ADDRESS = "invalid_address"
    TOO_MANY_RECIPIENTS = "too_many_recipients"


@dataclass(frozen=True)
class RecipientIssue:
    """One failing row. ``index`` is 0-based; ``None`` for batch-level issues."""

    reason: IssueReason
    message: str
    index: Optional[int] = None
    recipient_id: Optional[str] = None


class ValidationError(BatchTransferError):
    """User-fixable input problem. Blocks step advance only."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, issues: Sequence[RecipientIssue] = ()):
        self.issues = tuple(issues)
        super().__init__(message)

    @property
    def reason(self) -> Optional[IssueReason]:
        return self.issues[0].reason if self.issues else None

    @property
    def failing_rows(self) -> list[int]:
        return [i.index for i in self.issues if i.index is not None]


class MalformedAmountError(ValidationError):
    code: str = "MALFORMED_AMOUNT"

    def __init__(self, amount: object, precision: int, detail: str):
        self.amount = amount
        self.precision = precision
        super().__init__(f"Invalid amount {amount!r}: {detail}")


# ── Submission preconditions ─────────────────────────────────────


class SubmissionBlockedError(BatchTransferError):
    """A precondition failed; no transaction was issued."""

    code: str = "SUBMISSION_BLOCKED"


class WalletNotConnectedError(SubmissionBlockedError):
    code: str = "WALLET_NOT_CONNECTED"

    def __init__(self):
        super().__init__("Please connect your wallet")


class NetworkMismatchError(SubmissionBlockedError):
    code: str = "NETWORK_MISMATCH"

    def __init__(self, expected: object, actual: object, network_name: str = ""):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Please switch to {network_name or expected} "
            f"(connected to {actual})"
        )


class ContractPausedError(SubmissionBlockedError):
    code: str = "CONTRACT_PAUSED"

    def __init__(self, contract: str):
        self.contract = contract
        super().__init__("Contract is currently paused")


class InsufficientFundsError(SubmissionBlockedError):
    code: str = "INSUFFICIENT_FUNDS"

    def __init__(self, symbol: str, required: int, available: int):
        self.symbol = symbol
        self.required = required
        self.available = available
        super().__init__(f"Insufficient {symbol} balance")


class ApprovalRequiredError(SubmissionBlockedError):
    code: str = "APPROVAL_REQUIRED"

    def __init__(self, symbol: str, required: int, allowance: int):
        self.symbol = symbol
        self.required = required
        self.allowance = allowance
        super().__init__("Please approve token spending first")


class ApprovalNotRequiredError(SubmissionBlockedError):
    code: str = "APPROVAL_NOT_REQUIRED"

    def __init__(self, symbol: str, reason: str):
        self.symbol = symbol
        super().__init__(f"No {symbol} approval needed: {reason}")


class TransactionPendingError(SubmissionBlockedError):
    code: str = "TRANSACTION_PENDING"

    def __init__(self, kind: str, tx_hash: Optional[str] = None):
        self.kind = kind
        self.tx_hash = tx_hash
        super().__init__(f"A {kind} transaction is still pending")


# ── Ledger write failures ────────────────────────────────────────


class TransactionError(BatchTransferError):
    """Raised or recorded for failures coming back from the ledger."""

    code: str = "TRANSACTION_ERROR"


class UserRejectedError(TransactionError):
    code: str = "USER_REJECTED"

    def __init__(self, message: str = "User rejected the request"):
        super().__init__(message)


class TransactionRevertedError(TransactionError):
    code: str = "TRANSACTION_REVERTED"

    def __init__(self, tx_hash: Optional[str], reason: str):
        self.tx_hash = tx_hash
        self.reason = reason
        super().__init__(reason or "Transaction failed")


class TransactionSubmissionError(TransactionError):
    code: str = "TRANSACTION_SUBMISSION_FAILED"


class TransactionLookupError(TransactionError):
    code: str = "TRANSACTION_LOOKUP_FAILED"

    def __init__(self, tx_hash: Optional[str]):
        self.tx_hash = tx_hash
        super().__init__(f"Cannot determine status of transaction {tx_hash}")


# ── Misc ─────────────────────────────────────────────────────────


class LedgerQueryError(BatchTransferError):
    """A ledger read could not be completed."""

    code: str = "LEDGER_QUERY_FAILED"


class UnsupportedOperationError(BatchTransferError):
    code: str = "UNSUPPORTED_OPERATION"


class WorkflowStateError(BatchTransferError):
    code: str = "WORKFLOW_STATE_ERROR"


class InvalidTransitionError(WorkflowStateError):
    code: str = "INVALID_TRANSITION"

    def __init__(self, subject: str, current: object, target: object):
        self.subject = subject
        self.current = current
        self.target = target
        super().__init__(f"{subject}: cannot move from {current} to {target}")
