"""
Transaction records and the write lifecycle shared by both coordinators.

    IDLE ──dispatch──▶ SUBMITTED ──accepted──▶ AWAITING_CONFIRMATION ──▶ CONFIRMED
      │                    │                          │
      └────────────────────┴──────────────────────────┴──────────────▶ FAILED

CONFIRMED and FAILED are terminal. Every transition is published as a
:class:`TransactionEvent` for the workflow to consume; the coordinators never
reach into workflow state themselves.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from spraay_batch.errors import (
    InvalidTransitionError,
    TransactionError,
    TransactionLookupError,
    TransactionRevertedError,
    UserRejectedError,
)
from spraay_batch.ledger import Confirmation, LedgerWriteService, PendingTransaction
from spraay_batch.logging_config import get_logger

logger = get_logger("transactions")


class TxKind(Enum):
    APPROVAL = "approval"
    TRANSFER = "transfer"


class TxStatus(Enum):
    IDLE = "idle"
    SUBMITTED = "submitted"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class ErrorKind(Enum):
    USER_REJECTED = "user_rejected"
    REVERTED = "reverted"
    SUBMISSION_FAILED = "submission_failed"


_TRANSITIONS: dict[TxStatus, frozenset[TxStatus]] = {
    TxStatus.IDLE: frozenset({TxStatus.SUBMITTED, TxStatus.FAILED}),
    TxStatus.SUBMITTED: frozenset({TxStatus.AWAITING_CONFIRMATION, TxStatus.FAILED}),
    TxStatus.AWAITING_CONFIRMATION: frozenset({TxStatus.CONFIRMED, TxStatus.FAILED}),
    TxStatus.CONFIRMED: frozenset(),
    TxStatus.FAILED: frozenset(),
}

_IN_FLIGHT = frozenset({TxStatus.SUBMITTED, TxStatus.AWAITING_CONFIRMATION})


@dataclass
class TransactionRecord:
    kind: TxKind
    status: TxStatus = TxStatus.IDLE
    hash: Optional[str] = None
    error: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.status]

    @property
    def in_flight(self) -> bool:
        return self.status in _IN_FLIGHT

    def transition(
        self,
        status: TxStatus,
        *,
        tx_hash: Optional[str] = None,
        error: Optional[ErrorKind] = None,
        error_message: Optional[str] = None,
    ) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(f"{self.kind.value} transaction", self.status.value, status.value)
        self.status = status
        if tx_hash:
            self.hash = tx_hash
        if status is TxStatus.FAILED:
            self.error = error
            self.error_message = error_message

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "status": self.status.value,
            "hash": self.hash,
            "error": self.error.value if self.error else None,
            "error_message": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransactionRecord":
        return cls(
            kind=TxKind(data["kind"]),
            status=TxStatus(data["status"]),
            hash=data.get("hash"),
            error=ErrorKind(data["error"]) if data.get("error") else None,
            error_message=data.get("error_message"),
        )


@dataclass(frozen=True)
class TransactionEvent:
    kind: TxKind
    status: TxStatus
    hash: Optional[str] = None
    error: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    @classmethod
    def of(cls, record: TransactionRecord) -> "TransactionEvent":
        return cls(record.kind, record.status, record.hash, record.error, record.error_message)


EventPublisher = Callable[[TransactionEvent], None]


def _move(record: TransactionRecord, publish: EventPublisher, status: TxStatus, **kwargs) -> None:
    record.transition(status, **kwargs)
    logger.info(
        "%s transaction %s", record.kind.value, status.value,
        extra={"tx_kind": record.kind, "tx_status": status, "tx_hash": record.hash,
               "tx_error": record.error},
    )
    publish(TransactionEvent.of(record))


def _error_kind(exc: BaseException) -> ErrorKind:
    if isinstance(exc, UserRejectedError):
        return ErrorKind.USER_REJECTED
    if isinstance(exc, TransactionRevertedError):
        return ErrorKind.REVERTED
    return ErrorKind.SUBMISSION_FAILED


def apply_confirmation(record: TransactionRecord, publish: EventPublisher,
                       confirmation: Confirmation) -> TransactionRecord:
    if confirmation.success:
        _move(record, publish, TxStatus.CONFIRMED, tx_hash=confirmation.hash)
    else:
        _move(record, publish, TxStatus.FAILED, tx_hash=confirmation.hash,
              error=ErrorKind.REVERTED,
              error_message=confirmation.error or "Transaction failed")
    return record


async def execute_write(
    record: TransactionRecord,
    writer: LedgerWriteService,
    publish: EventPublisher,
    *,
    contract: str,
    selector: str,
    args: Sequence[Any],
    value: int = 0,
) -> TransactionRecord:
    """
    Drive ``record`` through one write. Ledger failures end in FAILED and are
    returned, not raised. A confirmation whose outcome cannot be determined
    raises TransactionLookupError and leaves the record AWAITING_CONFIRMATION.
    """
    _move(record, publish, TxStatus.SUBMITTED)

    try:
        handle = await writer.submit(contract, selector, args, value)
    except Exception as e:
        # Nothing was broadcast; the write can be retried with a fresh record.
        logger.warning("%s submission failed: %s", record.kind.value, e)
        _move(record, publish, TxStatus.FAILED, error=_error_kind(e), error_message=str(e))
        return record

    _move(record, publish, TxStatus.AWAITING_CONFIRMATION, tx_hash=handle.hash)

    try:
        confirmation = await writer.await_confirmation(handle)
    except TransactionLookupError:
        raise
    except TransactionError as e:
        _move(record, publish, TxStatus.FAILED, error=_error_kind(e), error_message=str(e))
        return record

    return apply_confirmation(record, publish, confirmation)


async def reconcile(
    record: TransactionRecord, writer: LedgerWriteService, publish: EventPublisher
) -> TransactionRecord:
    """Re-query an in-flight record by hash after a resume."""
    if not record.in_flight:
        return record
    if not record.hash:
        raise TransactionLookupError(None)
    if record.status is TxStatus.SUBMITTED:
        _move(record, publish, TxStatus.AWAITING_CONFIRMATION)
    confirmation = await writer.await_confirmation(PendingTransaction(hash=record.hash))
    return apply_confirmation(record, publish, confirmation)
