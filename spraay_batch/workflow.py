"""
The batch payment workflow: Setup → Review → Complete.

    SETUP ──review()──▶ REVIEW ──submit() confirmed──▶ COMPLETE
      ▲                   │  ▲                            │
      └──────back()───────┘  └─approve() (stays REVIEW)   │
      ▲                                                   │
      └──────────────────────new_batch()──────────────────┘

The coordinators publish every transaction transition onto ``events``.
After each command the workflow drains that queue and applies the
consequences explicitly: an approval confirmation re-reads the allowance,
a transfer confirmation records the completion and re-reads the balance.

A failed guard or transaction produces exactly one error notification,
is kept in ``last_error`` and leaves the step where it was. Nothing is
retried automatically.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional

from spraay_batch.addresses import AddressValidator, address_validator_for
from spraay_batch.amounts import format_amount, parse_positive_amount
from spraay_batch.approval import ApprovalCoordinator
from spraay_batch.config import BatchConfig, TokenAsset
from spraay_batch.errors import (
    BatchTransferError,
    InvalidTransitionError,
    TransactionLookupError,
    TransactionPendingError,
    TransactionRevertedError,
    TransactionSubmissionError,
    UserRejectedError,
    WorkflowStateError,
)
from spraay_batch.gatekeeper import (
    ApprovalState,
    Gatekeeper,
    LedgerSnapshot,
    approval_state_for,
    can_submit,
)
from spraay_batch.ledger import (
    LedgerQueryService,
    LedgerWriteService,
    Notification,
    NotificationSink,
    Sender,
    Severity,
)
from spraay_batch.logging_config import get_logger
from spraay_batch.recipients import (
    ImportRow,
    Recipient,
    RecipientList,
    TransferBatch,
    export_csv,
    validate_recipients,
)
from spraay_batch.transactions import (
    ErrorKind,
    TransactionEvent,
    TransactionRecord,
    TxKind,
    TxStatus,
    reconcile,
)
from spraay_batch.transfer import TransferCoordinator

logger = get_logger("workflow")


class WorkflowStep(Enum):
    SETUP = "setup"
    REVIEW = "review"
    COMPLETE = "complete"


@dataclass(frozen=True)
class CompletionRecord:
    """Permanent record of a confirmed batch, used for the receipt and CSV export."""

    transfer_hash: Optional[str]
    approval_hash: Optional[str]
    asset: TokenAsset
    addresses: tuple[str, ...]
    amounts: tuple[int, ...]
    total_amount: int
    explorer_url: Optional[str] = None

    @property
    def recipient_count(self) -> int:
        return len(self.addresses)

    def rows(self) -> list[tuple[str, str]]:
        return [
            (address, format_amount(amount, self.asset.decimals))
            for address, amount in zip(self.addresses, self.amounts)
        ]

    def to_csv(self) -> str:
        return export_csv(self.rows())

    def summary(self) -> str:
        """Human-readable receipt."""
        total = format_amount(self.total_amount, self.asset.decimals, 6)
        lines = [
            "=== Spraay Batch Transfer — COMPLETE ===",
            f"Recipients: {self.recipient_count}",
            f"Total amount: {total} {self.asset.symbol}",
        ]
        if self.approval_hash:
            lines.append(f"Approval hash: {self.approval_hash}")
        if self.transfer_hash:
            lines.append(f"Transaction hash: {self.transfer_hash}")
        if self.explorer_url:
            lines.append(f"Explorer: {self.explorer_url}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "transfer_hash": self.transfer_hash,
            "approval_hash": self.approval_hash,
            "asset": self.asset.symbol,
            "addresses": list(self.addresses),
            "amounts": [str(a) for a in self.amounts],
            "total_amount": str(self.total_amount),
            "explorer_url": self.explorer_url,
        }


def log_notification(notification: Notification) -> None:
    """Default sink: notifications are already logged by the workflow."""


class BatchWorkflow:
    """One batch payment from recipient entry to confirmed settlement."""

    def __init__(
        self,
        config: BatchConfig,
        ledger: LedgerQueryService,
        writer: LedgerWriteService,
        *,
        notify: Optional[NotificationSink] = None,
        address_validator: Optional[AddressValidator] = None,
        asset_symbol: Optional[str] = None,
    ):
        self.config = config
        self.writer = writer
        self.notify = notify if notify is not None else log_notification
        self.address_validator = address_validator or address_validator_for(config)

        self.events: asyncio.Queue[TransactionEvent] = asyncio.Queue()
        self.gatekeeper = Gatekeeper(config, ledger)
        self.approvals = ApprovalCoordinator(config, writer, self.events.put_nowait)
        self.transfers = TransferCoordinator(config, self.gatekeeper, writer, self.events.put_nowait)
        self._write_lock = asyncio.Lock()

        self.step = WorkflowStep.SETUP
        self.asset = config.asset(asset_symbol) if asset_symbol else config.default_asset
        self.recipients = RecipientList()
        self.sender: Optional[Sender] = None
        self.batch: Optional[TransferBatch] = None
        self.snapshot: Optional[LedgerSnapshot] = None
        self.approval_state: Optional[ApprovalState] = None
        self.completion: Optional[CompletionRecord] = None
        self.last_error: Optional[BatchTransferError] = None

    # ── Notifications ────────────────────────────────────────────

    def _emit(self, severity: Severity, message: str) -> None:
        log = logger.error if severity is Severity.ERROR else logger.info
        log("Notification: %s", message, extra={"step": self.step})
        self.notify(Notification(severity=severity, message=message))

    def _fail(self, error: BatchTransferError) -> None:
        self.last_error = error
        self._emit(Severity.ERROR, str(error))

    def _info(self, message: str) -> None:
        self._emit(Severity.INFO, message)

    def _set_step(self, step: WorkflowStep) -> None:
        if step is not self.step:
            logger.info("Workflow %s -> %s", self.step.value, step.value)
        self.step = step

    def _require_step(self, *steps: WorkflowStep) -> None:
        if self.step not in steps:
            raise WorkflowStateError(f"Not allowed during the {self.step.value} step")

    # ── Records ──────────────────────────────────────────────────

    @property
    def approval_record(self) -> Optional[TransactionRecord]:
        return self.approvals.record

    @property
    def transfer_record(self) -> Optional[TransactionRecord]:
        return self.transfers.record

    def _pending_record(self) -> Optional[TransactionRecord]:
        for record in (self.approvals.record, self.transfers.record):
            if record is not None and record.in_flight:
                return record
        return None

    # ── Setup commands ───────────────────────────────────────────

    def select_asset(self, symbol: str) -> TokenAsset:
        self._require_step(WorkflowStep.SETUP)
        self.asset = self.config.asset(symbol)
        self.snapshot = None
        self.approval_state = None
        return self.asset

    def connect(self, address: Optional[str], network_id: Any) -> Sender:
        self.sender = Sender(address=address, network_id=network_id)
        self.snapshot = None
        return self.sender

    def disconnect(self) -> None:
        self.sender = None
        self.snapshot = None

    def add_recipient(self, address: str = "", amount: str = "") -> Recipient:
        self._require_step(WorkflowStep.SETUP)
        return self.recipients.add(address, amount)

    def remove_recipient(self, recipient_id: str) -> Recipient:
        self._require_step(WorkflowStep.SETUP)
        return self.recipients.remove(recipient_id)

    def update_recipient(self, recipient_id: str, *, address: Optional[str] = None,
                         amount: Optional[str] = None) -> Recipient:
        self._require_step(WorkflowStep.SETUP)
        return self.recipients.update(recipient_id, address=address, amount=amount)

    def import_recipients(self, rows: Iterable[ImportRow]) -> bool:
        """Replace the list with rows from an import source."""
        self._require_step(WorkflowStep.SETUP)
        try:
            count = self.recipients.replace_from(rows)
        except BatchTransferError as e:
            self._fail(e)
            return False
        self._info(f"Imported {count} recipients.")
        return True

    # ── Transitions ──────────────────────────────────────────────

    def review(self) -> bool:
        """SETUP → REVIEW when every recipient validates."""
        if self.step is not WorkflowStep.SETUP:
            self._fail(InvalidTransitionError("workflow", self.step.value, WorkflowStep.REVIEW.value))
            return False
        try:
            self.batch = validate_recipients(
                self.recipients.snapshot(),
                self.asset,
                self.address_validator,
                self.config.max_recipients,
            )
        except BatchTransferError as e:
            self._fail(e)
            return False
        if self.snapshot is not None:
            self.approval_state = approval_state_for(self.batch, self.snapshot.allowance)
        self._set_step(WorkflowStep.REVIEW)
        return True

    def back(self) -> bool:
        """REVIEW → SETUP. Recipients are kept."""
        if self.step is not WorkflowStep.REVIEW:
            self._fail(InvalidTransitionError("workflow", self.step.value, WorkflowStep.SETUP.value))
            return False
        # A settled approval belongs to the batch being edited away.
        if self.approvals.record is not None and self.approvals.record.is_terminal:
            self.approvals.reset()
        self._set_step(WorkflowStep.SETUP)
        return True

    def new_batch(self) -> bool:
        """Start over with an empty list and a fresh pair of transaction records."""
        if self._write_lock.locked():
            self._fail(TransactionPendingError("batch"))
            return False
        self.recipients.clear()
        self.approvals.reset()
        self.transfers.reset()
        while not self.events.empty():
            self.events.get_nowait()
        self.batch = None
        self.approval_state = None
        self.completion = None
        self.last_error = None
        self._set_step(WorkflowStep.SETUP)
        return True

    # ── Ledger reads ─────────────────────────────────────────────

    async def _refresh_snapshot(self) -> LedgerSnapshot:
        owner = self.transfers.check_sender(self.sender)
        self.snapshot = await self.gatekeeper.snapshot(self.asset, owner)
        if self.batch is not None:
            self.approval_state = approval_state_for(self.batch, self.snapshot.allowance)
        return self.snapshot

    async def refresh(self) -> Optional[LedgerSnapshot]:
        """Re-read balance, allowance and pause state for the connected sender."""
        try:
            return await self._refresh_snapshot()
        except BatchTransferError as e:
            self._fail(e)
            return None

    # ── Writes ───────────────────────────────────────────────────

    def _guard_write(self) -> None:
        pending = self._pending_record()
        if self._write_lock.locked() or pending is not None:
            kind = pending.kind.value if pending else "batch"
            raise TransactionPendingError(kind, pending.hash if pending else None)

    async def approve(self, amount: Optional[str] = None) -> Optional[TransactionRecord]:
        """
        Request a spending authorization. Defaults to exactly the batch total;
        ``amount`` is a decimal string in the asset's units.
        """
        if self.step is not WorkflowStep.REVIEW or self.batch is None:
            self._fail(InvalidTransitionError("approval", self.step.value, "approve"))
            return None
        try:
            self._guard_write()
            async with self._write_lock:
                units = self.batch.total_amount if amount is None \
                    else parse_positive_amount(amount, self.asset.decimals)
                snap = await self._refresh_snapshot()
                decision = can_submit(self.batch, snap.balance, snap.allowance)
                record = await self.approvals.request_approval(self.asset, units, decision)
                await self._drain_events()
        except BatchTransferError as e:
            await self._drain_events()
            self._fail(e)
            return None
        return record

    async def submit(self) -> Optional[TransactionRecord]:
        """Submit the batch. REVIEW → COMPLETE once the transfer confirms."""
        if self.step is not WorkflowStep.REVIEW or self.batch is None:
            self._fail(InvalidTransitionError("workflow", self.step.value, WorkflowStep.COMPLETE.value))
            return None
        try:
            self._guard_write()
            async with self._write_lock:
                record = await self.transfers.submit_batch(self.batch, self.sender)
                await self._drain_events()
        except BatchTransferError as e:
            await self._drain_events()
            # A blocked submission still leaves fresh reads worth showing.
            if self.transfers.last_snapshot is not None and self._pending_record() is None:
                self.snapshot = self.transfers.last_snapshot
                self.approval_state = approval_state_for(self.batch, self.snapshot.allowance)
            self._fail(e)
            return None
        if record.status is TxStatus.FAILED:
            self.snapshot = None
        return record

    async def reconcile(self) -> bool:
        """
        Settle records left in flight by an interrupted session before anything
        new is submitted. Returns False while a record's outcome stays unknown.
        """
        try:
            for record in (self.approvals.record, self.transfers.record):
                if record is not None and record.in_flight:
                    await reconcile(record, self.writer, self.events.put_nowait)
                    await self._drain_events()
        except TransactionLookupError as e:
            await self._drain_events()
            self._fail(e)
            return False
        return True

    # ── Event handling ───────────────────────────────────────────

    async def _drain_events(self) -> None:
        while not self.events.empty():
            await self._handle(self.events.get_nowait())

    async def _handle(self, event: TransactionEvent) -> None:
        if event.status is TxStatus.FAILED:
            self._fail(_error_from_event(event))
        elif event.status is not TxStatus.CONFIRMED:
            logger.debug("%s %s", event.kind.value, event.status.value)
        elif event.kind is TxKind.APPROVAL:
            await self._on_approval_confirmed()
        else:
            await self._on_transfer_confirmed(event)

    async def _on_approval_confirmed(self) -> None:
        # The confirmed receipt says nothing about the allowance now on chain.
        if await self.refresh() is None:
            return
        if self.approval_state is not None and self.approval_state.required:
            self._info("Token approval confirmed, but the allowance still does not cover the batch.")
        else:
            self._info("Token approval confirmed! You can now submit the batch.")

    async def _on_transfer_confirmed(self, event: TransactionEvent) -> None:
        batch = self.batch
        approval = self.approvals.record
        self.completion = CompletionRecord(
            transfer_hash=event.hash,
            approval_hash=approval.hash if approval and approval.status is TxStatus.CONFIRMED else None,
            asset=batch.asset,
            addresses=batch.addresses,
            amounts=batch.amounts,
            total_amount=batch.total_amount,
            explorer_url=self.config.network.explorer_url(event.hash),
        )
        self.snapshot = None
        self._set_step(WorkflowStep.COMPLETE)
        self._info("Batch transfer completed successfully!")
        await self.refresh()

    # ── Export / persistence ─────────────────────────────────────

    def export_csv(self) -> str:
        """``Address,Amount`` CSV of the completed batch, or of the current list."""
        if self.completion is not None:
            return self.completion.to_csv()
        if self.batch is not None and self.step is WorkflowStep.REVIEW:
            return export_csv(self.batch.rows())
        return export_csv((r.address, r.amount) for r in self.recipients)

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe state for resuming after the session is interrupted."""
        return {
            "step": self.step.value,
            "asset": self.asset.symbol,
            "recipients": [
                {"id": r.id, "address": r.address, "amount": r.amount} for r in self.recipients
            ],
            "sender": (
                {"address": self.sender.address, "network_id": self.sender.network_id}
                if self.sender else None
            ),
            "approval": self.approvals.record.to_dict() if self.approvals.record else None,
            "transfer": self.transfers.record.to_dict() if self.transfers.record else None,
            "completion": self.completion.to_dict() if self.completion else None,
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        config: BatchConfig,
        ledger: LedgerQueryService,
        writer: LedgerWriteService,
        **kwargs: Any,
    ) -> "BatchWorkflow":
        """Restore a saved workflow. Call :meth:`reconcile` before submitting again."""
        workflow = cls(config, ledger, writer, asset_symbol=data.get("asset"), **kwargs)
        workflow.recipients = RecipientList(
            Recipient(address=r["address"], amount=r["amount"], id=r["id"])
            for r in data.get("recipients", [])
        )
        if data.get("sender"):
            workflow.connect(data["sender"]["address"], data["sender"]["network_id"])
        if data.get("approval"):
            workflow.approvals.record = TransactionRecord.from_dict(data["approval"])
        if data.get("transfer"):
            workflow.transfers.record = TransactionRecord.from_dict(data["transfer"])

        step = WorkflowStep(data.get("step", WorkflowStep.SETUP.value))
        pending_transfer = workflow.transfers.record is not None and workflow.transfers.record.in_flight
        if step is not WorkflowStep.SETUP or pending_transfer:
            workflow.batch = validate_recipients(
                workflow.recipients.snapshot(), workflow.asset,
                workflow.address_validator, config.max_recipients,
            )
        completion = data.get("completion")
        if step is WorkflowStep.COMPLETE and completion:
            workflow.completion = CompletionRecord(
                transfer_hash=completion["transfer_hash"],
                approval_hash=completion.get("approval_hash"),
                asset=config.asset(completion["asset"]),
                addresses=tuple(completion["addresses"]),
                amounts=tuple(int(a) for a in completion["amounts"]),
                total_amount=int(completion["total_amount"]),
                explorer_url=completion.get("explorer_url"),
            )
        workflow.step = step
        return workflow


def _error_from_event(event: TransactionEvent) -> BatchTransferError:
    message = event.error_message or f"{event.kind.value.capitalize()} transaction failed"
    if event.error is ErrorKind.USER_REJECTED:
        return UserRejectedError(message)
    if event.error is ErrorKind.REVERTED:
        return TransactionRevertedError(event.hash, message)
    return TransactionSubmissionError(message)


