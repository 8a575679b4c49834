"""Spending authorization for token batches."""

from __future__ import annotations

from typing import Optional

from spraay_batch.config import BatchConfig, TokenAsset
from spraay_batch.errors import ApprovalNotRequiredError, TransactionPendingError
from spraay_batch.gatekeeper import GateDecision
from spraay_batch.ledger import APPROVE, LedgerWriteService
from spraay_batch.logging_config import get_logger
from spraay_batch.transactions import (
    EventPublisher,
    TransactionRecord,
    TxKind,
    execute_write,
)

logger = get_logger("approval")


class ApprovalCoordinator:
    """
    Issues ``approve(settlement_contract, amount)`` on a token contract.

    Holds at most one record. A failed record may be replaced by a new
    attempt; an in-flight one may not.
    """

    def __init__(self, config: BatchConfig, writer: LedgerWriteService, publish: EventPublisher):
        self.config = config
        self.writer = writer
        self.publish = publish
        self.record: Optional[TransactionRecord] = None

    def reset(self) -> None:
        self.record = None

    async def request_approval(
        self, asset: TokenAsset, amount: int, decision: GateDecision
    ) -> TransactionRecord:
        """
        Approve ``amount`` smallest units of ``asset`` for the settlement contract.

        ``amount`` need not equal the batch total. ``decision`` must come from
        a fresh gate check.
        """
        if asset.is_native:
            raise ApprovalNotRequiredError(asset.symbol, "native transfers need no allowance")
        if not decision.needs_approval:
            raise ApprovalNotRequiredError(asset.symbol, "current allowance covers the batch")
        if amount <= 0:
            raise ApprovalNotRequiredError(asset.symbol, "approval amount must be greater than 0")
        if self.record is not None and self.record.in_flight:
            raise TransactionPendingError(TxKind.APPROVAL.value, self.record.hash)

        spender = self.config.network.settlement_contract
        logger.info(
            "Requesting %s approval", asset.symbol,
            extra={"token": asset.ledger_reference, "spender": spender, "amount": amount},
        )
        self.record = TransactionRecord(kind=TxKind.APPROVAL)
        return await execute_write(
            self.record,
            self.writer,
            self.publish,
            contract=asset.ledger_reference,
            selector=APPROVE,
            args=(spender, amount),
            value=0,
        )
