"""
Batch settlement.

``submit_batch`` re-reads balance, allowance and pause state right before
dispatch and refuses, without touching the ledger, unless every
precondition holds:

    1. the sender is identified
    2. the sender is on the configured network
    3. the settlement contract is not paused
    4. the balance covers the batch total
    5. for tokens, the allowance covers the batch total

The write is ``batchTransfer(token, recipients, amounts)``. Native batches
pass the network's native sentinel as ``token`` and attach the total as
value; token batches attach nothing.
"""

from __future__ import annotations

from typing import Optional

from spraay_batch.config import BatchConfig
from spraay_batch.errors import (
    ApprovalRequiredError,
    ContractPausedError,
    InsufficientFundsError,
    NetworkMismatchError,
    TransactionPendingError,
    WalletNotConnectedError,
)
from spraay_batch.gatekeeper import Gatekeeper, LedgerSnapshot
from spraay_batch.ledger import BATCH_TRANSFER, LedgerWriteService, Sender
from spraay_batch.logging_config import get_logger
from spraay_batch.recipients import TransferBatch
from spraay_batch.transactions import (
    EventPublisher,
    TransactionRecord,
    TxKind,
    execute_write,
)

logger = get_logger("transfer")


class TransferCoordinator:
    def __init__(
        self,
        config: BatchConfig,
        gatekeeper: Gatekeeper,
        writer: LedgerWriteService,
        publish: EventPublisher,
    ):
        self.config = config
        self.gatekeeper = gatekeeper
        self.writer = writer
        self.publish = publish
        self.record: Optional[TransactionRecord] = None
        self.last_snapshot: Optional[LedgerSnapshot] = None

    def reset(self) -> None:
        self.record = None
        self.last_snapshot = None

    def check_sender(self, sender: Optional[Sender]) -> str:
        if sender is None or not sender.is_identified:
            raise WalletNotConnectedError()
        network = self.config.network
        if sender.network_id != network.network_id:
            raise NetworkMismatchError(network.network_id, sender.network_id, network.name)
        return sender.address

    async def preflight(self, batch: TransferBatch, sender: Optional[Sender]) -> LedgerSnapshot:
        """Run every precondition against fresh ledger reads. Raises on the first failure."""
        if self.record is not None and self.record.in_flight:
            raise TransactionPendingError(TxKind.TRANSFER.value, self.record.hash)
        owner = self.check_sender(sender)

        snap, decision = await self.gatekeeper.check(batch, owner)
        self.last_snapshot = snap
        if snap.paused:
            raise ContractPausedError(self.config.network.settlement_contract)
        if not decision.sufficient_balance:
            raise InsufficientFundsError(batch.asset.symbol, batch.total_amount, snap.balance)
        if decision.needs_approval:
            raise ApprovalRequiredError(batch.asset.symbol, batch.total_amount, snap.allowance)
        return snap

    async def submit_batch(self, batch: TransferBatch, sender: Optional[Sender]) -> TransactionRecord:
        await self.preflight(batch, sender)

        network = self.config.network
        asset = batch.asset
        token = network.native_token_reference if asset.is_native else asset.ledger_reference
        value = batch.total_amount if asset.is_native else 0

        logger.info(
            "Submitting %s batch to %d recipients", asset.symbol, batch.recipient_count,
            extra={"token": token, "total_amount": batch.total_amount, "value": value},
        )
        self.record = TransactionRecord(kind=TxKind.TRANSFER)
        return await execute_write(
            self.record,
            self.writer,
            self.publish,
            contract=network.settlement_contract,
            selector=BATCH_TRANSFER,
            args=(token, list(batch.addresses), list(batch.amounts)),
            value=value,
        )
