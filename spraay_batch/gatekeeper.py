"""
Balance and allowance checks.

``can_submit`` is a pure decision over values the caller supplies.
:class:`Gatekeeper` fetches those values fresh on every call and keeps
nothing between calls, so a value read before a write is never reused
after it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from spraay_batch.config import BatchConfig, TokenAsset
from spraay_batch.errors import BatchTransferError, LedgerQueryError
from spraay_batch.ledger import LedgerQueryService
from spraay_batch.logging_config import get_logger
from spraay_batch.recipients import TransferBatch

logger = get_logger("gatekeeper")


@dataclass(frozen=True)
class GateDecision:
    sufficient_balance: bool
    needs_approval: bool

    @property
    def allowed(self) -> bool:
        return self.sufficient_balance and not self.needs_approval


@dataclass(frozen=True)
class LedgerSnapshot:
    """Point-in-time ledger reads for one owner and asset."""

    balance: int
    allowance: int
    paused: bool


@dataclass(frozen=True)
class ApprovalState:
    current_allowance: int
    required: bool


def can_submit(batch: TransferBatch, current_balance: int, current_allowance: int) -> GateDecision:
    return GateDecision(
        sufficient_balance=current_balance >= batch.total_amount,
        needs_approval=needs_approval(batch.asset, batch.total_amount, current_allowance),
    )


def needs_approval(asset: TokenAsset, total_amount: int, current_allowance: int) -> bool:
    """Native transfers never need an allowance."""
    return not asset.is_native and current_allowance < total_amount


def approval_state_for(batch: TransferBatch, current_allowance: int) -> ApprovalState:
    return ApprovalState(
        current_allowance=current_allowance,
        required=needs_approval(batch.asset, batch.total_amount, current_allowance),
    )


class Gatekeeper:
    def __init__(self, config: BatchConfig, ledger: LedgerQueryService):
        self.config = config
        self.ledger = ledger

    async def snapshot(self, asset: TokenAsset, owner: str) -> LedgerSnapshot:
        """Read balance, allowance and pause state concurrently."""
        spender = self.config.network.settlement_contract
        try:
            if asset.is_native:
                balance, paused = await asyncio.gather(
                    self.ledger.get_native_balance(owner),
                    self.ledger.is_paused(),
                )
                allowance = 0
            else:
                balance, allowance, paused = await asyncio.gather(
                    self.ledger.get_token_balance(asset.ledger_reference, owner),
                    self.ledger.get_allowance(asset.ledger_reference, owner, spender),
                    self.ledger.is_paused(),
                )
        except BatchTransferError:
            raise
        except Exception as e:
            logger.warning("Ledger read for %s failed: %s", asset.symbol, e)
            raise LedgerQueryError(f"Could not read {asset.symbol} balance from the ledger: {e}") from e
        snap = LedgerSnapshot(balance=balance, allowance=allowance, paused=paused)
        logger.debug(
            "Ledger snapshot for %s on %s", owner, asset.symbol,
            extra={"balance": balance, "allowance": allowance, "paused": paused},
        )
        return snap

    async def check(self, batch: TransferBatch, owner: str) -> tuple[LedgerSnapshot, GateDecision]:
        snap = await self.snapshot(batch.asset, owner)
        return snap, can_submit(batch, snap.balance, snap.allowance)
