"""
Shared fixtures: an in-memory ledger that records every read and write.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

import pytest

from spraay_batch.config import CELO_SEPOLIA, BatchConfig
from spraay_batch.errors import TransactionLookupError, UserRejectedError
from spraay_batch.ledger import (
    APPROVE,
    BATCH_TRANSFER,
    Confirmation,
    Notification,
    PendingTransaction,
    Severity,
)
from spraay_batch.workflow import BatchWorkflow

SENDER = "0x" + "a" * 40
ALICE = "0x" + "1" * 40
BOB = "0x" + "2" * 40
CAROL = "0x" + "3" * 40

CELO = 10 ** 18
USDC = 10 ** 6


class FakeLedger:
    """
    Query and write service backed by plain attributes.

    Confirmed writes change state the way the contracts would: an approval
    sets the allowance, a batch transfer debits balance (and allowance for
    tokens).
    """

    def __init__(
        self,
        config: BatchConfig = CELO_SEPOLIA,
        native_balance: int = 0,
        token_balances: Optional[dict[str, int]] = None,
        allowances: Optional[dict[str, int]] = None,
        paused: bool = False,
    ):
        self.config = config
        self.native_balance = native_balance
        self.token_balances = dict(token_balances or {})
        self.allowances = dict(allowances or {})
        self.paused = paused

        self.reads: list[str] = []
        self.writes: list[tuple[str, str, tuple, int]] = []
        self.reject_next = False
        self.revert_next: Optional[str] = None
        self.allowance_after_approve: Optional[int] = None
        self.lose_next = False
        # Reads raise ConnectionError once this many have succeeded.
        self.reads_fail_after: Optional[int] = None
        # Outcomes for hashes broadcast by an earlier session.
        self.settled: dict[str, Confirmation] = {}
        self._pending: dict[str, tuple[str, str, tuple, int]] = {}

    # reads

    def _read(self, name: str) -> None:
        if self.reads_fail_after is not None and len(self.reads) >= self.reads_fail_after:
            raise ConnectionError("node dropped websocket")
        self.reads.append(name)

    async def get_native_balance(self, address: str) -> int:
        self._read("native_balance")
        return self.native_balance

    async def get_token_balance(self, token: str, address: str) -> int:
        self._read("token_balance")
        return self.token_balances.get(token, 0)

    async def get_allowance(self, token: str, owner: str, spender: str) -> int:
        self._read("allowance")
        return self.allowances.get(token, 0)

    async def is_paused(self) -> bool:
        self._read("paused")
        return self.paused

    # writes

    async def submit(
        self,
        contract_address: str,
        function_selector: str,
        args: Sequence[Any],
        attached_value: int = 0,
    ) -> PendingTransaction:
        if self.reject_next:
            self.reject_next = False
            raise UserRejectedError()
        write = (contract_address, function_selector, tuple(args), attached_value)
        self.writes.append(write)
        tx_hash = "0x%064x" % len(self.writes)
        self._pending[tx_hash] = write
        return PendingTransaction(hash=tx_hash)

    async def await_confirmation(self, handle: PendingTransaction) -> Confirmation:
        if handle.hash in self.settled:
            return self.settled.pop(handle.hash)
        if self.lose_next or handle.hash not in self._pending:
            self.lose_next = False
            self._pending.pop(handle.hash, None)
            raise TransactionLookupError(handle.hash)
        contract, selector, args, value = self._pending.pop(handle.hash)

        if self.revert_next is not None:
            reason, self.revert_next = self.revert_next, None
            return Confirmation(success=False, error=reason, hash=handle.hash)

        if selector == APPROVE:
            _, amount = args
            if self.allowance_after_approve is not None:
                amount = self.allowance_after_approve
            self.allowances[contract] = amount
        elif selector == BATCH_TRANSFER:
            token, _, amounts = args
            if token == self.config.network.native_token_reference:
                self.native_balance -= value
            else:
                self.token_balances[token] -= sum(amounts)
                self.allowances[token] -= sum(amounts)
        return Confirmation(success=True, hash=handle.hash)


class NotificationLog(list):
    @property
    def errors(self) -> list[str]:
        return [n.message for n in self if n.severity is Severity.ERROR]

    @property
    def infos(self) -> list[str]:
        return [n.message for n in self if n.severity is Severity.INFO]

    def __call__(self, notification: Notification) -> None:
        self.append(notification)


@pytest.fixture
def config() -> BatchConfig:
    return CELO_SEPOLIA


@pytest.fixture
def usdc(config):
    return config.asset("USDC")


@pytest.fixture
def celo(config):
    return config.asset("CELO")


@pytest.fixture
def ledger(config) -> FakeLedger:
    return FakeLedger(config)


@pytest.fixture
def notifications() -> NotificationLog:
    return NotificationLog()


@pytest.fixture
def make_workflow(config, ledger, notifications):
    def _make(asset: str = "CELO", connect: bool = True) -> BatchWorkflow:
        workflow = BatchWorkflow(config, ledger, ledger, notify=notifications, asset_symbol=asset)
        if connect:
            workflow.connect(SENDER, config.network.network_id)
        return workflow

    return _make
