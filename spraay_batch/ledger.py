"""
Interfaces to the ledger and the rest of the outside world.

The orchestrator only talks to these protocols. Reads are side-effect-free
and may be re-issued at any time; writes are irrevocable once broadcast.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol, Sequence

from spraay_batch.config import NetworkId

# Function selectors on the token and settlement contracts.
APPROVE = "approve"
BATCH_TRANSFER = "batchTransfer"


@dataclass(frozen=True)
class Sender:
    """The connected wallet: who signs, and which network it is on."""

    address: Optional[str]
    network_id: Optional[NetworkId]

    @property
    def is_identified(self) -> bool:
        return bool(self.address)


@dataclass(frozen=True)
class PendingTransaction:
    """Handle returned by a write. ``receipt`` is adapter-private."""

    hash: Optional[str]
    receipt: Any = None


@dataclass(frozen=True)
class Confirmation:
    success: bool
    error: Optional[str] = None
    hash: Optional[str] = None


class LedgerQueryService(Protocol):
    async def get_native_balance(self, address: str) -> int: ...

    async def get_token_balance(self, token: str, address: str) -> int: ...

    async def get_allowance(self, token: str, owner: str, spender: str) -> int: ...

    async def is_paused(self) -> bool: ...


class LedgerWriteService(Protocol):
    async def submit(
        self,
        contract_address: str,
        function_selector: str,
        args: Sequence[Any],
        attached_value: int = 0,
    ) -> PendingTransaction:
        """
        Sign and broadcast. Raises UserRejectedError when signing is declined
        and TransactionSubmissionError when the ledger refuses the transaction.
        """
        ...

    async def await_confirmation(self, handle: PendingTransaction) -> Confirmation:
        """Wait, without timeout, until the transaction settles."""
        ...


class Severity(Enum):
    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    severity: Severity
    message: str


NotificationSink = Callable[[Notification], None]
