"""
Bittensor ledger adapter.

Implements both ledger services on top of the bittensor SDK. Substrate has
no settlement contract, so ``batchTransfer`` on the native asset becomes a
single ``Utility.batch_all`` of ``Balances.transfer_keep_alive`` calls: every
transfer in the batch succeeds or the whole extrinsic reverts.

There are no token contracts here, so token balances, allowances and
approvals are unsupported, and nothing can pause the Utility pallet.
"""

from __future__ import annotations

from typing import Any, Sequence

from bittensor.core.extrinsics.pallets import Balances
from bittensor.utils import is_valid_bittensor_address_or_public_key

from spraay_batch.config import BatchConfig
from spraay_batch.errors import (
    TransactionLookupError,
    TransactionSubmissionError,
    UnsupportedOperationError,
    UserRejectedError,
)
from spraay_batch.ledger import BATCH_TRANSFER, Confirmation, PendingTransaction
from spraay_batch.logging_config import get_logger

logger = get_logger("subtensor")


def is_valid_ss58_address(address: str) -> bool:
    return bool(is_valid_bittensor_address_or_public_key(address))


class SubtensorLedger:
    """
    Query and write service for a Bittensor network.

    ``subtensor`` is an open ``bt.AsyncSubtensor``; ``wallet`` signs with its
    coldkey, which is unlocked on first submission.
    """

    def __init__(
        self,
        config: BatchConfig,
        subtensor: Any,
        wallet: Any,
        keep_alive: bool = True,
        wait_for_finalization: bool = False,
    ):
        self.config = config
        self.subtensor = subtensor
        self.wallet = wallet
        self.keep_alive = keep_alive
        self.wait_for_finalization = wait_for_finalization

    @property
    def network_id(self) -> str:
        return getattr(self.subtensor, "network", None) or str(self.config.network.network_id)

    @property
    def sender_address(self) -> str:
        return self.wallet.coldkeypub.ss58_address

    # ── Reads ────────────────────────────────────────────────────

    async def get_native_balance(self, address: str) -> int:
        balance = await self.subtensor.get_balance(address)
        return int(balance.rao)

    async def get_token_balance(self, token: str, address: str) -> int:
        raise UnsupportedOperationError("Bittensor has no token contracts")

    async def get_allowance(self, token: str, owner: str, spender: str) -> int:
        raise UnsupportedOperationError("Bittensor has no token allowances")

    async def is_paused(self) -> bool:
        return False

    # ── Writes ───────────────────────────────────────────────────

    def _unlock(self) -> None:
        try:
            self.wallet.unlock_coldkey()
        except Exception as e:
            raise UserRejectedError(f"Could not unlock coldkey: {e}") from e

    async def _build_batch_call(self, recipients: Sequence[str], amounts: Sequence[int]) -> Any:
        balances = Balances(self.subtensor)
        transfer_fn = "transfer_keep_alive" if self.keep_alive else "transfer_allow_death"

        calls = []
        for address, amount in zip(recipients, amounts):
            call = await getattr(balances, transfer_fn)(dest=address, value=amount)
            calls.append(call)

        return await self.subtensor.compose_call(
            call_module="Utility",
            call_function="batch_all",
            call_params={"calls": calls},
        )

    async def submit(
        self,
        contract_address: str,
        function_selector: str,
        args: Sequence[Any],
        attached_value: int = 0,
    ) -> PendingTransaction:
        network = self.config.network
        if function_selector != BATCH_TRANSFER or contract_address != network.settlement_contract:
            raise UnsupportedOperationError(
                f"{contract_address}.{function_selector} is not available on Bittensor"
            )
        token, recipients, amounts = args
        if token != network.native_token_reference:
            raise UnsupportedOperationError("Only native TAO batches are supported")
        if attached_value != sum(amounts):
            raise TransactionSubmissionError("Attached value does not match the batch total")

        self._unlock()
        batch_call = await self._build_batch_call(recipients, amounts)
        logger.info("Signing Utility.batch_all with %d transfers", len(recipients))

        try:
            response = await self.subtensor.sign_and_send_extrinsic(
                call=batch_call,
                wallet=self.wallet,
                wait_for_inclusion=True,
                wait_for_finalization=self.wait_for_finalization,
            )
        except Exception as e:
            raise TransactionSubmissionError(f"Extrinsic submission failed: {e}") from e

        return PendingTransaction(
            hash=getattr(response, "extrinsic_hash", None),
            receipt=response,
        )

    async def await_confirmation(self, handle: PendingTransaction) -> Confirmation:
        # Inclusion was awaited during submit; only that response is authoritative.
        response = handle.receipt
        if response is None:
            raise TransactionLookupError(handle.hash)

        if response.success:
            return Confirmation(success=True, hash=handle.hash)
        return Confirmation(
            success=False,
            error=str(getattr(response, "message", "") or "Extrinsic failed"),
            hash=handle.hash,
        )
