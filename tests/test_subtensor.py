"""Tests for the Bittensor ledger adapter against a fake AsyncSubtensor."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

pytest.importorskip("bittensor")

from spraay_batch import subtensor as subtensor_module  # noqa: E402
from spraay_batch.config import BITTENSOR_TESTNET  # noqa: E402
from spraay_batch.errors import (  # noqa: E402
    TransactionLookupError,
    TransactionSubmissionError,
    UnsupportedOperationError,
    UserRejectedError,
)
from spraay_batch.ledger import APPROVE, BATCH_TRANSFER, PendingTransaction  # noqa: E402
from spraay_batch.subtensor import SubtensorLedger  # noqa: E402
from spraay_batch.transactions import TransactionRecord, TxKind, TxStatus, execute_write  # noqa: E402

DEST_A = "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY"
DEST_B = "5FHneW46xGXgs5mUiveU4sbTyGBzmstUspZC92UhjJM694ty"
UTILITY = BITTENSOR_TESTNET.network.settlement_contract


class FakeBalances:
    def __init__(self, subtensor):
        self.subtensor = subtensor

    async def transfer_keep_alive(self, dest, value):
        return ("transfer_keep_alive", dest, value)

    async def transfer_allow_death(self, dest, value):
        return ("transfer_allow_death", dest, value)


@pytest.fixture(autouse=True)
def fake_balances(monkeypatch):
    monkeypatch.setattr(subtensor_module, "Balances", FakeBalances)


@pytest.fixture
def subtensor():
    fake = MagicMock()
    fake.network = "test"
    fake.get_balance = AsyncMock(return_value=SimpleNamespace(rao=5_000_000_000))
    fake.compose_call = AsyncMock(return_value="batch_call")
    fake.sign_and_send_extrinsic = AsyncMock(
        return_value=SimpleNamespace(success=True, message="", extrinsic_hash="0xabc")
    )
    return fake


@pytest.fixture
def wallet():
    fake = MagicMock()
    fake.coldkeypub.ss58_address = DEST_A
    return fake


@pytest.fixture
def ledger(subtensor, wallet):
    return SubtensorLedger(BITTENSOR_TESTNET, subtensor, wallet)


def batch_args(*amounts):
    return ("TAO", [DEST_A, DEST_B][: len(amounts)], list(amounts))


class TestReads:
    @pytest.mark.asyncio
    async def test_native_balance_in_rao(self, ledger, subtensor):
        assert await ledger.get_native_balance(DEST_A) == 5_000_000_000
        subtensor.get_balance.assert_awaited_once_with(DEST_A)

    @pytest.mark.asyncio
    async def test_tokens_unsupported(self, ledger):
        with pytest.raises(UnsupportedOperationError):
            await ledger.get_token_balance("x", DEST_A)
        with pytest.raises(UnsupportedOperationError):
            await ledger.get_allowance("x", DEST_A, UTILITY)

    @pytest.mark.asyncio
    async def test_never_paused(self, ledger):
        assert await ledger.is_paused() is False

    def test_identity(self, ledger):
        assert ledger.network_id == "test"
        assert ledger.sender_address == DEST_A


class TestSubmit:
    @pytest.mark.asyncio
    async def test_batch_all_of_transfers(self, ledger, subtensor, wallet):
        handle = await ledger.submit(UTILITY, BATCH_TRANSFER, batch_args(1, 2), 3)

        wallet.unlock_coldkey.assert_called_once()
        subtensor.compose_call.assert_awaited_once_with(
            call_module="Utility",
            call_function="batch_all",
            call_params={"calls": [
                ("transfer_keep_alive", DEST_A, 1),
                ("transfer_keep_alive", DEST_B, 2),
            ]},
        )
        kwargs = subtensor.sign_and_send_extrinsic.await_args.kwargs
        assert kwargs["call"] == "batch_call"
        assert kwargs["wait_for_inclusion"] is True
        assert handle.hash == "0xabc"

    @pytest.mark.asyncio
    async def test_allow_death(self, subtensor, wallet):
        ledger = SubtensorLedger(BITTENSOR_TESTNET, subtensor, wallet, keep_alive=False)
        await ledger.submit(UTILITY, BATCH_TRANSFER, batch_args(1), 1)
        calls = subtensor.compose_call.await_args.kwargs["call_params"]["calls"]
        assert calls == [("transfer_allow_death", DEST_A, 1)]

    @pytest.mark.asyncio
    async def test_approve_unsupported(self, ledger, subtensor):
        with pytest.raises(UnsupportedOperationError):
            await ledger.submit("token", APPROVE, (UTILITY, 1))
        subtensor.sign_and_send_extrinsic.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_value_must_match_total(self, ledger, subtensor):
        with pytest.raises(TransactionSubmissionError):
            await ledger.submit(UTILITY, BATCH_TRANSFER, batch_args(1, 2), 2)
        subtensor.sign_and_send_extrinsic.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_locked_wallet_is_a_rejection(self, ledger, wallet, subtensor):
        wallet.unlock_coldkey.side_effect = RuntimeError("bad password")
        with pytest.raises(UserRejectedError):
            await ledger.submit(UTILITY, BATCH_TRANSFER, batch_args(1), 1)
        subtensor.sign_and_send_extrinsic.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_node_error(self, ledger, subtensor):
        subtensor.sign_and_send_extrinsic.side_effect = ConnectionError("closed")
        with pytest.raises(TransactionSubmissionError, match="closed"):
            await ledger.submit(UTILITY, BATCH_TRANSFER, batch_args(1), 1)


class TestConfirmation:
    @pytest.mark.asyncio
    async def test_failed_extrinsic(self, ledger, subtensor):
        subtensor.sign_and_send_extrinsic.return_value = SimpleNamespace(
            success=False, message="Module error", extrinsic_hash="0xdef",
        )
        handle = await ledger.submit(UTILITY, BATCH_TRANSFER, batch_args(1), 1)
        confirmation = await ledger.await_confirmation(handle)
        assert not confirmation.success
        assert confirmation.error == "Module error"

    @pytest.mark.asyncio
    async def test_unknown_handle(self, ledger):
        with pytest.raises(TransactionLookupError):
            await ledger.await_confirmation(PendingTransaction(hash="0xabc"))

    @pytest.mark.asyncio
    async def test_drives_shared_write_lifecycle(self, ledger):
        events = []
        record = await execute_write(
            TransactionRecord(TxKind.TRANSFER), ledger, events.append,
            contract=UTILITY, selector=BATCH_TRANSFER, args=batch_args(4, 6), value=10,
        )
        assert record.status is TxStatus.CONFIRMED
        assert record.hash == "0xabc"
