"""Tests for recipient validation, the editable list and CSV export."""

import csv
import io

import pytest

from spraay_batch.addresses import is_evm_address
from spraay_batch.config import TokenAsset
from spraay_batch.errors import IssueReason, ValidationError
from spraay_batch.recipients import (
    Recipient,
    RecipientList,
    TransferBatch,
    export_csv,
    validate_recipients,
)

from conftest import ALICE, BOB, CAROL, USDC


def rows(*pairs):
    return [Recipient(address=a, amount=m) for a, m in pairs]


class TestValidateRecipients:
    def test_valid_list_builds_batch(self, usdc):
        batch = validate_recipients(rows((ALICE, "1.5"), (BOB, "2")), usdc, is_evm_address)
        assert batch.addresses == (ALICE, BOB)
        assert batch.amounts == (1_500_000, 2_000_000)
        assert batch.total_amount == 3_500_000
        assert batch.recipient_count == 2

    def test_empty_list(self, usdc):
        with pytest.raises(ValidationError) as exc:
            validate_recipients([], usdc)
        assert exc.value.reason is IssueReason.EMPTY_BATCH
        assert exc.value.failing_rows == []

    def test_missing_fields_report_every_row(self, usdc):
        recipients = rows((ALICE, "1"), ("", "2"), (BOB, "  "), ("", ""))
        with pytest.raises(ValidationError) as exc:
            validate_recipients(recipients, usdc, is_evm_address)
        assert str(exc.value) == "Please fill in every recipient address and amount."
        assert exc.value.reason is IssueReason.MISSING_FIELD
        assert exc.value.failing_rows == [1, 2, 3]
        assert exc.value.issues[0].recipient_id == recipients[1].id

    def test_missing_field_checked_before_amounts(self, usdc):
        """A row with a bad amount does not mask a missing address elsewhere."""
        with pytest.raises(ValidationError) as exc:
            validate_recipients(rows((ALICE, "abc"), ("", "1")), usdc, is_evm_address)
        assert exc.value.reason is IssueReason.MISSING_FIELD
        assert exc.value.failing_rows == [1]

    def test_invalid_amounts(self, usdc):
        recipients = rows((ALICE, "0"), (BOB, "1.0000001"), (CAROL, "1"), (ALICE, "-5"))
        with pytest.raises(ValidationError) as exc:
            validate_recipients(recipients, usdc, is_evm_address)
        assert exc.value.reason is IssueReason.INVALID_AMOUNT
        assert exc.value.failing_rows == [0, 1, 3]
        assert "at most 6 decimal places" in str(exc.value)

    def test_amounts_checked_before_addresses(self, usdc):
        with pytest.raises(ValidationError) as exc:
            validate_recipients(rows(("nope", "1"), (ALICE, "0")), usdc, is_evm_address)
        assert exc.value.reason is IssueReason.INVALID_AMOUNT

    def test_invalid_addresses(self, usdc):
        recipients = rows((ALICE, "1"), ("0x123", "1"), ("abc", "2"))
        with pytest.raises(ValidationError) as exc:
            validate_recipients(recipients, usdc, is_evm_address)
        assert str(exc.value) == "One or more wallet addresses look invalid."
        assert exc.value.failing_rows == [1, 2]

    def test_default_address_check_is_minimum_length(self, usdc):
        batch = validate_recipients(rows(("abcdef", "1")), usdc)
        assert batch.addresses == ("abcdef",)
        with pytest.raises(ValidationError):
            validate_recipients(rows(("abcde", "1")), usdc)

    def test_max_recipients(self, usdc):
        recipients = rows((ALICE, "1"), (BOB, "1"), (CAROL, "1"))
        with pytest.raises(ValidationError) as exc:
            validate_recipients(recipients, usdc, is_evm_address, max_recipients=2)
        assert exc.value.reason is IssueReason.TOO_MANY_RECIPIENTS
        assert validate_recipients(recipients, usdc, is_evm_address, max_recipients=3)

    def test_duplicate_addresses_are_allowed(self, usdc):
        batch = validate_recipients(rows((ALICE, "1"), (ALICE, "2")), usdc, is_evm_address)
        assert batch.addresses == (ALICE, ALICE)
        assert batch.total_amount == 3 * USDC

    def test_whitespace_trimmed_from_addresses(self, usdc):
        batch = validate_recipients(rows((f"  {ALICE} ", "1")), usdc, is_evm_address)
        assert batch.addresses == (ALICE,)

    def test_decimals_follow_asset(self, celo, usdc):
        recipients = rows((ALICE, "0.000000000000000001"))
        assert validate_recipients(recipients, celo, is_evm_address).total_amount == 1
        with pytest.raises(ValidationError):
            validate_recipients(recipients, usdc, is_evm_address)


class TestTransferBatch:
    def test_mismatched_lengths_rejected(self, usdc):
        with pytest.raises(ValueError):
            TransferBatch(usdc, (ALICE,), (1, 2), 3)

    def test_wrong_total_rejected(self, usdc):
        with pytest.raises(ValueError):
            TransferBatch(usdc, (ALICE,), (1,), 2)

    def test_display_total_truncates(self):
        asset = TokenAsset("TKN", "0xtoken", 18)
        batch = TransferBatch.build(asset, [(ALICE, 1_999_999_999_999_999_999)])
        assert batch.display_total() == "1.999999 TKN"
        assert batch.display_total(None) == "1.999999999999999999 TKN"

    def test_rows_are_exact(self, usdc):
        batch = TransferBatch.build(usdc, [(ALICE, 1_500_000), (BOB, 1)])
        assert batch.rows() == [(ALICE, "1.5"), (BOB, "0.000001")]


class TestRecipientList:
    def test_add_get_update_remove(self):
        recipients = RecipientList()
        first = recipients.add(ALICE, "1")
        second = recipients.add()
        assert len(recipients) == 2
        assert first.id != second.id

        recipients.update(second.id, address=BOB)
        recipients.update(second.id, amount="2")
        assert recipients.get(second.id) == Recipient(BOB, "2", second.id)

        recipients.remove(first.id)
        assert [r.id for r in recipients] == [second.id]

    def test_removing_last_row_leaves_empty_list(self):
        recipients = RecipientList()
        only = recipients.add(ALICE, "1")
        recipients.remove(only.id)
        assert len(recipients) == 0

    def test_unknown_id(self):
        with pytest.raises(KeyError):
            RecipientList().remove("missing")

    def test_snapshot_is_a_copy(self):
        recipients = RecipientList()
        recipients.add(ALICE, "1")
        snap = recipients.snapshot()
        recipients.add(BOB, "2")
        assert len(snap) == 1

    def test_replace_from_mappings_and_sequences(self):
        recipients = RecipientList()
        recipients.add(CAROL, "9")
        count = recipients.replace_from([
            {"Address": ALICE, "AMOUNT": "1.5"},
            (BOB, 2),
            {"address": None, "amount": None},
        ])
        assert count == 3
        assert [(r.address, r.amount) for r in recipients] == [(ALICE, "1.5"), (BOB, "2"), ("", "")]

    def test_replace_from_refuses_floats(self):
        with pytest.raises(ValidationError, match="floating-point"):
            RecipientList().replace_from([{"address": ALICE, "amount": 0.1}])

    def test_replace_from_refuses_short_rows(self):
        recipients = RecipientList()
        recipients.add(CAROL, "9")
        with pytest.raises(ValidationError, match="address and an amount"):
            recipients.replace_from([(ALICE, "1"), (BOB,)])
        assert [r.address for r in recipients] == [CAROL]

    def test_clear(self):
        recipients = RecipientList()
        recipients.add(ALICE, "1")
        recipients.clear()
        assert recipients.snapshot() == []


class TestExportCsv:
    def test_header_and_rows(self):
        assert export_csv([(ALICE, "1.5"), (BOB, "2")]) == (
            f"Address,Amount\n{ALICE},1.5\n{BOB},2\n"
        )

    def test_export_then_import_preserves_rows(self, usdc):
        batch = TransferBatch.build(usdc, [(ALICE, 1_500_000), (BOB, 1)])
        recipients = RecipientList()
        recipients.replace_from(csv.DictReader(io.StringIO(export_csv(batch.rows()))))
        assert validate_recipients(recipients.snapshot(), usdc, is_evm_address) == batch
