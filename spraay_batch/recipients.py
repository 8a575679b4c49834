"""
Recipients, validation and the derived transfer batch.

Validation runs its rules in a fixed order. The first rule that any row
breaks decides the error, and every row breaking that rule is reported so
the user can fix them all in one pass:

    0. the list is not empty
    1. every row has an address and an amount
    2. every amount is a positive decimal at the asset's precision
    3. every address passes the structural check
    4. the list fits within ``max_recipients`` (when configured)

Duplicate addresses are legal; each row is paid independently.
"""

from __future__ import annotations

import csv
import io
import uuid
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, Optional, Sequence, Union

from spraay_batch.addresses import AddressValidator, minimum_length
from spraay_batch.amounts import format_amount, parse_positive_amount, sum_amounts
from spraay_batch.config import TokenAsset
from spraay_batch.errors import (
    IssueReason,
    MalformedAmountError,
    RecipientIssue,
    ValidationError,
)

EXPORT_HEADER = ("Address", "Amount")

ImportRow = Union[Mapping[str, object], Sequence[object]]


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Recipient:
    """A single payment line as entered by the user."""

    address: str = ""
    amount: str = ""
    id: str = field(default_factory=_new_id)


@dataclass(frozen=True)
class TransferBatch:
    """A validated batch. ``amounts[i]`` is ``recipients[i].amount`` in smallest units."""

    asset: TokenAsset
    addresses: tuple[str, ...]
    amounts: tuple[int, ...]
    total_amount: int

    def __post_init__(self):
        if len(self.addresses) != len(self.amounts):
            raise ValueError("addresses and amounts must line up")
        if sum_amounts(self.amounts) != self.total_amount:
            raise ValueError("total_amount does not match the sum of amounts")

    @classmethod
    def build(cls, asset: TokenAsset, lines: Iterable[tuple[str, int]]) -> "TransferBatch":
        lines = list(lines)
        amounts = tuple(amount for _, amount in lines)
        return cls(
            asset=asset,
            addresses=tuple(address for address, _ in lines),
            amounts=amounts,
            total_amount=sum_amounts(amounts),
        )

    @property
    def recipient_count(self) -> int:
        return len(self.addresses)

    def display_total(self, display_decimals: Optional[int] = 6) -> str:
        return f"{format_amount(self.total_amount, self.asset.decimals, display_decimals)} {self.asset.symbol}"

    def rows(self) -> list[tuple[str, str]]:
        """(address, exact decimal amount) pairs, in batch order."""
        return [
            (address, format_amount(amount, self.asset.decimals))
            for address, amount in zip(self.addresses, self.amounts)
        ]


def _issues_for(recipients: Sequence[Recipient], reason: IssueReason, message: str,
                failing: Iterable[int]) -> list[RecipientIssue]:
    return [
        RecipientIssue(reason=reason, message=message, index=i, recipient_id=recipients[i].id)
        for i in failing
    ]


def validate_recipients(
    recipients: Sequence[Recipient],
    asset: TokenAsset,
    address_validator: Optional[AddressValidator] = None,
    max_recipients: Optional[int] = None,
) -> TransferBatch:
    """Validate ``recipients`` for ``asset`` and build the batch, or raise ValidationError."""
    address_validator = address_validator or minimum_length()

    if not recipients:
        raise ValidationError(
            "Add at least one recipient.",
            [RecipientIssue(IssueReason.EMPTY_BATCH, "Add at least one recipient.")],
        )

    message = "Please fill in every recipient address and amount."
    missing = [i for i, r in enumerate(recipients)
               if not r.address.strip() or not r.amount.strip()]
    if missing:
        raise ValidationError(
            message, _issues_for(recipients, IssueReason.MISSING_FIELD, message, missing)
        )

    amounts: list[int] = []
    bad_amounts: list[RecipientIssue] = []
    for i, r in enumerate(recipients):
        try:
            amounts.append(parse_positive_amount(r.amount, asset.decimals))
        except MalformedAmountError as e:
            bad_amounts.append(RecipientIssue(
                IssueReason.INVALID_AMOUNT, str(e), index=i, recipient_id=r.id,
            ))
    if bad_amounts:
        raise ValidationError(
            f"All amounts must be greater than 0 with at most {asset.decimals} decimal places.",
            bad_amounts,
        )

    message = "One or more wallet addresses look invalid."
    bad_addresses = [i for i, r in enumerate(recipients)
                     if not address_validator(r.address.strip())]
    if bad_addresses:
        raise ValidationError(
            message, _issues_for(recipients, IssueReason.INVALID_ADDRESS, message, bad_addresses)
        )

    if max_recipients is not None and len(recipients) > max_recipients:
        message = f"A batch can hold at most {max_recipients} recipients, got {len(recipients)}."
        raise ValidationError(
            message, [RecipientIssue(IssueReason.TOO_MANY_RECIPIENTS, message)]
        )

    return TransferBatch.build(
        asset, ((r.address.strip(), amount) for r, amount in zip(recipients, amounts))
    )


def _coerce_row(row: ImportRow) -> tuple[str, str]:
    if isinstance(row, Mapping):
        normalized = {str(k).strip().lower(): v for k, v in row.items()}
        address, amount = normalized.get("address", ""), normalized.get("amount", "")
    elif len(row) < 2:
        raise ValidationError("Each imported row needs an address and an amount.")
    else:
        address, amount = row[0], row[1]
    # Amounts stay text end to end.
    if isinstance(amount, float):
        raise ValidationError("Imported amounts must be decimal text, not floating-point numbers.")
    return str(address if address is not None else "").strip(), \
        str(amount if amount is not None else "").strip()


class RecipientList:
    """The editable, ordered recipient list behind the setup step."""

    def __init__(self, recipients: Iterable[Recipient] = ()):
        self._items: list[Recipient] = list(recipients)

    def __iter__(self) -> Iterator[Recipient]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> Recipient:
        return self._items[index]

    def snapshot(self) -> list[Recipient]:
        return list(self._items)

    def add(self, address: str = "", amount: str = "") -> Recipient:
        recipient = Recipient(address=address, amount=amount)
        self._items.append(recipient)
        return recipient

    def get(self, recipient_id: str) -> Recipient:
        for r in self._items:
            if r.id == recipient_id:
                return r
        raise KeyError(recipient_id)

    def remove(self, recipient_id: str) -> Recipient:
        recipient = self.get(recipient_id)
        self._items.remove(recipient)
        return recipient

    def update(self, recipient_id: str, *, address: Optional[str] = None,
               amount: Optional[str] = None) -> Recipient:
        recipient = self.get(recipient_id)
        if address is not None:
            recipient.address = address
        if amount is not None:
            recipient.amount = amount
        return recipient

    def replace_from(self, rows: Iterable[ImportRow]) -> int:
        """Replace the list with imported rows. Returns the number imported."""
        imported = [Recipient(address=a, amount=m) for a, m in map(_coerce_row, rows)]
        self._items = imported
        return len(imported)

    def clear(self) -> None:
        self._items = []


def export_csv(rows: Iterable[tuple[str, str]]) -> str:
    """``Address,Amount`` header followed by one pair per line."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    for address, amount in rows:
        writer.writerow((address, amount))
    return buf.getvalue()
