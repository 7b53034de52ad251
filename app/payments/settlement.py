"""
Fee calculation and settlement allocation.

Pure functions shared by release() and by dispute settlement
(unfreeze). Every allocation satisfies:

    payout_cents + fee_cents + refund_cents == remaining_cents

so the ledger can never be over- or under-drawn by a settlement.

Usage:
    from payments.settlement import Outcome, allocate_settlement

    settlement = allocate_settlement(
        remaining_cents=10000,
        refund_cents=5000,
        amount_cents=10000,
        platform_fee_cents=800,
        commission_rate=Decimal("0.08"),
        policy=FeePolicy.PRORATED,
    )
    # Settlement(payout_cents=4600, fee_cents=400, refund_cents=5000)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.db import models


class FeePolicy(models.TextChoices):
    """
    How the platform fee is taken when funds are partly refunded.

    PRORATED: the fee is charged only on the released portion, at the
        rate locked at authorization
    RETAIN_FULL_FEE: the whole authorization-time fee is kept; it comes
        out of the released portion first, then out of the refund
    """

    PRORATED = "prorated", "Prorated"
    RETAIN_FULL_FEE = "retain_full_fee", "Retain full fee"


class OutcomeKind(models.TextChoices):
    """Resolution of a dispute, as far as fund movement is concerned."""

    RELEASE = "release", "Release to provider"
    REFUND = "refund", "Refund to customer"
    SPLIT = "split", "Split"


@dataclass(frozen=True)
class Outcome:
    """
    A dispute resolution outcome.

    Attributes:
        kind: release, refund or split
        refund_cents: Customer share of the disputed amount (split only)
    """

    kind: str
    refund_cents: int = 0

    def __post_init__(self) -> None:
        if self.kind not in OutcomeKind.values:
            raise ValueError(f"Unknown outcome kind {self.kind!r}")
        if self.refund_cents < 0:
            raise ValueError("refund_cents cannot be negative")
        if self.kind != OutcomeKind.SPLIT and self.refund_cents:
            raise ValueError("refund_cents only applies to split outcomes")

    @classmethod
    def release(cls) -> Outcome:
        return cls(kind=OutcomeKind.RELEASE)

    @classmethod
    def refund(cls) -> Outcome:
        return cls(kind=OutcomeKind.REFUND)

    @classmethod
    def split(cls, refund_cents: int) -> Outcome:
        return cls(kind=OutcomeKind.SPLIT, refund_cents=refund_cents)

    def refund_amount(self, disputed_cents: int) -> int:
        """
        Customer's share of the disputed amount.

        Raises:
            ValueError: If a split refunds more than was disputed
        """
        if self.kind == OutcomeKind.RELEASE:
            return 0
        if self.kind == OutcomeKind.REFUND:
            return disputed_cents
        if self.refund_cents > disputed_cents:
            raise ValueError(
                f"Split refund {self.refund_cents} exceeds disputed amount {disputed_cents}"
            )
        return self.refund_cents

    def to_dict(self) -> dict[str, int | str]:
        return {"kind": str(self.kind), "refund_cents": self.refund_cents}


@dataclass(frozen=True)
class Settlement:
    """Amounts to move when an escrow is settled."""

    payout_cents: int
    fee_cents: int
    refund_cents: int

    @property
    def total_cents(self) -> int:
        return self.payout_cents + self.fee_cents + self.refund_cents


def calculate_platform_fee(amount_cents: int, commission_rate: Decimal) -> int:
    """
    Platform commission on an amount, rounded half up to whole cents.

    Example:
        calculate_platform_fee(10000, Decimal("0.08"))  # 800
        calculate_platform_fee(1999, Decimal("0.08"))   # 160 (159.92)
    """
    fee = (Decimal(amount_cents) * commission_rate).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(fee)


def allocate_settlement(
    remaining_cents: int,
    refund_cents: int,
    amount_cents: int,
    platform_fee_cents: int,
    commission_rate: Decimal,
    policy: str = FeePolicy.PRORATED,
) -> Settlement:
    """
    Split the remaining escrow balance into payout, fee and refund.

    Args:
        remaining_cents: Escrow balance not yet paid out or refunded
        refund_cents: Amount the customer gets back
        amount_cents: Originally authorized amount
        platform_fee_cents: Fee locked at authorization
        commission_rate: Rate locked at authorization
        policy: FeePolicy value

    Returns:
        Settlement whose parts sum to remaining_cents

    Raises:
        ValueError: If refund_cents is negative or exceeds remaining_cents
    """
    if refund_cents < 0 or refund_cents > remaining_cents:
        raise ValueError(
            f"refund_cents {refund_cents} outside [0, {remaining_cents}]"
        )

    released_cents = remaining_cents - refund_cents

    if policy == FeePolicy.RETAIN_FULL_FEE:
        fee = min(platform_fee_cents, remaining_cents)
        shortfall = max(fee - released_cents, 0)
        return Settlement(
            payout_cents=max(released_cents - fee, 0),
            fee_cents=fee,
            refund_cents=refund_cents - shortfall,
        )

    if released_cents == amount_cents:
        # Untouched escrow released in full: use the stored fee exactly
        fee = platform_fee_cents
    else:
        fee = calculate_platform_fee(released_cents, commission_rate)
    return Settlement(
        payout_cents=released_cents - fee,
        fee_cents=fee,
        refund_cents=refund_cents,
    )
