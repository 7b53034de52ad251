"""
Escrow configuration passed to the escrow service.

Settings are read once into a frozen dataclass and injected into
EscrowService, so tests can run both capture modes and both fee policies
side by side without mutating settings.

Usage:
    from payments.config import EscrowConfig

    config = EscrowConfig.from_settings()
    strict = EscrowConfig(split_fee_policy=FeePolicy.RETAIN_FULL_FEE)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings

from payments.settlement import FeePolicy
from payments.state_machines import CaptureMode


@dataclass(frozen=True)
class EscrowConfig:
    """
    Attributes:
        commission_rate: Platform fee as a fraction (0.08 for 8%)
        minimum_charge_cents: Smallest amount the gateway will charge
        default_capture_mode: Capture mode when authorize() is not told
        currency: ISO 4217 currency for new escrows
        split_fee_policy: How the fee is taken when a dispute settles
        lock_ttl_seconds: TTL of the per-booking lock, renewed before each
            gateway call
        lock_timeout_seconds: How long to wait for the per-booking lock
    """

    commission_rate: Decimal = Decimal("0.08")
    minimum_charge_cents: int = 50
    default_capture_mode: str = CaptureMode.MANUAL
    currency: str = "usd"
    split_fee_policy: str = FeePolicy.PRORATED
    lock_ttl_seconds: int = 60
    lock_timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        if not Decimal("0") <= self.commission_rate < Decimal("1"):
            raise ValueError("commission_rate must be in [0, 1)")
        if self.minimum_charge_cents <= 0:
            raise ValueError("minimum_charge_cents must be positive")
        if self.default_capture_mode not in CaptureMode.values:
            raise ValueError(f"Unknown capture mode {self.default_capture_mode!r}")
        if self.split_fee_policy not in FeePolicy.values:
            raise ValueError(f"Unknown fee policy {self.split_fee_policy!r}")

    @classmethod
    def from_settings(cls) -> EscrowConfig:
        percent = Decimal(str(getattr(settings, "ESCROW_COMMISSION_PERCENT", "8")))
        return cls(
            commission_rate=percent / Decimal("100"),
            minimum_charge_cents=getattr(settings, "ESCROW_MINIMUM_CHARGE_CENTS", 50),
            default_capture_mode=getattr(
                settings, "ESCROW_DEFAULT_CAPTURE_MODE", CaptureMode.MANUAL
            ),
            currency=getattr(settings, "ESCROW_CURRENCY", "usd"),
            split_fee_policy=getattr(
                settings, "ESCROW_SPLIT_FEE_POLICY", FeePolicy.PRORATED
            ),
            lock_ttl_seconds=getattr(settings, "ESCROW_LOCK_TTL_SECONDS", 60),
            lock_timeout_seconds=getattr(settings, "ESCROW_LOCK_TIMEOUT_SECONDS", 10.0),
        )
