"""Tests for EscrowConfig."""

from decimal import Decimal

import pytest

from payments.config import EscrowConfig
from payments.settlement import FeePolicy
from payments.state_machines import CaptureMode


class TestEscrowConfig:
    def test_defaults(self):
        config = EscrowConfig()

        assert config.commission_rate == Decimal("0.08")
        assert config.minimum_charge_cents == 50
        assert config.default_capture_mode == CaptureMode.MANUAL
        assert config.split_fee_policy == FeePolicy.PRORATED

    @pytest.mark.parametrize("rate", [Decimal("-0.01"), Decimal("1"), Decimal("1.5")])
    def test_commission_rate_bounds(self, rate):
        with pytest.raises(ValueError):
            EscrowConfig(commission_rate=rate)

    def test_minimum_charge_must_be_positive(self):
        with pytest.raises(ValueError):
            EscrowConfig(minimum_charge_cents=0)

    def test_unknown_capture_mode(self):
        with pytest.raises(ValueError, match="capture mode"):
            EscrowConfig(default_capture_mode="eventually")

    def test_unknown_fee_policy(self):
        with pytest.raises(ValueError, match="fee policy"):
            EscrowConfig(split_fee_policy="provider_pays_everything")

    def test_is_immutable(self):
        config = EscrowConfig()

        with pytest.raises(AttributeError):
            config.commission_rate = Decimal("0.5")


class TestFromSettings:
    """EscrowConfig.from_settings reads the ESCROW_* settings."""

    def test_percent_is_converted_to_rate(self, settings):
        settings.ESCROW_COMMISSION_PERCENT = "12.5"

        assert EscrowConfig.from_settings().commission_rate == Decimal("0.125")

    def test_reads_policy_and_mode(self, settings):
        settings.ESCROW_SPLIT_FEE_POLICY = FeePolicy.RETAIN_FULL_FEE
        settings.ESCROW_DEFAULT_CAPTURE_MODE = CaptureMode.AUTOMATIC
        settings.ESCROW_LOCK_TIMEOUT_SECONDS = 2.5

        config = EscrowConfig.from_settings()

        assert config.split_fee_policy == FeePolicy.RETAIN_FULL_FEE
        assert config.default_capture_mode == CaptureMode.AUTOMATIC
        assert config.lock_timeout_seconds == 2.5

    def test_invalid_setting_rejected(self, settings):
        settings.ESCROW_SPLIT_FEE_POLICY = "nobody_pays"

        with pytest.raises(ValueError):
            EscrowConfig.from_settings()
