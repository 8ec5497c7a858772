"""Tests unitaires pour engine/service_fee et engine/amounts."""

from __future__ import annotations

import datetime

import pytest

from frais_courses.engine.amounts import is_valid_periode, periode_of, require_amount, round_xpf
from frais_courses.engine.service_fee import split_service_fee
from frais_courses.models import InvalidOrderError


class TestRoundXpf:
    def test_half_rounds_up(self) -> None:
        assert round_xpf(1304.5) == 1305
        assert round_xpf(2.5) == 3

    def test_below_half_rounds_down(self) -> None:
        assert round_xpf(1304.4999) == 1304

    def test_integer_unchanged(self) -> None:
        assert round_xpf(11500.0) == 11500


class TestRequireAmount:
    def test_valid(self) -> None:
        assert require_amount(42, "x", "ORD") == 42.0

    @pytest.mark.parametrize("value", [None, "100", True, float("nan"), float("inf"), -1])
    def test_invalid(self, value: object) -> None:
        with pytest.raises(InvalidOrderError):
            require_amount(value, "total_price", "ORD001")

    def test_missing_message_names_field(self) -> None:
        with pytest.raises(InvalidOrderError, match="total_price"):
            require_amount(None, "total_price", "ORD001")


class TestPeriode:
    def test_periode_of(self) -> None:
        assert periode_of(datetime.datetime(2026, 1, 31, 23, 59)) == "2026-01"
        assert periode_of(datetime.date(2025, 12, 1)) == "2025-12"

    def test_periode_of_aware_uses_utc(self) -> None:
        # 31 janvier 20h à Tahiti = 1er février 6h UTC
        assert periode_of(datetime.datetime.fromisoformat("2026-01-31T20:00:00-10:00")) == "2026-02"
        assert periode_of(datetime.datetime.fromisoformat("2026-02-01T05:00:00+11:00")) == "2026-01"

    def test_is_valid_periode(self) -> None:
        assert is_valid_periode("2026-01")
        assert not is_valid_periode("2026-13")
        assert not is_valid_periode("2026-1")
        assert not is_valid_periode("janvier")


class TestSplitServiceFee:
    def test_reference_example(self) -> None:
        split = split_service_fee(11500, 15)
        assert split.pre_fee_subtotal == 10000
        assert split.service_fee == 1500

    def test_parts_sum_to_total(self) -> None:
        for total in (1, 999, 2345, 7777, 12345, 100001):
            split = split_service_fee(total, 15)
            assert split.pre_fee_subtotal + split.service_fee == total

    def test_zero_percent_means_no_fee(self) -> None:
        split = split_service_fee(11500, 0)
        assert split.service_fee == 0
        assert split.pre_fee_subtotal == 11500

    def test_rounding_half_up(self) -> None:
        # 1001 / 1.1 = 910.0909 → 910 ; frais = 91
        split = split_service_fee(1001, 10)
        assert split.pre_fee_subtotal == 910
        assert split.service_fee == 91

    def test_hundred_percent_rejected(self) -> None:
        with pytest.raises(InvalidOrderError, match="hors bornes"):
            split_service_fee(11500, 100)

    def test_negative_percent_rejected(self) -> None:
        with pytest.raises(InvalidOrderError):
            split_service_fee(11500, -5)

    def test_negative_total_rejected(self) -> None:
        with pytest.raises(InvalidOrderError):
            split_service_fee(-1, 15)

    def test_missing_total_rejected(self) -> None:
        with pytest.raises(InvalidOrderError, match="manquant"):
            split_service_fee(None, 15)  # type: ignore[arg-type]
