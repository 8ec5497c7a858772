"""Tests unitaires pour controls/split_checker et controls/ledger_checker."""

from __future__ import annotations

import dataclasses
import datetime

from frais_courses.controls.ledger_checker import LedgerChecker
from frais_courses.controls.split_checker import SplitChecker
from frais_courses.models import CollecteFrais, FeeBreakdown


def _make_breakdown(**overrides: object) -> FeeBreakdown:
    fields: dict[str, object] = {
        "order_id": "ORD001",
        "driver_id": "DRV001",
        "prestataire_id": "PRE001",
        "is_salarie_plateforme": False,
        "total_price": 11500,
        "base_fare": 1000,
        "distance_km": 12.5,
        "distance_price": 1875,
        "billable_minutes": 0,
        "waiting_price": 0,
        "supplements_total": 0,
        "paid_stops_cost": 0,
        "majorations": 7125,
        "service_fee_percent": 15.0,
        "service_fee": 1500,
        "supplementary_commission_percent": 0.0,
        "supplementary_commission": 0,
        "driver_commission_percent": 95.0,
        "driver_earnings": 9500,
        "prestataire_earnings": 500,
        "platform_total": 1500,
    }
    fields.update(overrides)
    return FeeBreakdown(**fields)  # type: ignore[arg-type]


def _make_collecte(montant_du: int, montant_paye: int, is_paid: bool) -> CollecteFrais:
    return CollecteFrais(
        id="2026-01:prestataire:PRE001",
        prestataire_id="PRE001",
        driver_id=None,
        periode="2026-01",
        montant_du=montant_du,
        frais_service=montant_du,
        commission_supplementaire=0,
        montant_paye=montant_paye,
        order_ids=["ORD001"],
        is_paid=is_paid,
        paid_at=None,
        marked_by_admin_at=None,
        created_at=datetime.datetime(2026, 2, 1),
    )


class TestSplitChecker:
    def test_consistent_breakdown(self) -> None:
        assert SplitChecker.check([_make_breakdown()]) == []

    def test_drift_detected(self) -> None:
        anomalies = SplitChecker.check([_make_breakdown(driver_earnings=9501)])
        assert len(anomalies) == 1
        assert anomalies[0].type == "rounding_drift"
        assert anomalies[0].severity == "error"
        assert anomalies[0].expected_value == "11500"
        assert anomalies[0].actual_value == "11501"

    def test_negative_majorations_warned(self) -> None:
        anomalies = SplitChecker.check([_make_breakdown(majorations=-250)])
        assert [a.type for a in anomalies] == ["negative_majoration"]
        assert anomalies[0].severity == "warning"
        assert "250 XPF" in anomalies[0].detail

    def test_multiple_breakdowns(self) -> None:
        good = _make_breakdown()
        bad = dataclasses.replace(good, order_id="ORD002", platform_total=1400)
        anomalies = SplitChecker.check([good, bad])
        assert [a.reference for a in anomalies] == ["ORD002"]


class TestLedgerChecker:
    def test_consistent_entries(self) -> None:
        entries = [_make_collecte(1800, 0, False), _make_collecte(1800, 900, False), _make_collecte(1800, 1800, True)]
        assert LedgerChecker.check(entries) == []

    def test_overpaid(self) -> None:
        anomalies = LedgerChecker.check([_make_collecte(1800, 2000, True)])
        assert [a.type for a in anomalies] == ["overpaid"]

    def test_paid_flag_without_payment(self) -> None:
        anomalies = LedgerChecker.check([_make_collecte(1800, 500, True)])
        assert [a.type for a in anomalies] == ["paid_flag_inconsistent"]
        assert anomalies[0].severity == "error"

    def test_settled_not_flagged(self) -> None:
        anomalies = LedgerChecker.check([_make_collecte(1800, 1800, False)])
        assert [a.type for a in anomalies] == ["settled_not_flagged"]
        assert anomalies[0].severity == "info"
