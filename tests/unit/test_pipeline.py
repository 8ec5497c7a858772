"""Tests unitaires pour pipeline.py (détection des fichiers, résumé, périodes)."""

from __future__ import annotations

import dataclasses
import datetime
from io import BytesIO
from pathlib import Path

import pytest

from frais_courses.config.loader import AppConfig
from frais_courses.models import Anomaly, CollecteFrais, Driver, NoResultError, Order, ParseResult
from frais_courses.pipeline import PipelineOrchestrator, dedupe_anomalies

PATTERNS = {"orders": "orders*.csv", "drivers": "drivers*.csv", "collecte": "collecte_frais*.csv"}
NOW = datetime.datetime(2026, 2, 1, 8, 0)


def _make_order(order_id: str, created_at: datetime.datetime, status: str = "payment_confirmed") -> Order:
    return Order(
        id=order_id,
        created_at=created_at,
        status=status,
        total_price=2300.0,
        driver_earnings=None,
        base_fare=1000.0,
        price_per_km=0.0,
        initial_total_price=None,
        distance=None,
        waiting_time_minutes=None,
        supplements=[],
        payment_method="cash",
        assigned_driver_id="DRV001",
    )


def _make_result(orders: list[Order], collectes: list[CollecteFrais] | None = None) -> ParseResult:
    driver = Driver(id="DRV001", first_name="Teva", last_name="Tane", type_chauffeur="patente", prestataire_id="PRE001")
    return ParseResult(orders=orders, drivers=[driver], prestataires=[], anomalies=[], collectes=collectes or [])


def _make_anomaly(type_: str, reference: str, severity: str) -> Anomaly:
    return Anomaly(
        type=type_, severity=severity, reference=reference, detail="", expected_value=None, actual_value=None
    )


class TestDetectFiles:
    def test_glob_patterns(self, tmp_path: Path) -> None:
        (tmp_path / "orders_2026.csv").write_text("id\n")
        (tmp_path / "drivers.csv").write_text("id\n")
        (tmp_path / "notes.txt").write_text("")
        found = PipelineOrchestrator._detect_files(tmp_path, PATTERNS)
        assert set(found) == {"orders", "drivers"}
        assert found["orders"] == tmp_path / "orders_2026.csv"

    def test_first_match_wins(self, tmp_path: Path) -> None:
        (tmp_path / "orders_b.csv").write_text("id\n")
        (tmp_path / "orders_a.csv").write_text("id\n")
        found = PipelineOrchestrator._detect_files(tmp_path, PATTERNS)
        assert found["orders"] == tmp_path / "orders_a.csv"

    def test_buffers(self) -> None:
        files = {"exports/orders.csv": b"id\nORD001\n", "drivers_jan.csv": b"id\n", "readme.md": b""}
        found = PipelineOrchestrator._detect_files_from_buffers(files, PATTERNS)
        assert set(found) == {"orders", "drivers"}
        orders = found["orders"]
        assert isinstance(orders, BytesIO)
        assert orders.read() == b"id\nORD001\n"

    def test_required_files(self) -> None:
        with pytest.raises(NoResultError, match="drivers"):
            PipelineOrchestrator._check_required({"orders": BytesIO(b"")})


class TestProcessParseResult:
    def test_no_orders(self, sample_config: AppConfig) -> None:
        with pytest.raises(NoResultError, match="Aucune course"):
            PipelineOrchestrator()._process_parse_result(_make_result([]), sample_config, None, NOW)

    def test_invalid_periode(self, sample_config: AppConfig) -> None:
        result = _make_result([_make_order("O1", datetime.datetime(2026, 1, 5))])
        with pytest.raises(ValueError, match="Période invalide"):
            PipelineOrchestrator()._process_parse_result(result, sample_config, "2026-1", NOW)

    def test_every_confirmed_period_recomputed(self, sample_config: AppConfig) -> None:
        orders = [
            _make_order("O1", datetime.datetime(2026, 1, 5)),
            _make_order("O2", datetime.datetime(2026, 2, 5)),
            _make_order("O3", datetime.datetime(2026, 3, 5), status="completed"),
        ]
        breakdowns, collectes, anomalies = PipelineOrchestrator()._process_parse_result(
            _make_result(orders), sample_config, None, NOW
        )
        assert len(breakdowns) == 3
        assert [c.id for c in collectes] == ["2026-01:prestataire:PRE001", "2026-02:prestataire:PRE001"]
        assert anomalies == []

    def test_single_periode_keeps_other_ledger_rows(self, sample_config: AppConfig) -> None:
        december = CollecteFrais(
            id="2025-12:prestataire:PRE001",
            prestataire_id="PRE001",
            driver_id=None,
            periode="2025-12",
            montant_du=900,
            frais_service=900,
            commission_supplementaire=0,
            montant_paye=900,
            order_ids=["O0"],
            is_paid=True,
            paid_at=datetime.datetime(2026, 1, 10),
            marked_by_admin_at=datetime.datetime(2026, 1, 10),
            created_at=datetime.datetime(2026, 1, 1),
        )
        orders = [_make_order("O1", datetime.datetime(2026, 1, 5)), _make_order("O2", datetime.datetime(2026, 2, 5))]
        _, collectes, _ = PipelineOrchestrator()._process_parse_result(
            _make_result(orders, [december]), sample_config, "2026-01", NOW
        )
        assert [c.id for c in collectes] == ["2025-12:prestataire:PRE001", "2026-01:prestataire:PRE001"]
        assert collectes[0] is december
        assert collectes[1].montant_du == 300

    def test_invalid_order_reported_once(self, sample_config: AppConfig) -> None:
        bad = dataclasses.replace(_make_order("BAD", datetime.datetime(2026, 1, 7)), total_price=-5.0)
        orders = [_make_order("O1", datetime.datetime(2026, 1, 5)), bad]
        _, collectes, anomalies = PipelineOrchestrator()._process_parse_result(
            _make_result(orders), sample_config, None, NOW
        )
        assert [(a.type, a.reference) for a in anomalies] == [("invalid_order", "BAD")]
        assert collectes[0].order_ids == ["O1"]

    def test_unknown_driver_reported_once_as_error(self, sample_config: AppConfig) -> None:
        ghost = dataclasses.replace(_make_order("O9", datetime.datetime(2026, 1, 7)), assigned_driver_id="GHOST")
        _, _, anomalies = PipelineOrchestrator()._process_parse_result(
            _make_result([ghost]), sample_config, None, NOW
        )
        assert [(a.type, a.reference, a.severity) for a in anomalies] == [("unknown_driver", "O9", "error")]


class TestDedupeAnomalies:
    def test_most_severe_kept_in_first_position(self) -> None:
        anomalies = [
            _make_anomaly("unknown_driver", "O1", "warning"),
            _make_anomaly("invalid_order", "O2", "error"),
            _make_anomaly("unknown_driver", "O1", "error"),
        ]
        assert [(a.type, a.reference, a.severity) for a in dedupe_anomalies(anomalies)] == [
            ("unknown_driver", "O1", "error"),
            ("invalid_order", "O2", "error"),
        ]

    def test_distinct_references_kept(self) -> None:
        anomalies = [_make_anomaly("invalid_order", "O1", "error"), _make_anomaly("invalid_order", "O2", "error")]
        assert dedupe_anomalies(anomalies) == anomalies


class TestBuildSummary:
    def test_summary_keys(self, sample_config: AppConfig) -> None:
        result = _make_result(
            [_make_order("O1", datetime.datetime(2026, 1, 5)), _make_order("O2", datetime.datetime(2026, 1, 6), "cancelled")]
        )
        breakdowns, collectes, _ = PipelineOrchestrator()._process_parse_result(result, sample_config, None, NOW)
        summary = PipelineOrchestrator._build_summary(result, breakdowns, collectes)
        assert summary["nb_courses"] == 2
        assert summary["nb_courses_calculees"] == 2
        assert summary["courses_par_statut"] == {"payment_confirmed": 1, "cancelled": 1}
        repartition = summary["repartition"]
        assert isinstance(repartition, dict)
        assert repartition["prix_total"] == 4600
        assert repartition["frais_service"] == 600
        collecte = summary["collecte"]
        assert isinstance(collecte, dict)
        assert collecte["total_du"] == 300
        assert list(summary["collecte_par_periode"]) == ["2026-01"]  # type: ignore[call-overload]
