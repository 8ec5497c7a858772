"""Conversion des dataclasses métier vers les structures JSON de l'API."""

from __future__ import annotations

import dataclasses
import datetime

from frais_courses.models import Anomaly, CollecteFrais, FeeBreakdown, RecomputeResult


def _isoformat(value: datetime.datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def serialize_breakdown(breakdown: FeeBreakdown) -> dict[str, object]:
    return dataclasses.asdict(breakdown)


def serialize_anomaly(anomaly: Anomaly) -> dict[str, object]:
    """Sérialise une Anomaly vers le format JSON de l'API."""
    return {
        "type": anomaly.type,
        "severity": anomaly.severity,
        "reference": anomaly.reference,
        "detail": anomaly.detail,
        "expected_value": anomaly.expected_value,
        "actual_value": anomaly.actual_value,
    }


def serialize_collecte(entry: CollecteFrais) -> dict[str, object]:
    """Sérialise une ligne de collecte ; relisible par ``collecte_from_record``."""
    return {
        "id": entry.id,
        "prestataire_id": entry.prestataire_id,
        "driver_id": entry.driver_id,
        "periode": entry.periode,
        "montant_du": entry.montant_du,
        "frais_service": entry.frais_service,
        "commission_supplementaire": entry.commission_supplementaire,
        "montant_paye": entry.montant_paye,
        "reste_a_payer": entry.reste_a_payer,
        "statut": entry.statut,
        "order_ids": list(entry.order_ids),
        "is_paid": entry.is_paid,
        "paid_at": _isoformat(entry.paid_at),
        "marked_by_admin_at": _isoformat(entry.marked_by_admin_at),
        "created_at": _isoformat(entry.created_at),
    }


def serialize_recompute(result: RecomputeResult, summary: dict[str, object]) -> dict[str, object]:
    return {
        "periode": result.periode,
        "collectes": [serialize_collecte(c) for c in result.collectes],
        "anomalies": [serialize_anomaly(a) for a in result.anomalies],
        "total_courses": result.total_courses,
        "total_commission": result.total_commission,
        "skipped": result.skipped,
        "summary": summary,
    }


def serialize_response(
    breakdowns: list[FeeBreakdown],
    collectes: list[CollecteFrais],
    anomalies: list[Anomaly],
    summary: dict[str, object],
) -> dict[str, object]:
    """Assemble la réponse complète du traitement d'un export."""
    return {
        "courses": [serialize_breakdown(b) for b in breakdowns],
        "collectes": [serialize_collecte(c) for c in collectes],
        "anomalies": [serialize_anomaly(a) for a in anomalies],
        "summary": summary,
    }
