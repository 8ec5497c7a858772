"""Export Excel multi-onglets et résumé console."""

from __future__ import annotations

from collections import Counter
from io import BytesIO
from pathlib import Path

import pandas as pd

from frais_courses.engine.collecte import clamp_collecte, summarize_collectes
from frais_courses.models import Anomaly, CollecteFrais, FeeBreakdown

COURSES_COLUMNS = [
    "order_id",
    "driver_id",
    "prestataire_id",
    "is_salarie_plateforme",
    "total_price",
    "base_fare",
    "distance_km",
    "distance_price",
    "billable_minutes",
    "waiting_price",
    "supplements_total",
    "paid_stops_cost",
    "majorations",
    "service_fee_percent",
    "service_fee",
    "supplementary_commission_percent",
    "supplementary_commission",
    "driver_commission_percent",
    "driver_earnings",
    "prestataire_earnings",
    "platform_total",
]

COLLECTE_COLUMNS = [
    "id",
    "periode",
    "prestataire_id",
    "driver_id",
    "nb_courses",
    "frais_service",
    "commission_supplementaire",
    "montant_du",
    "montant_paye",
    "reste_a_payer",
    "statut",
    "paid_at",
]

ANOMALIES_COLUMNS = [
    "type",
    "severity",
    "reference",
    "detail",
    "expected_value",
    "actual_value",
]


def _build_frames(
    breakdowns: list[FeeBreakdown],
    collectes: list[CollecteFrais],
    anomalies: list[Anomaly],
) -> dict[str, pd.DataFrame]:
    df_courses = pd.DataFrame(
        [{col: getattr(b, col) for col in COURSES_COLUMNS} for b in breakdowns],
        columns=COURSES_COLUMNS,
    )

    collecte_data = []
    for entry in collectes:
        shown = clamp_collecte(entry)
        collecte_data.append(
            {
                "id": shown.id,
                "periode": shown.periode,
                "prestataire_id": shown.prestataire_id,
                "driver_id": shown.driver_id,
                "nb_courses": len(shown.order_ids),
                "frais_service": shown.frais_service,
                "commission_supplementaire": shown.commission_supplementaire,
                "montant_du": shown.montant_du,
                "montant_paye": shown.montant_paye,
                "reste_a_payer": shown.reste_a_payer,
                "statut": shown.statut,
                "paid_at": shown.paid_at.isoformat() if shown.paid_at else None,
            }
        )
    df_collecte = pd.DataFrame(collecte_data, columns=COLLECTE_COLUMNS)

    df_anomalies = pd.DataFrame(
        [{col: getattr(a, col) for col in ANOMALIES_COLUMNS} for a in anomalies],
        columns=ANOMALIES_COLUMNS,
    )
    return {"Courses": df_courses, "Collecte": df_collecte, "Anomalies": df_anomalies}


def _write(frames: dict[str, pd.DataFrame], target: Path | BytesIO) -> None:
    with pd.ExcelWriter(target, engine="openpyxl") as writer:
        for sheet_name, df in frames.items():
            df.to_excel(writer, sheet_name=sheet_name, index=False)


def export(
    breakdowns: list[FeeBreakdown],
    collectes: list[CollecteFrais],
    anomalies: list[Anomaly],
    output_path: Path,
) -> None:
    """Exporte le détail des courses, la collecte et les anomalies dans un fichier Excel."""
    _write(_build_frames(breakdowns, collectes, anomalies), output_path)


def export_to_bytes(
    breakdowns: list[FeeBreakdown],
    collectes: list[CollecteFrais],
    anomalies: list[Anomaly],
) -> BytesIO:
    """Même classeur que ``export``, en mémoire (téléchargement API)."""
    buffer = BytesIO()
    _write(_build_frames(breakdowns, collectes, anomalies), buffer)
    buffer.seek(0)
    return buffer


def print_summary(
    breakdowns: list[FeeBreakdown],
    collectes: list[CollecteFrais],
    anomalies: list[Anomaly],
) -> None:
    """Affiche un résumé en console."""
    print("=== Résumé ===")
    print(f"Courses calculées : {len(breakdowns)}")
    if breakdowns:
        print(f"  Prix total        : {sum(b.total_price for b in breakdowns)} XPF")
        print(f"  Part chauffeurs   : {sum(b.driver_earnings for b in breakdowns)} XPF")
        print(f"  Part prestataires : {sum(b.prestataire_earnings for b in breakdowns)} XPF")
        print(f"  Part plateforme   : {sum(b.platform_total for b in breakdowns)} XPF")

    totals = summarize_collectes(collectes)
    print(f"Lignes de collecte : {totals['nb_collectes']}")
    if collectes:
        print(f"  Dû      : {totals['total_du']} XPF")
        print(f"  Versé   : {totals['total_paye']} XPF")
        print(f"  Restant : {totals['total_restant']} XPF")

    n_serious = len([a for a in anomalies if a.severity != "info"])
    n_info = len([a for a in anomalies if a.severity == "info"])

    if not anomalies:
        print("Aucune anomalie détectée")
        return

    print(f"Anomalies : {n_serious} warning/error, {n_info} info")

    # Ventilation par type (ordre d'apparition)
    type_order: list[str] = []
    type_counts: Counter[str] = Counter()
    type_severity: dict[str, str] = {}
    for a in anomalies:
        if a.type not in type_severity:
            type_order.append(a.type)
            type_severity[a.type] = a.severity
        type_counts[a.type] += 1

    print("  Par type :")
    for anom_type in type_order:
        suffix = "  (info)" if type_severity[anom_type] == "info" else ""
        print(f"    {anom_type:<24s}: {type_counts[anom_type]}{suffix}")
