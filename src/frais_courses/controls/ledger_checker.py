"""Contrôle des invariants du registre de collecte."""

from __future__ import annotations

from frais_courses.models import Anomaly, CollecteFrais


class LedgerChecker:
    """Contrôle des lignes de collecte : dû, versé et indicateur de solde."""

    @staticmethod
    def check(collectes: list[CollecteFrais]) -> list[Anomaly]:
        anomalies: list[Anomaly] = []
        for entry in collectes:
            if entry.montant_paye > entry.montant_du:
                anomalies.append(
                    Anomaly(
                        type="overpaid",
                        severity="warning",
                        reference=entry.id,
                        detail=(
                            f"Montant versé ({entry.montant_paye} XPF) supérieur au montant dû "
                            f"({entry.montant_du} XPF), affiché ramené au dû"
                        ),
                        expected_value=str(entry.montant_du),
                        actual_value=str(entry.montant_paye),
                    )
                )
            if entry.is_paid and entry.montant_paye < entry.montant_du:
                anomalies.append(
                    Anomaly(
                        type="paid_flag_inconsistent",
                        severity="error",
                        reference=entry.id,
                        detail=(
                            f"Collecte marquée soldée avec {entry.montant_paye} XPF versés "
                            f"sur {entry.montant_du} XPF dus"
                        ),
                        expected_value=str(entry.montant_du),
                        actual_value=str(entry.montant_paye),
                    )
                )
            if not entry.is_paid and entry.montant_du > 0 and entry.montant_paye >= entry.montant_du:
                anomalies.append(
                    Anomaly(
                        type="settled_not_flagged",
                        severity="info",
                        reference=entry.id,
                        detail="Montant dû entièrement versé mais collecte non marquée soldée",
                        expected_value="paid",
                        actual_value=entry.statut,
                    )
                )
        return anomalies
