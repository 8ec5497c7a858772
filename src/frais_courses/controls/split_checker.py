"""Contrôle de cohérence des répartitions calculées."""

from __future__ import annotations

import logging

from frais_courses.models import Anomaly, FeeBreakdown

logger = logging.getLogger(__name__)


class SplitChecker:
    """Vérifie chaque détail de course après calcul."""

    @staticmethod
    def check(breakdowns: list[FeeBreakdown]) -> list[Anomaly]:
        """Retourne les anomalies de répartition de toutes les courses."""
        anomalies: list[Anomaly] = []
        for breakdown in breakdowns:
            anomalies.extend(SplitChecker._check_shares(breakdown))
            anomalies.extend(SplitChecker._check_majorations(breakdown))
        return anomalies

    @staticmethod
    def _check_shares(breakdown: FeeBreakdown) -> list[Anomaly]:
        """Contrôle 1 : chauffeur + prestataire + plateforme = prix total."""
        shares = breakdown.driver_earnings + breakdown.prestataire_earnings + breakdown.platform_total
        if shares == breakdown.total_price:
            return []
        return [
            Anomaly(
                type="rounding_drift",
                severity="error",
                reference=breakdown.order_id,
                detail=(
                    f"Répartition incohérente : chauffeur {breakdown.driver_earnings} + prestataire "
                    f"{breakdown.prestataire_earnings} + plateforme {breakdown.platform_total} = {shares} XPF "
                    f"pour un prix total de {breakdown.total_price} XPF"
                ),
                expected_value=str(breakdown.total_price),
                actual_value=str(shares),
            )
        ]

    @staticmethod
    def _check_majorations(breakdown: FeeBreakdown) -> list[Anomaly]:
        """Contrôle 2 : les composantes connues ne dépassent pas le prix hors frais."""
        if breakdown.majorations >= 0:
            return []
        return [
            Anomaly(
                type="negative_majoration",
                severity="warning",
                reference=breakdown.order_id,
                detail=(
                    f"Les composantes connues (base, distance, attente, suppléments, arrêts) dépassent "
                    f"le prix hors frais de {-breakdown.majorations} XPF : tarif modifié après la commande ?"
                ),
                expected_value="0",
                actual_value=str(breakdown.majorations),
            )
        ]
