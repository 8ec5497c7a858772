"""Détail complet d'une course : tarif, suppléments, frais et répartition."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from frais_courses.config.loader import AppConfig
from frais_courses.engine.amounts import require_amount, round_xpf
from frais_courses.engine.commission import split_commission, split_salarie
from frais_courses.engine.fare import compute_fare_base
from frais_courses.engine.service_fee import split_service_fee
from frais_courses.engine.supplements import sum_supplements
from frais_courses.models import (
    Anomaly,
    Driver,
    FeeBreakdown,
    InvalidOrderError,
    Order,
    RoundingDriftError,
)

logger = logging.getLogger(__name__)


def compute_breakdown(order: Order, driver: Driver | None, config: AppConfig) -> FeeBreakdown:
    """Calcule le détail d'une course.

    Une course sans chauffeur, ou avec un chauffeur rattaché à un
    prestataire ou patenté, suit la répartition prestataire (frais de service
    + commission supplémentaire + partage chauffeur/prestataire). Un salarié
    de la plateforme n'est soumis à aucun frais.

    Les majorations (passagers, altitude…) ne sont pas détaillées sur la
    commande : elles sont retrouvées comme le reste du sous-total hors frais
    après déduction des composantes connues.
    """
    fare = compute_fare_base(order, config.tarifs)
    supplements_total = sum_supplements(order.supplements)
    paid_stops_cost = round_xpf(require_amount(order.paid_stops_cost, "paid_stops_cost", order.id))
    total_price = round_xpf(require_amount(order.total_price, "total_price", order.id))
    known_total = fare.base_fare + fare.distance_price + fare.waiting_price + supplements_total + paid_stops_cost

    if driver is not None and driver.is_salarie_plateforme:
        split = split_salarie(order.total_price, order.driver_earnings, order.id)
        fee_percent = 0.0
        supp_percent = 0.0
        majorations = total_price - known_total
    else:
        fee_percent = config.frais.frais_service_prestataire
        supp_percent = config.frais.commission_prestataire
        driver_percent = (
            driver.commission_chauffeur if driver is not None else config.tarifs.commission_chauffeur_defaut
        )
        fee_split = split_service_fee(order.total_at_confirmation, fee_percent, order.id)
        split = split_commission(
            order.total_price,
            order.total_at_confirmation,
            fee_split.service_fee,
            supp_percent,
            driver_percent,
            order.id,
        )
        subtotal_before_fee = split_service_fee(order.total_price, fee_percent, order.id).pre_fee_subtotal
        majorations = subtotal_before_fee - known_total

    return FeeBreakdown(
        order_id=order.id,
        driver_id=driver.id if driver is not None else order.assigned_driver_id,
        prestataire_id=driver.prestataire_id if driver is not None else None,
        is_salarie_plateforme=driver is not None and driver.is_salarie_plateforme,
        total_price=split.total_price,
        base_fare=fare.base_fare,
        distance_km=fare.distance_km,
        distance_price=fare.distance_price,
        billable_minutes=fare.billable_minutes,
        waiting_price=fare.waiting_price,
        supplements_total=supplements_total,
        paid_stops_cost=paid_stops_cost,
        majorations=majorations,
        service_fee_percent=fee_percent,
        service_fee=split.service_fee,
        supplementary_commission_percent=supp_percent,
        supplementary_commission=split.supplementary_commission,
        driver_commission_percent=split.driver_commission_percent,
        driver_earnings=split.driver_earnings,
        prestataire_earnings=split.prestataire_earnings,
        platform_total=split.platform_total,
    )


def compute_breakdowns(
    orders: Iterable[Order],
    drivers: Mapping[str, Driver],
    config: AppConfig,
) -> tuple[list[FeeBreakdown], list[Anomaly]]:
    """Calcule le détail de chaque course ; une course invalide est écartée et signalée."""
    breakdowns: list[FeeBreakdown] = []
    anomalies: list[Anomaly] = []

    for order in orders:
        driver = drivers.get(order.assigned_driver_id) if order.assigned_driver_id else None
        if order.assigned_driver_id and driver is None:
            anomalies.append(
                Anomaly(
                    type="unknown_driver",
                    severity="warning",
                    reference=order.id,
                    detail=(
                        f"Chauffeur {order.assigned_driver_id} introuvable : "
                        "répartition calculée avec la commission chauffeur par défaut"
                    ),
                    expected_value=None,
                    actual_value=order.assigned_driver_id,
                )
            )
        try:
            breakdowns.append(compute_breakdown(order, driver, config))
        except InvalidOrderError as exc:
            logger.warning("Course %s écartée : %s", order.id, exc)
            anomalies.append(
                Anomaly(
                    type="invalid_order",
                    severity="error",
                    reference=order.id,
                    detail=str(exc),
                    expected_value=None,
                    actual_value=None,
                )
            )
        except RoundingDriftError as exc:
            logger.error("Écart d'arrondi sur la course %s : %s", order.id, exc)
            anomalies.append(
                Anomaly(
                    type="rounding_drift",
                    severity="error",
                    reference=order.id,
                    detail=str(exc),
                    expected_value=None,
                    actual_value=None,
                )
            )

    return breakdowns, anomalies
