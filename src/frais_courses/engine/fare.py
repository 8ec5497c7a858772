"""Tarif de base : prise en charge, distance et attente."""

from __future__ import annotations

import math

from frais_courses.config.loader import TarifConfig
from frais_courses.engine.amounts import require_amount, round_xpf
from frais_courses.models import FareBase, InvalidOrderError, Order

DEFAULT_DISTANCE_THRESHOLD = 1000.0


def normalize_distance_km(distance: float | None, threshold: float = DEFAULT_DISTANCE_THRESHOLD) -> float:
    """Convertit ``routeInfo.distance`` en kilomètres.

    Les exports mélangent mètres et kilomètres : une valeur supérieure ou égale
    au seuil est lue comme des mètres, toute autre valeur comme des kilomètres.

    Examples:
        >>> normalize_distance_km(12500)
        12.5
        >>> normalize_distance_km(12.5)
        12.5
    """
    # TODO: confirmer l'unité écrite à la création de commande et supprimer le seuil.
    if distance is None:
        return 0.0
    if isinstance(distance, bool) or not isinstance(distance, (int, float)) or not math.isfinite(distance):
        raise InvalidOrderError(f"Distance invalide : {distance!r}")
    if distance < 0:
        raise InvalidOrderError(f"Distance négative : {distance}")
    if distance >= threshold:
        return distance / 1000
    return float(distance)


def compute_distance_price(distance_km: float, price_per_km: float) -> int:
    return round_xpf(distance_km * price_per_km)


def compute_waiting_price(
    waiting_minutes: int | None, free_minutes: int, rate_per_minute: float
) -> tuple[int, int]:
    """Retourne ``(minutes facturables, prix de l'attente)``.

    Les minutes gratuites ne sont jamais facturées ; une attente absente vaut 0.
    """
    if waiting_minutes is None:
        return 0, 0
    if waiting_minutes < 0:
        raise InvalidOrderError(f"Temps d'attente négatif : {waiting_minutes} min")
    billable = max(0, waiting_minutes - free_minutes)
    return billable, round_xpf(billable * rate_per_minute)


def compute_fare_base(order: Order, tarifs: TarifConfig) -> FareBase:
    """Calcule les composantes tarifaires connues d'une course."""
    base_fare = require_amount(order.base_fare, "base_fare", order.id)
    price_per_km = require_amount(order.price_per_km, "price_per_km", order.id)
    try:
        distance_km = normalize_distance_km(order.distance, tarifs.seuil_distance_metres)
        billable, waiting_price = compute_waiting_price(
            order.waiting_time_minutes, tarifs.minutes_gratuites, tarifs.tarif_minute_attente
        )
    except InvalidOrderError as exc:
        raise InvalidOrderError(f"{order.id} : {exc}") from exc

    return FareBase(
        base_fare=round_xpf(base_fare),
        distance_km=distance_km,
        distance_price=compute_distance_price(distance_km, price_per_km),
        billable_minutes=billable,
        waiting_price=waiting_price,
    )
