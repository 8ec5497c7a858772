"""Utilitaires partagés du moteur de calcul des frais."""

from __future__ import annotations

import datetime
import math
import re

from frais_courses.models import EarningsSplit, InvalidOrderError, RoundingDriftError


def round_xpf(value: float) -> int:
    """Arrondit un montant au franc XPF le plus proche, demi-unité vers le haut.

    Examples:
        >>> round_xpf(1304.5)
        1305
        >>> round_xpf(1304.4)
        1304
    """
    return math.floor(value + 0.5)


def require_amount(value: object, field_name: str, reference: str) -> float:
    """Valide un montant financier : présent, numérique, fini et positif."""
    if value is None:
        raise InvalidOrderError(f"{reference} : champ financier '{field_name}' manquant")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidOrderError(f"{reference} : '{field_name}' n'est pas un nombre ({value!r})")
    amount = float(value)
    if not math.isfinite(amount):
        raise InvalidOrderError(f"{reference} : '{field_name}' non fini ({amount})")
    if amount < 0:
        raise InvalidOrderError(f"{reference} : '{field_name}' négatif ({amount})")
    return amount


def require_percent(value: object, field_name: str, reference: str, *, upper_inclusive: bool = True) -> float:
    """Valide un pourcentage dans [0, 100] (ou [0, 100[ si ``upper_inclusive`` est faux)."""
    percent = require_amount(value, field_name, reference)
    if percent > 100 or (not upper_inclusive and percent == 100):
        raise InvalidOrderError(f"{reference} : pourcentage '{field_name}' hors bornes ({percent}%)")
    return percent


def verify_split(split: EarningsSplit) -> None:
    """Vérifie que chauffeur + prestataire + plateforme == prix total. Lève RoundingDriftError sinon."""
    shares = split.driver_earnings + split.prestataire_earnings + split.platform_total
    if shares != split.total_price:
        raise RoundingDriftError(
            f"Écart d'arrondi : parts={shares} XPF, prix total={split.total_price} XPF"
        )


def periode_of(moment: datetime.datetime | datetime.date) -> str:
    """Période de facturation (mois calendaire) au format ``YYYY-MM``.

    Un horodatage avec fuseau est ramené en UTC avant de prendre le mois.
    """
    if isinstance(moment, datetime.datetime) and moment.tzinfo is not None:
        moment = moment.astimezone(datetime.timezone.utc)
    return f"{moment.year:04d}-{moment.month:02d}"


PERIODE_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def is_valid_periode(periode: str) -> bool:
    """Vrai pour un mois ``YYYY-MM`` valide."""
    return PERIODE_RE.match(periode) is not None
