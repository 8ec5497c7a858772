"""Répartition du prix entre chauffeur, prestataire et plateforme."""

from __future__ import annotations

from frais_courses.engine.amounts import require_amount, require_percent, round_xpf, verify_split
from frais_courses.models import EarningsSplit, InvalidOrderError


def split_commission(
    total_price: float,
    total_at_confirmation: float,
    service_fee: int,
    supplementary_commission_percent: float,
    driver_commission_percent: float,
    reference: str = "course",
) -> EarningsSplit:
    """Répartit le prix final d'une course de prestataire.

    La commission supplémentaire porte sur le prix de confirmation. Le
    sous-total restant est partagé selon le pourcentage du chauffeur ; la part
    prestataire et la part plateforme sont des restes, jamais arrondies
    séparément, de sorte que les trois parts somment exactement au prix total.

    Raises:
        InvalidOrderError: Donnée négative ou sous-total négatif.
        RoundingDriftError: Les parts ne somment pas au prix total.
    """
    total = round_xpf(require_amount(total_price, "total_price", reference))
    confirmation = require_amount(total_at_confirmation, "total_at_confirmation", reference)
    fee = round_xpf(require_amount(service_fee, "service_fee", reference))
    supp_percent = require_percent(supplementary_commission_percent, "commission_prestataire", reference)
    driver_percent = require_percent(driver_commission_percent, "commission_chauffeur", reference)

    supplementary_commission = round_xpf(confirmation * supp_percent / 100)
    subtotal = total - fee - supplementary_commission
    if subtotal < 0:
        raise InvalidOrderError(
            f"{reference} : frais ({fee} XPF) et commission ({supplementary_commission} XPF) "
            f"dépassent le prix total ({total} XPF)"
        )

    driver_earnings = round_xpf(subtotal * driver_percent / 100)
    split = EarningsSplit(
        total_price=total,
        service_fee=fee,
        supplementary_commission=supplementary_commission,
        subtotal=subtotal,
        driver_commission_percent=driver_percent,
        driver_earnings=driver_earnings,
        prestataire_earnings=subtotal - driver_earnings,
        platform_total=fee + supplementary_commission,
    )
    verify_split(split)
    return split


def split_salarie(total_price: float, stored_driver_earnings: float | None, reference: str = "course") -> EarningsSplit:
    """Répartition d'une course d'un salarié de la plateforme.

    Ni frais de service ni commission supplémentaire : le chauffeur perçoit
    les gains enregistrés sur la commande, la plateforme garde le reste.
    """
    total = round_xpf(require_amount(total_price, "total_price", reference))
    driver_earnings = round_xpf(require_amount(stored_driver_earnings, "driver_earnings", reference))
    if driver_earnings > total:
        raise InvalidOrderError(
            f"{reference} : gains chauffeur ({driver_earnings} XPF) supérieurs au prix total ({total} XPF)"
        )
    split = EarningsSplit(
        total_price=total,
        service_fee=0,
        supplementary_commission=0,
        subtotal=total,
        driver_commission_percent=round(driver_earnings / total * 100, 2) if total else 0.0,
        driver_earnings=driver_earnings,
        prestataire_earnings=0,
        platform_total=total - driver_earnings,
    )
    verify_split(split)
    return split
