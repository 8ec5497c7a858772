"""Extraction des frais de service d'un prix frais inclus."""

from __future__ import annotations

from frais_courses.engine.amounts import require_amount, require_percent, round_xpf
from frais_courses.models import ServiceFeeSplit


def split_service_fee(
    total_at_confirmation: float, fee_percent: float, reference: str = "course"
) -> ServiceFeeSplit:
    """Retrouve le sous-total hors frais et le montant des frais de service.

    Le prix de confirmation est stocké frais inclus : le sous-total est
    recalculé à rebours (``total / (1 + taux)``) et les frais sont le reste,
    ce qui garantit ``sous-total + frais == total``. Les frais ne portent que
    sur le prix confirmé, jamais sur l'attente ou les arrêts ajoutés ensuite.

    Examples:
        >>> split_service_fee(11500, 15).service_fee
        1500
    """
    total = round_xpf(require_amount(total_at_confirmation, "total_at_confirmation", reference))
    percent = require_percent(fee_percent, "frais_service_prestataire", reference, upper_inclusive=False)

    if percent == 0:
        return ServiceFeeSplit(
            total_at_confirmation=total,
            fee_percent=percent,
            pre_fee_subtotal=total,
            service_fee=0,
        )

    pre_fee_subtotal = round_xpf(total / (1 + percent / 100))
    return ServiceFeeSplit(
        total_at_confirmation=total,
        fee_percent=percent,
        pre_fee_subtotal=pre_fee_subtotal,
        service_fee=total - pre_fee_subtotal,
    )
