"""Agrégation des suppléments (fixes ou appliqués automatiquement)."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from frais_courses.engine.amounts import require_amount, round_xpf
from frais_courses.models import InvalidOrderError, Supplement

SUPPLEMENT_KINDS = {"fixe", "auto"}


def supplement_from_record(record: Mapping[str, object], reference: str = "supplément") -> Supplement:
    """Construit un Supplement depuis un enregistrement brut.

    Accepte les deux générations de champs (``name``/``nom``,
    ``price``/``prixXpf``). Un supplément sans aucun prix est rejeté.
    """
    name = record.get("name")
    if name is None:
        name = record.get("nom")
    price = record.get("price")
    if price is None:
        price = record.get("prixXpf")
    label = f"{reference} / {name or '?'}"
    if price is None:
        raise InvalidOrderError(f"{label} : prix du supplément manquant")
    unit_price = require_amount(price, "price", label)

    quantity = record.get("quantity")
    if quantity is None:
        quantity = 1
    if isinstance(quantity, bool) or not isinstance(quantity, (int, float)) or quantity < 0:
        raise InvalidOrderError(f"{label} : quantité invalide ({quantity!r})")
    if quantity != int(quantity):
        raise InvalidOrderError(f"{label} : quantité non entière ({quantity})")

    kind = record.get("typeSupplement") or record.get("kind") or "fixe"
    if kind not in SUPPLEMENT_KINDS:
        kind = "fixe"

    return Supplement(
        name=str(name or ""),
        unit_price=unit_price,
        quantity=int(quantity),
        kind=str(kind),
    )


def sum_supplements(supplements: Iterable[Supplement]) -> int:
    """Total des suppléments : somme des ``prix unitaire × quantité``."""
    return round_xpf(sum(s.unit_price * s.quantity for s in supplements))
