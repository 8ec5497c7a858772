"""Collecte mensuelle des frais dus à la plateforme par les prestataires et patentés."""

from __future__ import annotations

import dataclasses
import datetime
import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from frais_courses.config.loader import AppConfig
from frais_courses.engine.amounts import periode_of
from frais_courses.engine.breakdown import compute_breakdown
from frais_courses.models import (
    Anomaly,
    CollecteFrais,
    Driver,
    InvalidOrderError,
    LedgerError,
    Order,
    RecomputeResult,
    RoundingDriftError,
)

logger = logging.getLogger(__name__)

COLLECTABLE_STATUS = "payment_confirmed"
COLLECTE_STATUTS = ("pending", "partial", "paid")


@dataclass
class _Group:
    """Accumulateur d'une ligne en cours de recalcul."""

    prestataire_id: str | None
    driver_id: str | None
    frais_service: int = 0
    commission_supplementaire: int = 0
    order_ids: list[str] = field(default_factory=list)


def collecte_key(driver: Driver) -> tuple[str | None, str | None]:
    """Clé de regroupement ``(prestataire_id, driver_id)``.

    Les chauffeurs d'un prestataire sont regroupés sous le prestataire ; un
    patenté indépendant a sa propre ligne.
    """
    if driver.prestataire_id:
        return driver.prestataire_id, None
    return None, driver.id


def collecte_id(periode: str, prestataire_id: str | None, driver_id: str | None) -> str:
    """Identifiant stable d'une ligne : un recalcul retrouve toujours la même ligne."""
    if prestataire_id:
        return f"{periode}:prestataire:{prestataire_id}"
    return f"{periode}:chauffeur:{driver_id}"


def _skip(anomalies: list[Anomaly], order: Order, type_: str, severity: str, detail: str) -> None:
    logger.warning("Course %s exclue de la collecte : %s", order.id, detail)
    anomalies.append(
        Anomaly(
            type=type_,
            severity=severity,
            reference=order.id,
            detail=detail,
            expected_value=None,
            actual_value=None,
        )
    )


def _free_id(key: str, paid: Mapping[str, CollecteFrais]) -> str:
    """Premier id non soldé : ``key``, puis ``key:complement``, ``key:complement-2``..."""
    candidate, rank = key, 1
    while candidate in paid:
        candidate = f"{key}:complement" if rank == 1 else f"{key}:complement-{rank}"
        rank += 1
    return candidate


def recompute_collecte(
    orders: Iterable[Order],
    drivers: Mapping[str, Driver],
    periode: str,
    config: AppConfig,
    existing: Iterable[CollecteFrais] = (),
    now: datetime.datetime | None = None,
) -> RecomputeResult:
    """Recalcule les lignes de collecte d'une période.

    Seules les courses ``payment_confirmed`` de la période comptent. Les frais
    de chaque course viennent de ``compute_breakdown`` (frais de service à
    rebours sur le prix de confirmation + commission supplémentaire). Une
    course sans chauffeur, d'un salarié de la plateforme ou aux données
    invalides est exclue et signalée.

    Les lignes déjà soldées ne sont jamais modifiées et leurs courses ne sont
    pas refacturées. Les lignes non soldées sont recalculées en conservant
    le montant déjà versé. Relancer le recalcul sur les mêmes données produit
    exactement les mêmes lignes.

    Args:
        orders: Courses à examiner (toutes périodes confondues).
        drivers: Chauffeurs indexés par identifiant.
        periode: Mois au format ``YYYY-MM``.
        config: Configuration (taux de frais et commissions).
        existing: Lignes de collecte déjà enregistrées.
        now: Horodatage de création des nouvelles lignes.

    Returns:
        RecomputeResult avec les lignes de la période (soldées incluses).
    """
    now = now or datetime.datetime.now()
    existing_for_period = [c for c in existing if c.periode == periode]
    paid = {c.id: c for c in existing_for_period if c.is_paid}
    unpaid = {c.id: c for c in existing_for_period if not c.is_paid}
    already_billed = {order_id for c in paid.values() for order_id in c.order_ids}

    anomalies: list[Anomaly] = []
    groups: dict[str, _Group] = {}
    skipped = 0

    for order in orders:
        if order.status != COLLECTABLE_STATUS or periode_of(order.created_at) != periode:
            continue
        if order.id in already_billed:
            continue
        if not order.assigned_driver_id:
            skipped += 1
            _skip(anomalies, order, "order_without_driver", "warning", "Course confirmée sans chauffeur assigné")
            continue
        driver = drivers.get(order.assigned_driver_id)
        if driver is None:
            skipped += 1
            _skip(
                anomalies,
                order,
                "unknown_driver",
                "error",
                f"Chauffeur {order.assigned_driver_id} introuvable : frais non calculables",
            )
            continue
        if driver.is_salarie_plateforme:
            skipped += 1
            logger.debug("Course %s d'un salarié de la plateforme : aucun frais dû", order.id)
            continue

        try:
            breakdown = compute_breakdown(order, driver, config)
        except (InvalidOrderError, RoundingDriftError) as exc:
            skipped += 1
            _skip(anomalies, order, "invalid_order", "error", str(exc))
            continue

        prestataire_id, driver_id = collecte_key(driver)
        key = collecte_id(periode, prestataire_id, driver_id)
        group = groups.setdefault(key, _Group(prestataire_id=prestataire_id, driver_id=driver_id))
        group.frais_service += breakdown.service_fee
        group.commission_supplementaire += breakdown.supplementary_commission
        group.order_ids.append(order.id)

    recomputed: list[CollecteFrais] = []
    for key, group in groups.items():
        # Courses confirmées après le solde : ligne complémentaire au premier id libre.
        key = _free_id(key, paid)
        previous = unpaid.get(key)
        recomputed.append(
            CollecteFrais(
                id=key,
                prestataire_id=group.prestataire_id,
                driver_id=group.driver_id,
                periode=periode,
                montant_du=group.frais_service + group.commission_supplementaire,
                frais_service=group.frais_service,
                commission_supplementaire=group.commission_supplementaire,
                montant_paye=previous.montant_paye if previous is not None else 0,
                order_ids=sorted(group.order_ids),
                is_paid=False,
                paid_at=None,
                marked_by_admin_at=previous.marked_by_admin_at if previous is not None else None,
                created_at=previous.created_at if previous is not None else now,
            )
        )

    recomputed_ids = {c.id for c in recomputed}
    for key, previous in unpaid.items():
        if key not in recomputed_ids and previous.montant_paye > 0:
            # Acompte versé sur une ligne qui n'a plus de course : on le garde visible.
            anomalies.append(
                Anomaly(
                    type="orphan_payment",
                    severity="warning",
                    reference=key,
                    detail=(
                        f"Acompte de {previous.montant_paye} XPF sur une collecte sans course "
                        "après recalcul"
                    ),
                    expected_value="0",
                    actual_value=str(previous.montant_paye),
                )
            )
            recomputed.append(
                dataclasses.replace(
                    previous, montant_du=0, frais_service=0, commission_supplementaire=0, order_ids=[]
                )
            )

    collectes = sorted([*paid.values(), *recomputed], key=lambda c: c.id)
    total_courses = sum(len(c.order_ids) for c in recomputed)
    total_commission = sum(c.montant_du for c in recomputed)

    logger.info(
        "Collecte %s recalculée : %d lignes, %d courses, %d XPF, %d courses ignorées",
        periode,
        len(recomputed),
        total_courses,
        total_commission,
        skipped,
    )

    return RecomputeResult(
        periode=periode,
        collectes=collectes,
        anomalies=anomalies,
        total_courses=total_courses,
        total_commission=total_commission,
        skipped=skipped,
    )


def mark_paid(
    entry: CollecteFrais,
    montant: int | None = None,
    now: datetime.datetime | None = None,
    *,
    solde: bool = False,
) -> CollecteFrais:
    """Enregistre un règlement sur une ligne de collecte.

    ``solde=True`` (ou ``montant=None``) règle la totalité du montant dû. Sinon
    le montant s'ajoute au déjà-versé ; la ligne n'est soldée que lorsque le
    versé atteint le dû. ``paid_at`` est fixé au premier solde complet.

    Raises:
        LedgerError: Ligne déjà soldée, montant non strictement positif ou non entier.
    """
    now = now or datetime.datetime.now()
    if entry.is_paid:
        raise LedgerError(f"Collecte {entry.id} déjà soldée")

    if solde or montant is None:
        montant_paye = max(entry.montant_du, entry.montant_paye)
    else:
        if isinstance(montant, bool) or not isinstance(montant, (int, float)) or not math.isfinite(montant):
            raise LedgerError(f"Montant de règlement invalide : {montant!r}")
        if montant <= 0:
            raise LedgerError(f"Montant de règlement non positif : {montant}")
        if montant != int(montant):
            raise LedgerError(f"Montant de règlement non entier : {montant} XPF")
        montant_paye = entry.montant_paye + int(montant)

    is_paid = montant_paye >= entry.montant_du
    logger.info(
        "Collecte %s : règlement enregistré, %d/%d XPF%s",
        entry.id,
        montant_paye,
        entry.montant_du,
        " (soldée)" if is_paid else "",
    )
    return dataclasses.replace(
        entry,
        montant_paye=montant_paye,
        is_paid=is_paid,
        paid_at=entry.paid_at or (now if is_paid else None),
        marked_by_admin_at=now,
    )


def clamp_collecte(entry: CollecteFrais) -> CollecteFrais:
    """Vue en lecture respectant ``montant_paye <= montant_du``.

    Un trop-perçu est ramené au montant dû (et signalé par LedgerChecker).
    """
    if entry.montant_paye <= entry.montant_du:
        return entry
    logger.warning(
        "Collecte %s : montant versé (%d) supérieur au dû (%d), ramené au dû",
        entry.id,
        entry.montant_paye,
        entry.montant_du,
    )
    return dataclasses.replace(entry, montant_paye=entry.montant_du)


def filter_collectes(entries: Iterable[CollecteFrais], statut: str = "all") -> list[CollecteFrais]:
    """Filtre par statut : ``all``, ``pending``, ``partial`` ou ``paid``."""
    if statut == "all":
        return list(entries)
    if statut not in COLLECTE_STATUTS:
        raise ValueError(f"Statut de collecte inconnu : '{statut}'")
    return [e for e in entries if e.statut == statut]


def summarize_collectes(entries: Iterable[CollecteFrais]) -> dict[str, object]:
    """Totaux affichés par les écrans de collecte (dû, versé, restant, répartition)."""
    entries = [clamp_collecte(e) for e in entries]
    counts = {statut: 0 for statut in COLLECTE_STATUTS}
    for e in entries:
        counts[e.statut] += 1
    return {
        "total_du": sum(e.montant_du for e in entries),
        "total_paye": sum(e.montant_paye for e in entries),
        "total_restant": sum(e.reste_a_payer for e in entries if not e.is_paid),
        "total_frais_service": sum(e.frais_service for e in entries),
        "total_commission_supplementaire": sum(e.commission_supplementaire for e in entries),
        "nb_collectes": len(entries),
        "par_statut": counts,
    }
