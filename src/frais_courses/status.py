"""Cycle de vie des commandes : statuts, libellés et transitions autorisées."""

from __future__ import annotations

from frais_courses.models import StatusTransitionError

ORDER_STATUSES: tuple[str, ...] = (
    "pending",
    "accepted",
    "booked",
    "declined",
    "expired",
    "cancelled",
    "driver_enroute",
    "driver_arrived",
    "in_progress",
    "at_stop_1",
    "at_stop_2",
    "at_stop_3",
    "completed",
    "payment_pending",
    "payment_confirmed",
    "payment_failed",
)

STATUS_LABELS: dict[str, str] = {
    "pending": "En attente",
    "accepted": "Acceptée",
    "booked": "Réservée",
    "declined": "Refusée",
    "expired": "Expirée",
    "cancelled": "Annulée",
    "driver_enroute": "Chauffeur en route",
    "driver_arrived": "Chauffeur arrivé",
    "in_progress": "En cours",
    "at_stop_1": "Arrêt 1",
    "at_stop_2": "Arrêt 2",
    "at_stop_3": "Arrêt 3",
    "completed": "Terminée",
    "payment_pending": "Paiement en attente",
    "payment_confirmed": "Paiement confirmé",
    "payment_failed": "Paiement échoué",
}

_STOPS = ("at_stop_1", "at_stop_2", "at_stop_3")

LEGAL_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"accepted", "booked", "declined", "expired", "cancelled"}),
    "booked": frozenset({"accepted", "driver_enroute", "cancelled"}),
    "accepted": frozenset({"driver_enroute", "cancelled"}),
    "driver_enroute": frozenset({"driver_arrived", "cancelled"}),
    "driver_arrived": frozenset({"in_progress", "cancelled"}),
    "in_progress": frozenset({*_STOPS, "completed"}),
    "at_stop_1": frozenset({"in_progress"}),
    "at_stop_2": frozenset({"in_progress"}),
    "at_stop_3": frozenset({"in_progress"}),
    "completed": frozenset({"payment_pending", "payment_confirmed"}),
    "payment_pending": frozenset({"payment_confirmed", "payment_failed"}),
    "payment_failed": frozenset({"payment_pending", "payment_confirmed"}),
    "declined": frozenset(),
    "expired": frozenset(),
    "cancelled": frozenset(),
    "payment_confirmed": frozenset(),
}


def is_known_status(status: str) -> bool:
    return status in LEGAL_TRANSITIONS


def is_terminal(status: str) -> bool:
    """Un statut terminal n'admet plus aucune transition."""
    return is_known_status(status) and not LEGAL_TRANSITIONS[status]


def can_transition(current: str, target: str) -> bool:
    return target in LEGAL_TRANSITIONS.get(current, frozenset())


def validate_transition(current: str, target: str) -> str:
    """Vérifie une transition et retourne le nouveau statut.

    Raises:
        StatusTransitionError: Statut inconnu ou transition non autorisée.
    """
    for status in (current, target):
        if not is_known_status(status):
            raise StatusTransitionError(f"Statut de commande inconnu : '{status}'")
    if not can_transition(current, target):
        raise StatusTransitionError(
            f"Transition interdite : {current} → {target}"
        )
    return target


def status_label(status: str) -> str:
    """Libellé d'affichage ; un statut inconnu est affiché tel quel."""
    return STATUS_LABELS.get(status, status)
