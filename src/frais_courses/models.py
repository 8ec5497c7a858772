"""Modèles de données métier et hiérarchie d'exceptions."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field


# --- Exceptions métier ---


class FraisCoursesError(Exception):
    """Erreur de base pour l'application frais-courses."""


class ConfigError(FraisCoursesError):
    """YAML malformé, clé manquante, valeur invalide."""


class MissingConfigurationError(ConfigError):
    """Configuration des frais absente : aucun calcul monétaire n'est possible."""


class ParseError(FraisCoursesError):
    """Colonne CSV manquante, fichier illisible."""


class InvalidOrderError(FraisCoursesError):
    """Montant, distance ou pourcentage négatif, non fini ou manquant."""


class RoundingDriftError(FraisCoursesError):
    """La somme des parts ne retombe pas sur le prix total (bug moteur)."""


class StatusTransitionError(FraisCoursesError):
    """Transition de statut de commande interdite."""


class LedgerError(FraisCoursesError):
    """Règlement de collecte invalide."""


class NoResultError(FraisCoursesError):
    """Aucune commande exploitable dans les fichiers fournis."""


# --- Entités (frozen) ---


@dataclass(frozen=True)
class Supplement:
    """Supplément facturé sur une course."""

    name: str
    unit_price: float
    quantity: int
    kind: str  # "fixe" ou "auto" (affichage uniquement)


@dataclass(frozen=True)
class Order:
    """Course (commande) telle qu'exportée par la base."""

    id: str
    created_at: datetime.datetime
    status: str
    total_price: float
    driver_earnings: float | None
    base_fare: float
    price_per_km: float
    initial_total_price: float | None  # prix verrouillé à la confirmation, frais inclus
    distance: float | None  # unité ambiguë, cf. engine.fare.normalize_distance_km
    waiting_time_minutes: int | None
    supplements: list[Supplement]
    payment_method: str
    assigned_driver_id: str | None
    scheduled_time: datetime.datetime | None = None
    paid_stops_cost: float = 0.0

    @property
    def total_at_confirmation(self) -> float:
        """Prix à la confirmation, avant attente et arrêts ajoutés en cours de route."""
        if self.initial_total_price is not None:
            return self.initial_total_price
        return self.total_price


@dataclass(frozen=True)
class Driver:
    """Chauffeur, rattaché ou non à un prestataire."""

    id: str
    first_name: str
    last_name: str
    type_chauffeur: str  # "salarie" ou "patente"
    prestataire_id: str | None
    commission_chauffeur: float = 95.0
    is_active: bool = True

    @property
    def is_salarie_plateforme(self) -> bool:
        """Salarié employé directement par la plateforme (aucun prestataire)."""
        return self.type_chauffeur == "salarie" and not self.prestataire_id

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class Prestataire:
    """Société de transport ou patenté."""

    id: str
    nom: str
    type: str
    is_active: bool = True


@dataclass(frozen=True)
class FraisServiceConfig:
    """Pourcentages de frais et commissions fixés par l'administration."""

    frais_service_prestataire: float
    commission_prestataire: float
    commission_salarie_tapea: float


# --- Résultats de calcul (frozen) ---


@dataclass(frozen=True)
class FareBase:
    """Composantes tarifaires connues d'une course."""

    base_fare: int
    distance_km: float
    distance_price: int
    billable_minutes: int
    waiting_price: int


@dataclass(frozen=True)
class ServiceFeeSplit:
    """Décomposition d'un prix frais de service inclus."""

    total_at_confirmation: int
    fee_percent: float
    pre_fee_subtotal: int
    service_fee: int


@dataclass(frozen=True)
class EarningsSplit:
    """Répartition chauffeur / prestataire / plateforme d'un prix final."""

    total_price: int
    service_fee: int
    supplementary_commission: int
    subtotal: int
    driver_commission_percent: float
    driver_earnings: int
    prestataire_earnings: int
    platform_total: int


@dataclass(frozen=True)
class FeeBreakdown:
    """Détail complet d'une course, prêt à afficher ou exporter."""

    order_id: str
    driver_id: str | None
    prestataire_id: str | None
    is_salarie_plateforme: bool
    total_price: int
    base_fare: int
    distance_km: float
    distance_price: int
    billable_minutes: int
    waiting_price: int
    supplements_total: int
    paid_stops_cost: int
    majorations: int
    service_fee_percent: float
    service_fee: int
    supplementary_commission_percent: float
    supplementary_commission: int
    driver_commission_percent: float
    driver_earnings: int
    prestataire_earnings: int
    platform_total: int


@dataclass(frozen=True)
class CollecteFrais:
    """Ligne du registre mensuel des frais dus à la plateforme."""

    id: str
    prestataire_id: str | None
    driver_id: str | None
    periode: str  # "2026-01"
    montant_du: int
    frais_service: int
    commission_supplementaire: int
    montant_paye: int
    order_ids: list[str]
    is_paid: bool
    paid_at: datetime.datetime | None
    marked_by_admin_at: datetime.datetime | None
    created_at: datetime.datetime

    @property
    def statut(self) -> str:
        """``pending`` | ``partial`` | ``paid``."""
        if self.is_paid:
            return "paid"
        if self.montant_paye > 0:
            return "partial"
        return "pending"

    @property
    def reste_a_payer(self) -> int:
        return max(0, self.montant_du - self.montant_paye)


@dataclass(frozen=True)
class Anomaly:
    """Anomalie détectée lors du traitement."""

    type: str
    severity: str
    reference: str
    detail: str
    expected_value: str | None
    actual_value: str | None


@dataclass(frozen=True)
class ParseResult:
    """Résultat du parsing d'un export.

    Convention : les listes ne doivent pas être mutées après construction.
    """

    orders: list[Order]
    drivers: list[Driver]
    prestataires: list[Prestataire]
    anomalies: list[Anomaly]
    collectes: list[CollecteFrais] = field(default_factory=list)


@dataclass(frozen=True)
class RecomputeResult:
    """Résultat du recalcul d'une période de collecte."""

    periode: str
    collectes: list[CollecteFrais]
    anomalies: list[Anomaly]
    total_courses: int
    total_commission: int
    skipped: int
