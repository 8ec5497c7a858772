"""Parser des exports CSV de la base : courses, chauffeurs, prestataires et collecte."""

from __future__ import annotations

import datetime
import json
import logging
import math
from collections.abc import Callable, Mapping
from io import BytesIO
from pathlib import Path
from typing import Any, TypeVar

import pandas as pd

from frais_courses.config.loader import AppConfig
from frais_courses.engine.supplements import supplement_from_record
from frais_courses.models import (
    Anomaly,
    CollecteFrais,
    Driver,
    InvalidOrderError,
    Order,
    ParseError,
    ParseResult,
    Prestataire,
)
from frais_courses.parsers.base import BaseParser
from frais_courses.status import is_known_status

logger = logging.getLogger(__name__)

T = TypeVar("T")

ORDER_REQUIRED_COLUMNS = ["id", "created_at", "status", "total_price", "ride_option"]
DRIVER_REQUIRED_COLUMNS = ["id", "first_name", "last_name", "type_chauffeur"]
PRESTATAIRE_REQUIRED_COLUMNS = ["id", "nom", "type"]
COLLECTE_REQUIRED_COLUMNS = ["id", "periode", "montant_du", "montant_paye", "is_paid"]

# Les exports applicatifs sont en camelCase, ceux de la base en snake_case.
ORDER_ALIASES: dict[str, list[str]] = {
    "created_at": ["createdAt"],
    "total_price": ["totalPrice"],
    "driver_earnings": ["driverEarnings"],
    "initial_total_price": ["initialTotalPrice"],
    "ride_option": ["rideOption"],
    "route_info": ["routeInfo"],
    "waiting_time_minutes": ["waitingTimeMinutes"],
    "payment_method": ["paymentMethod"],
    "assigned_driver_id": ["assignedDriverId"],
    "scheduled_time": ["scheduledTime"],
}
DRIVER_ALIASES: dict[str, list[str]] = {
    "first_name": ["firstName"],
    "last_name": ["lastName"],
    "type_chauffeur": ["typeChauffeur"],
    "prestataire_id": ["prestataireId"],
    "commission_chauffeur": ["commissionChauffeur"],
    "is_active": ["isActive"],
}
PRESTATAIRE_ALIASES: dict[str, list[str]] = {
    "is_active": ["isActive"],
}
COLLECTE_ALIASES: dict[str, list[str]] = {
    "prestataire_id": ["prestataireId"],
    "driver_id": ["driverId"],
    "montant_du": ["montantDu"],
    "montant_paye": ["montantPaye"],
    "frais_service": ["fraisService"],
    "commission_supplementaire": ["commissionSupplementaire"],
    "order_ids": ["orderIds"],
    "is_paid": ["isPaid"],
    "paid_at": ["paidAt"],
    "marked_by_admin_at": ["markedByAdminAt"],
    "created_at": ["createdAt"],
}

DRIVER_TYPES = {"salarie", "patente"}
PRESTATAIRE_TYPES = {
    "societe_taxi",
    "societe_tourisme",
    "patente_taxi",
    "patente_tourisme",
    "agence_location",
    "loueur_individuel",
}

TRUE_VALUES = {"true", "t", "1", "oui", "yes"}
FALSE_VALUES = {"false", "f", "0", "non", "no"}


# --- Conversion champ par champ ---


def _get(record: Mapping[str, Any], *keys: str) -> Any:
    """Première valeur renseignée parmi ``keys`` (None, "", "NULL" et NaN = absente)."""
    for key in keys:
        value = record.get(key)
        if value is None:
            continue
        if isinstance(value, str) and value.strip() in ("", "NULL"):
            continue
        if isinstance(value, float) and math.isnan(value):
            continue
        return value
    return None


def _number(value: Any, field_name: str, reference: str) -> float | None:
    """Convertit un nombre ou une chaîne numérique. Absent → None, jamais 0."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidOrderError(f"{reference} : '{field_name}' n'est pas un nombre ({value!r})")
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(",", "."))
    except ValueError as exc:
        raise InvalidOrderError(f"{reference} : '{field_name}' n'est pas un nombre ({value!r})") from exc


def _integer(value: Any, field_name: str, reference: str) -> int | None:
    number = _number(value, field_name, reference)
    if number is None:
        return None
    if not math.isfinite(number) or number != int(number):
        raise InvalidOrderError(f"{reference} : '{field_name}' doit être entier ({value!r})")
    return int(number)


def _boolean(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ValueError(f"Booléen invalide : {value!r}")


def _datetime(value: Any, field_name: str, reference: str) -> datetime.datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value
    try:
        return datetime.datetime.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise InvalidOrderError(f"{reference} : date '{field_name}' invalide ({value!r})") from exc


def _json(value: Any, field_name: str, reference: str) -> Any:
    """Décode une colonne JSON imbriquée ; un dict ou une liste déjà décodé passe tel quel."""
    if value is None or isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(str(value))
    except json.JSONDecodeError as exc:
        raise InvalidOrderError(f"{reference} : JSON invalide dans '{field_name}'") from exc


def _text(value: Any) -> str | None:
    return None if value is None else str(value).strip()


# --- Construction des entités ---


def order_from_record(record: Mapping[str, Any]) -> Order:
    """Construit une course depuis une ligne d'export ou un corps JSON.

    Les clés snake_case et camelCase sont acceptées ; ``ride_option``,
    ``route_info`` et ``supplements`` peuvent être des chaînes JSON ou des
    objets déjà décodés.

    Raises:
        InvalidOrderError: Champ financier manquant ou illisible.
    """
    order_id = _text(_get(record, "id"))
    if not order_id:
        raise InvalidOrderError("Course sans identifiant")

    created_at = _datetime(_get(record, "created_at", "createdAt"), "created_at", order_id)
    if created_at is None:
        raise InvalidOrderError(f"{order_id} : date de création manquante")
    status = _text(_get(record, "status")) or ""

    total_price = _number(_get(record, "total_price", "totalPrice"), "total_price", order_id)
    if total_price is None:
        raise InvalidOrderError(f"{order_id} : champ financier 'total_price' manquant")

    ride_option = _json(_get(record, "ride_option", "rideOption"), "ride_option", order_id)
    if not isinstance(ride_option, dict):
        raise InvalidOrderError(f"{order_id} : option de course ('ride_option') manquante")
    base_fare = _number(_get(ride_option, "baseFare", "basePrice", "price"), "base_fare", order_id)
    if base_fare is None:
        raise InvalidOrderError(f"{order_id} : champ financier 'base_fare' manquant")

    route_info = _json(_get(record, "route_info", "routeInfo"), "route_info", order_id) or {}
    if not isinstance(route_info, dict):
        raise InvalidOrderError(f"{order_id} : 'route_info' doit être un objet")
    distance = _number(_get(route_info, "distance"), "distance", order_id)

    price_per_km = _number(_get(ride_option, "pricePerKm", "pricePerKilometer"), "price_per_km", order_id)
    if price_per_km is None:
        if distance:
            raise InvalidOrderError(f"{order_id} : prix au kilomètre manquant pour une distance de {distance}")
        price_per_km = 0.0

    initial_total = _get(record, "initial_total_price", "initialTotalPrice")
    if initial_total is None:
        initial_total = _get(ride_option, "initialTotalPrice")

    raw_supplements = _json(_get(record, "supplements"), "supplements", order_id) or []
    if not isinstance(raw_supplements, list):
        raise InvalidOrderError(f"{order_id} : 'supplements' doit être une liste")
    supplements = [supplement_from_record(item, order_id) for item in raw_supplements if isinstance(item, dict)]

    paid_stops = _number(_get(ride_option, "paidStopsCost"), "paid_stops_cost", order_id)

    return Order(
        id=order_id,
        created_at=created_at,
        status=status,
        total_price=total_price,
        driver_earnings=_number(_get(record, "driver_earnings", "driverEarnings"), "driver_earnings", order_id),
        base_fare=base_fare,
        price_per_km=price_per_km,
        initial_total_price=_number(initial_total, "initial_total_price", order_id),
        distance=distance,
        waiting_time_minutes=_integer(
            _get(record, "waiting_time_minutes", "waitingTimeMinutes"), "waiting_time_minutes", order_id
        ),
        supplements=supplements,
        payment_method=_text(_get(record, "payment_method", "paymentMethod")) or "cash",
        assigned_driver_id=_text(_get(record, "assigned_driver_id", "assignedDriverId")),
        scheduled_time=_datetime(_get(record, "scheduled_time", "scheduledTime"), "scheduled_time", order_id),
        paid_stops_cost=paid_stops if paid_stops is not None else 0.0,
    )


def driver_from_record(record: Mapping[str, Any], default_commission: float = 95.0) -> Driver:
    """Construit un chauffeur ; sans commission renseignée, la commission par défaut s'applique."""
    driver_id = _text(_get(record, "id"))
    if not driver_id:
        raise ValueError("Chauffeur sans identifiant")
    type_chauffeur = _text(_get(record, "type_chauffeur", "typeChauffeur")) or "patente"
    if type_chauffeur not in DRIVER_TYPES:
        raise ValueError(f"Chauffeur {driver_id} : type '{type_chauffeur}' inconnu")

    commission = _number(
        _get(record, "commission_chauffeur", "commissionChauffeur"), "commission_chauffeur", driver_id
    )
    if commission is None:
        commission = default_commission
    if not math.isfinite(commission) or not 0 <= commission <= 100:
        raise ValueError(f"Chauffeur {driver_id} : commission hors bornes ({commission}%)")

    return Driver(
        id=driver_id,
        first_name=_text(_get(record, "first_name", "firstName")) or "",
        last_name=_text(_get(record, "last_name", "lastName")) or "",
        type_chauffeur=type_chauffeur,
        prestataire_id=_text(_get(record, "prestataire_id", "prestataireId")),
        commission_chauffeur=commission,
        is_active=_boolean(_get(record, "is_active", "isActive"), default=True),
    )


def prestataire_from_record(record: Mapping[str, Any]) -> Prestataire:
    prestataire_id = _text(_get(record, "id"))
    if not prestataire_id:
        raise ValueError("Prestataire sans identifiant")
    return Prestataire(
        id=prestataire_id,
        nom=_text(_get(record, "nom")) or "",
        type=_text(_get(record, "type")) or "",
        is_active=_boolean(_get(record, "is_active", "isActive"), default=True),
    )


def collecte_from_record(record: Mapping[str, Any]) -> CollecteFrais:
    """Construit une ligne de collecte existante ; le montant dû est obligatoire."""
    entry_id = _text(_get(record, "id"))
    if not entry_id:
        raise ValueError("Ligne de collecte sans identifiant")
    periode = _text(_get(record, "periode"))
    if not periode:
        raise ValueError(f"Collecte {entry_id} : période manquante")

    montant_du = _integer(_get(record, "montant_du", "montantDu"), "montant_du", entry_id)
    if montant_du is None:
        raise InvalidOrderError(f"Collecte {entry_id} : montant dû manquant")
    montant_paye = _integer(_get(record, "montant_paye", "montantPaye"), "montant_paye", entry_id)
    frais_service = _integer(_get(record, "frais_service", "fraisService"), "frais_service", entry_id)
    commission = _integer(
        _get(record, "commission_supplementaire", "commissionSupplementaire"), "commission_supplementaire", entry_id
    )
    order_ids = _json(_get(record, "order_ids", "orderIds"), "order_ids", entry_id) or []
    if not isinstance(order_ids, list):
        raise ValueError(f"Collecte {entry_id} : 'order_ids' doit être une liste")

    created_at = _datetime(_get(record, "created_at", "createdAt"), "created_at", entry_id)
    return CollecteFrais(
        id=entry_id,
        prestataire_id=_text(_get(record, "prestataire_id", "prestataireId")),
        driver_id=_text(_get(record, "driver_id", "driverId")),
        periode=periode,
        montant_du=montant_du,
        frais_service=frais_service if frais_service is not None else montant_du - (commission or 0),
        commission_supplementaire=commission or 0,
        montant_paye=montant_paye or 0,
        order_ids=[str(o) for o in order_ids],
        is_paid=_boolean(_get(record, "is_paid", "isPaid"), default=False),
        paid_at=_datetime(_get(record, "paid_at", "paidAt"), "paid_at", entry_id),
        marked_by_admin_at=_datetime(
            _get(record, "marked_by_admin_at", "markedByAdminAt"), "marked_by_admin_at", entry_id
        ),
        created_at=created_at or datetime.datetime.now(),
    )


# --- Parser ---


class ExportParser(BaseParser):
    """Parser des exports CSV de la base (une table par fichier)."""

    def parse(self, files: dict[str, Path | BytesIO], config: AppConfig) -> ParseResult:
        """Parse les fichiers ``orders``, ``drivers`` et, s'ils sont fournis, ``prestataires`` et ``collecte``.

        Une ligne illisible est écartée et remontée en anomalie ; une colonne
        obligatoire manquante lève ParseError.
        """
        for key in ("orders", "drivers"):
            if key not in files:
                raise ParseError(f"Fichier '{key}' manquant")

        anomalies: list[Anomaly] = []

        drivers = self._parse_table(
            files["drivers"],
            config,
            DRIVER_ALIASES,
            DRIVER_REQUIRED_COLUMNS,
            "drivers",
            lambda rec: driver_from_record(rec, config.tarifs.commission_chauffeur_defaut),
            "invalid_driver",
            anomalies,
        )

        prestataires: list[Prestataire] = []
        if "prestataires" in files:
            prestataires = self._parse_table(
                files["prestataires"],
                config,
                PRESTATAIRE_ALIASES,
                PRESTATAIRE_REQUIRED_COLUMNS,
                "prestataires",
                prestataire_from_record,
                "invalid_prestataire",
                anomalies,
            )
            for prestataire in prestataires:
                if prestataire.type not in PRESTATAIRE_TYPES:
                    anomalies.append(
                        Anomaly(
                            type="unknown_prestataire_type",
                            severity="warning",
                            reference=prestataire.id,
                            detail=f"Type de prestataire inconnu : '{prestataire.type}'",
                            expected_value=", ".join(sorted(PRESTATAIRE_TYPES)),
                            actual_value=prestataire.type,
                        )
                    )
            known_prestataires = {p.id for p in prestataires}
            for driver in drivers:
                if driver.prestataire_id and driver.prestataire_id not in known_prestataires:
                    anomalies.append(
                        Anomaly(
                            type="unknown_prestataire",
                            severity="warning",
                            reference=driver.id,
                            detail=f"Prestataire {driver.prestataire_id} du chauffeur introuvable",
                            expected_value=None,
                            actual_value=driver.prestataire_id,
                        )
                    )

        orders = self._parse_table(
            files["orders"],
            config,
            ORDER_ALIASES,
            ORDER_REQUIRED_COLUMNS,
            "orders",
            order_from_record,
            "invalid_order",
            anomalies,
        )
        for order in orders:
            if not is_known_status(order.status):
                anomalies.append(
                    Anomaly(
                        type="unknown_status",
                        severity="warning",
                        reference=order.id,
                        detail=f"Statut de course inconnu : '{order.status}'",
                        expected_value=None,
                        actual_value=order.status,
                    )
                )

        collectes: list[CollecteFrais] = []
        if "collecte" in files:
            collectes = self._parse_table(
                files["collecte"],
                config,
                COLLECTE_ALIASES,
                COLLECTE_REQUIRED_COLUMNS,
                "collecte",
                collecte_from_record,
                "invalid_collecte",
                anomalies,
            )

        logger.info(
            "Export lu : %d courses, %d chauffeurs, %d prestataires, %d lignes de collecte, %d anomalies",
            len(orders),
            len(drivers),
            len(prestataires),
            len(collectes),
            len(anomalies),
        )

        return ParseResult(
            orders=orders,
            drivers=drivers,
            prestataires=prestataires,
            anomalies=anomalies,
            collectes=collectes,
        )

    def _read_table(
        self,
        source: Path | BytesIO,
        config: AppConfig,
        aliases: dict[str, list[str]],
        required: list[str],
        context: str,
    ) -> pd.DataFrame:
        df = self.read_csv(source, configured_sep=config.sources.separator, encoding=config.sources.encoding)
        df = self.strip_whitespace(df)
        df = self.apply_column_aliases(df, aliases)
        self.validate_columns(df, required, context)
        return df

    def _parse_table(
        self,
        source: Path | BytesIO,
        config: AppConfig,
        aliases: dict[str, list[str]],
        required: list[str],
        context: str,
        build: Callable[[dict[str, Any]], T],
        anomaly_type: str,
        anomalies: list[Anomaly],
    ) -> list[T]:
        """Lit une table et construit une entité par ligne ; les lignes rejetées deviennent des anomalies."""
        df = self._read_table(source, config, aliases, required, context)
        items: list[T] = []
        seen: set[str] = set()
        for position, row in enumerate(df.to_dict(orient="records"), start=2):
            reference = str(row.get("id") or f"{context}:ligne {position}")
            if reference in seen:
                anomalies.append(
                    Anomaly(
                        type="duplicate_row",
                        severity="warning",
                        reference=reference,
                        detail=f"Identifiant en double dans {context}, ligne {position} ignorée",
                        expected_value=None,
                        actual_value=None,
                    )
                )
                logger.warning("Ligne %d de %s ignorée (doublon) : %s", position, context, reference)
                continue
            try:
                item = build(row)
            except (InvalidOrderError, ValueError) as exc:
                anomalies.append(
                    Anomaly(
                        type=anomaly_type,
                        severity="error",
                        reference=reference,
                        detail=str(exc),
                        expected_value=None,
                        actual_value=None,
                    )
                )
                logger.warning("Ligne %d de %s ignorée : %s", position, context, exc)
                continue
            seen.add(reference)
            items.append(item)
        return items
