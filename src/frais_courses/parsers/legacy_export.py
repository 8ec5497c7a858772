"""Conversion des exports TSV de l'ancienne plateforme vers le format JSON de reprise."""

from __future__ import annotations

import csv
import datetime
import json
import logging
import re
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Any

import pandas as pd

from frais_courses.models import ParseError
from frais_courses.parsers.base import BaseParser

logger = logging.getLogger(__name__)

CLIENTS_FILE = "clients.csv"
COMMANDES_FILE = "commandes.csv"

CLIENT_REQUIRED_COLUMNS = ["id", "first_name", "last_name", "email", "user_type"]
COMMANDE_REQUIRED_COLUMNS = ["id", "create_time", "status", "total"]

USER_TYPE_CLIENT = "1"
USER_TYPE_CHAUFFEUR = "2"

SPAM_PATTERNS = ("xxxx", "test")
SPAM_FIELDS = ("first_name", "last_name", "email", "mobile", "user_code")

# Inscrits sur l'application chauffeur alors que l'application client était fermée.
DEFAULT_FAKE_DRIVER_START_ID = 2654

DEFAULT_EXCLUDED_PEOPLE: tuple[tuple[str, str], ...] = (("test", "client"), ("test26", "client"))

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

CLIENT_FIELDS = [
    "id",
    "user_number",
    "user_code",
    "first_name",
    "last_name",
    "full_name",
    "email",
    "mobile",
    "mobile_dial_code",
    "city",
    "postal_code",
    "address",
    "user_type",
    "activated",
    "status",
    "create_time",
]

# colonne ancienne plateforme → champ de la course convertie
COURSE_FIELDS: dict[str, str] = {
    "order_id": "id",
    "order_number": "order_number",
    "date_creation": "create_time",
    "statut": "status",
    "client_id": "client_id",
    "chauffeur_id": "driver_id",
    "adresse_depart": "from_address",
    "code_postal_depart": "from_postal_code",
    "adresse_arrivee": "to_address",
    "code_postal_arrivee": "to_postal_code",
    "depart_lat": "from_lat",
    "depart_lng": "from_lng",
    "arrivee_lat": "to_lat",
    "arrivee_lng": "to_lng",
    "distance_km": "distance",
    "duree_min": "duration",
    "nb_passagers": "passenger_count",
    "nb_bagages": "luggage_count",
    "montant_total": "total",
    "montant_chauffeur": "driver_amount",
    "montant_commission": "commission_amount",
    "type_paiement_id": "payment_type_id",
    "note_client": "rating_on_client",
    "note_chauffeur": "rating_on_driver",
    "heure_prise_en_charge": "pick_time",
    "heure_debut": "start_time",
    "heure_fin_course": "end_time",
    "heure_annulation": "cancel_time",
    "type_annulation": "cancel_type",
    "heure_assignation": "assign_time",
    "heure_acceptation": "accept_time",
}

EMBEDDED_PERSON_FIELDS = ("first_name", "last_name", "email", "mobile")


@dataclass
class LegacyStats:
    """Compteurs de la conversion (non frozen, dataclass technique)."""

    doublons_utilisateurs: int = 0
    comptes_spam: int = 0
    faux_chauffeurs: int = 0
    chauffeurs_email_invalide: int = 0
    doublons_courses: int = 0
    courses_exclues: dict[str, int] = field(default_factory=dict)
    montants_invalides: int = 0


def is_spam_account(user: dict[str, str]) -> bool:
    """Compte de test, de spam ou supprimé."""
    if user.get("deleted") == "1":
        return True
    for key in SPAM_FIELDS:
        value = (user.get(key) or "").lower()
        if any(pattern in value for pattern in SPAM_PATTERNS):
            return True
    return False


def is_fake_driver(user: dict[str, str], start_id: int = DEFAULT_FAKE_DRIVER_START_ID) -> bool:
    """Chauffeur inscrit après ``start_id`` : en réalité un client."""
    if user.get("user_type") != USER_TYPE_CHAUFFEUR:
        return False
    try:
        return int(user.get("id", "")) >= start_id
    except ValueError:
        return False


def is_legit_email(email: str | None) -> bool:
    if not email or email == "NULL" or "_" in email:
        return False
    return EMAIL_RE.match(email) is not None


def parse_embedded_json(value: str | None) -> dict[str, Any] | None:
    """Décode le JSON client/chauffeur embarqué dans une commande ; illisible → None."""
    if not value or value == "NULL":
        return None
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError:
        return None
    return decoded if isinstance(decoded, dict) else None


def _matches_person(prenom: str, nom: str, person: tuple[str, str]) -> bool:
    target_prenom, target_nom = person
    return prenom == target_prenom and (nom == target_nom or target_nom in nom or nom in target_nom)


class LegacyExportParser:
    """Lit ``clients.csv`` et ``commandes.csv`` (TSV) de l'ancienne plateforme."""

    def __init__(
        self,
        fake_driver_start_id: int = DEFAULT_FAKE_DRIVER_START_ID,
        excluded_people: tuple[tuple[str, str], ...] = DEFAULT_EXCLUDED_PEOPLE,
    ) -> None:
        self.fake_driver_start_id = fake_driver_start_id
        self.excluded_people = tuple((p.lower(), n.lower()) for p, n in excluded_people)

    @staticmethod
    def read_tsv(source: Path | BytesIO, required: list[str], context: str) -> pd.DataFrame:
        try:
            df = pd.read_csv(
                source,
                sep="\t",
                dtype=str,
                keep_default_na=False,
                quoting=csv.QUOTE_NONE,
                encoding="utf-8",
            )
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise ParseError(f"Export {context} illisible : {e}") from e
        df = BaseParser.strip_whitespace(df)
        BaseParser.validate_columns(df, required, context)
        return df

    def parse_directory(self, data_dir: Path, now: datetime.datetime | None = None) -> dict[str, Any]:
        files: dict[str, Path | BytesIO] = {}
        for name in (CLIENTS_FILE, COMMANDES_FILE):
            path = data_dir / name
            if not path.exists():
                raise ParseError(f"Fichier d'export manquant : {path}")
            files[name] = path
        return self.parse(files, now=now)

    def parse(self, files: dict[str, Path | BytesIO], now: datetime.datetime | None = None) -> dict[str, Any]:
        """Convertit les deux exports en un document ``{metadata, clients, courses}``.

        Les utilisateurs en double, les comptes de test et les chauffeurs sans
        email valide sont écartés ; les faux chauffeurs sont reclassés clients.
        Les courses en double et celles des personnes exclues sont retirées.
        """
        now = now or datetime.datetime.now(datetime.timezone.utc)
        stats = LegacyStats(courses_exclues={f"{p} {n}": 0 for p, n in self.excluded_people})

        users = self.read_tsv(files[CLIENTS_FILE], CLIENT_REQUIRED_COLUMNS, CLIENTS_FILE)
        commandes = self.read_tsv(files[COMMANDES_FILE], COMMANDE_REQUIRED_COLUMNS, COMMANDES_FILE)
        logger.info("%d utilisateurs et %d commandes lus", len(users), len(commandes))

        clients, chauffeurs = self._convert_users(users.to_dict(orient="records"), stats)
        courses = self._convert_courses(commandes.to_dict(orient="records"), stats)

        total_ca = 0
        for course in courses:
            try:
                total_ca += int(float(course["montant_total"]))
            except ValueError:
                stats.montants_invalides += 1
        dates = sorted(c["date_creation"] for c in courses if c["date_creation"] and c["date_creation"] != "NULL")

        logger.info(
            "Conversion : %d clients, %d chauffeurs, %d courses, %d XPF de CA",
            len(clients),
            len(chauffeurs),
            len(courses),
            total_ca,
        )
        if stats.faux_chauffeurs:
            logger.info("%d faux chauffeurs reclassés clients", stats.faux_chauffeurs)
        if stats.montants_invalides:
            logger.warning("%d montants de course illisibles exclus du CA", stats.montants_invalides)

        return {
            "metadata": {
                "source": "AWS MariaDB Export",
                "export_date": now.isoformat(),
                "periode": {
                    "debut": dates[0] if dates else "N/A",
                    "fin": dates[-1] if dates else "N/A",
                },
                "stats": {
                    "total_clients": len(clients),
                    "total_chauffeurs": len(chauffeurs),
                    "total_courses": len(courses),
                    "total_ca": total_ca,
                    "comptes_spam": stats.comptes_spam,
                    "faux_chauffeurs": stats.faux_chauffeurs,
                    "chauffeurs_email_invalide": stats.chauffeurs_email_invalide,
                    "courses_exclues": stats.courses_exclues,
                    "montants_invalides": stats.montants_invalides,
                },
            },
            "clients": clients + chauffeurs,
            "courses": courses,
        }

    def _convert_users(
        self, rows: list[dict[str, str]], stats: LegacyStats
    ) -> tuple[list[dict[str, str]], list[dict[str, str]]]:
        clients: list[dict[str, str]] = []
        chauffeurs: list[dict[str, str]] = []
        seen: set[str] = set()

        for user in rows:
            if user["id"] in seen:
                stats.doublons_utilisateurs += 1
                continue
            seen.add(user["id"])
            if is_spam_account(user):
                stats.comptes_spam += 1
                continue

            user_type = user.get("user_type", "")
            if is_fake_driver(user, self.fake_driver_start_id):
                user_type = USER_TYPE_CLIENT
                stats.faux_chauffeurs += 1
            if user_type == USER_TYPE_CHAUFFEUR and not is_legit_email(user.get("email")):
                stats.chauffeurs_email_invalide += 1
                continue

            clean = {key: user.get(key, "") for key in CLIENT_FIELDS}
            clean["full_name"] = clean["full_name"] or f"{clean['first_name']} {clean['last_name']}".strip()
            clean["user_type"] = user_type
            if user_type == USER_TYPE_CLIENT:
                clients.append(clean)
            elif user_type == USER_TYPE_CHAUFFEUR:
                chauffeurs.append(clean)
        return clients, chauffeurs

    def _convert_courses(self, rows: list[dict[str, str]], stats: LegacyStats) -> list[dict[str, str]]:
        courses: list[dict[str, str]] = []
        seen: set[str] = set()

        for commande in rows:
            if commande["id"] in seen:
                stats.doublons_courses += 1
                continue
            seen.add(commande["id"])

            course = {target: commande.get(source, "") for target, source in COURSE_FIELDS.items()}
            for role, column in (("client", "client"), ("chauffeur", "driver")):
                info = parse_embedded_json(commande.get(column)) or {}
                for key, suffix in zip(EMBEDDED_PERSON_FIELDS, ("prenom", "nom", "email", "mobile")):
                    course[f"{role}_{suffix}"] = str(info.get(key) or "")

            excluded = self._excluded_person(course)
            if excluded is not None:
                stats.courses_exclues[excluded] += 1
                logger.debug("Course %s retirée (%s)", course["order_id"], excluded)
                continue
            courses.append(course)
        return courses

    def _excluded_person(self, course: dict[str, str]) -> str | None:
        for role in ("client", "chauffeur"):
            prenom = course[f"{role}_prenom"].lower()
            nom = course[f"{role}_nom"].lower()
            for person in self.excluded_people:
                if _matches_person(prenom, nom, person):
                    return f"{person[0]} {person[1]}"
        return None
