"""Tests unitaires pour parsers/legacy_export (reprise de l'ancienne plateforme)."""

from __future__ import annotations

import datetime
from io import BytesIO
from pathlib import Path

import pytest

from frais_courses.models import ParseError
from frais_courses.parsers.legacy_export import (
    LegacyExportParser,
    is_fake_driver,
    is_legit_email,
    is_spam_account,
    parse_embedded_json,
)

NOW = datetime.datetime(2026, 10, 1, 12, 0, tzinfo=datetime.timezone.utc)


class TestFilters:
    def test_spam_patterns(self) -> None:
        assert is_spam_account({"first_name": "Jean", "last_name": "TEST"})
        assert is_spam_account({"email": "xxxx@example.pf"})
        assert is_spam_account({"first_name": "Paul", "deleted": "1"})
        assert not is_spam_account({"first_name": "Marie", "email": "marie@example.pf"})

    def test_fake_driver(self) -> None:
        assert is_fake_driver({"id": "2654", "user_type": "2"})
        assert not is_fake_driver({"id": "2653", "user_type": "2"})
        assert not is_fake_driver({"id": "3000", "user_type": "1"})
        assert is_fake_driver({"id": "100", "user_type": "2"}, start_id=50)

    def test_legit_email(self) -> None:
        assert is_legit_email("teva@example.pf")
        assert not is_legit_email("hiro_mau@example.pf")
        assert not is_legit_email("NULL")
        assert not is_legit_email("pas-un-email")
        assert not is_legit_email(None)

    def test_embedded_json(self) -> None:
        assert parse_embedded_json('{"first_name": "Teva"}') == {"first_name": "Teva"}
        assert parse_embedded_json("NULL") is None
        assert parse_embedded_json("{abimé") is None
        assert parse_embedded_json("[1, 2]") is None


class TestLegacyExportParser:
    def test_fixture_directory(self, fixtures_dir: Path) -> None:
        document = LegacyExportParser().parse_directory(fixtures_dir / "legacy", now=NOW)
        stats = document["metadata"]["stats"]

        assert document["metadata"]["source"] == "AWS MariaDB Export"
        assert document["metadata"]["export_date"] == NOW.isoformat()
        assert stats["total_clients"] == 2
        assert stats["total_chauffeurs"] == 1
        assert stats["comptes_spam"] == 2
        assert stats["faux_chauffeurs"] == 1
        assert stats["chauffeurs_email_invalide"] == 1
        assert stats["total_courses"] == 3
        assert stats["total_ca"] == 5700
        assert stats["montants_invalides"] == 1
        assert stats["courses_exclues"] == {"test client": 1, "test26 client": 0}
        assert document["metadata"]["periode"] == {"debut": "2021-03-20 11:00:00", "fin": "2021-05-12 14:30:00"}

    def test_users_converted(self, fixtures_dir: Path) -> None:
        document = LegacyExportParser().parse_directory(fixtures_dir / "legacy", now=NOW)
        users = {u["id"]: u for u in document["clients"]}
        assert list(users) == ["10", "2654", "500"]
        assert users["10"]["full_name"] == "Marie Teriitahi"
        assert users["2654"]["user_type"] == "1"
        assert users["500"]["user_type"] == "2"

    def test_courses_converted(self, fixtures_dir: Path) -> None:
        document = LegacyExportParser().parse_directory(fixtures_dir / "legacy", now=NOW)
        courses = {c["order_id"]: c for c in document["courses"]}
        assert list(courses) == ["1", "2", "4"]
        assert courses["1"]["client_prenom"] == "Marie"
        assert courses["1"]["chauffeur_nom"] == "Tane"
        assert courses["1"]["montant_total"] == "2500"
        assert courses["1"]["distance_km"] == "7.5"
        assert courses["2"]["client_prenom"] == ""
        assert courses["4"]["chauffeur_id"] == ""

    def test_configurable_exclusions(self, fixtures_dir: Path) -> None:
        parser = LegacyExportParser(excluded_people=(("Marie", "Teriitahi"),))
        document = parser.parse_directory(fixtures_dir / "legacy", now=NOW)
        # la course 2 n'a pas de client embarqué
        assert [c["order_id"] for c in document["courses"]] == ["2", "3"]
        assert document["metadata"]["stats"]["courses_exclues"] == {"marie teriitahi": 2}

    def test_fake_driver_threshold(self, fixtures_dir: Path) -> None:
        document = LegacyExportParser(fake_driver_start_id=500).parse_directory(fixtures_dir / "legacy", now=NOW)
        stats = document["metadata"]["stats"]
        # 500 et 2654 reclassés ; 501 aussi, donc plus d'email chauffeur à contrôler
        assert stats["faux_chauffeurs"] == 3
        assert stats["total_chauffeurs"] == 0
        assert stats["chauffeurs_email_invalide"] == 0

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ParseError, match="clients.csv"):
            LegacyExportParser().parse_directory(tmp_path)

    def test_missing_column(self) -> None:
        files: dict[str, Path | BytesIO] = {
            "clients.csv": BytesIO(b"id\tfirst_name\n1\tMarie\n"),
            "commandes.csv": BytesIO(b"id\tcreate_time\tstatus\ttotal\n"),
        }
        with pytest.raises(ParseError, match="Colonnes manquantes dans clients.csv"):
            LegacyExportParser().parse(files, now=NOW)
