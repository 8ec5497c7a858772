"""CLI de reprise des données de l'ancienne plateforme (exports TSV → JSON)."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from frais_courses.models import ParseError
from frais_courses.parsers.legacy_export import DEFAULT_FAKE_DRIVER_START_ID, LegacyExportParser

logger = logging.getLogger("frais_courses.migration")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s : %(message)s"


def _person(value: str) -> tuple[str, str]:
    parts = value.split(maxsplit=1)
    if len(parts) != 2:
        raise argparse.ArgumentTypeError(f"personne invalide '{value}' (format attendu : 'prénom nom')")
    return parts[0], parts[1]


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="frais-courses-migrate",
        description="Convertit clients.csv et commandes.csv de l'ancienne plateforme en JSON",
    )
    parser.add_argument("data_dir", help="Répertoire contenant clients.csv et commandes.csv")
    parser.add_argument("output_file", help="Fichier JSON de sortie")
    parser.add_argument(
        "--fake-driver-start-id",
        type=int,
        default=DEFAULT_FAKE_DRIVER_START_ID,
        help=f"Identifiant à partir duquel les chauffeurs sont reclassés clients (défaut : {DEFAULT_FAKE_DRIVER_START_ID})",
    )
    parser.add_argument(
        "--exclude",
        type=_person,
        action="append",
        default=None,
        metavar="'PRENOM NOM'",
        help="Retire les courses de cette personne (client ou chauffeur) ; répétable",
    )
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(args)


def main(args: list[str] | None = None) -> None:
    parsed = parse_args(args)
    logging.basicConfig(level=getattr(logging, parsed.log_level), format=LOG_FORMAT)

    if parsed.exclude is not None:
        parser = LegacyExportParser(parsed.fake_driver_start_id, tuple(parsed.exclude))
    else:
        parser = LegacyExportParser(parsed.fake_driver_start_id)

    try:
        document = parser.parse_directory(Path(parsed.data_dir))
    except ParseError as e:
        logger.error("Export illisible : %s", e)
        sys.exit(3)
    except Exception:
        logger.exception("Erreur inattendue")
        sys.exit(1)

    output = Path(parsed.output_file)
    with open(output, "w", encoding="utf-8") as f:
        json.dump(document, f, ensure_ascii=False, indent=2)

    stats = document["metadata"]["stats"]
    periode = document["metadata"]["periode"]
    print("=== Reprise ===")
    print(f"Clients    : {stats['total_clients']}")
    print(f"Chauffeurs : {stats['total_chauffeurs']}")
    print(f"Courses    : {stats['total_courses']}")
    print(f"CA total   : {stats['total_ca']} XPF")
    print(f"Période    : {periode['debut']} → {periode['fin']}")
    print(f"Fichier    : {output}")


if __name__ == "__main__":
    main()
