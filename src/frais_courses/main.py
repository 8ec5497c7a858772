"""Point d'entrée CLI de frais-courses."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from frais_courses.config.loader import load_config
from frais_courses.engine.amounts import is_valid_periode
from frais_courses.models import ConfigError, NoResultError, ParseError
from frais_courses.pipeline import PipelineOrchestrator

logger = logging.getLogger("frais_courses.main")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s : %(message)s"
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _periode(value: str) -> str:
    if not is_valid_periode(value):
        raise argparse.ArgumentTypeError(f"période invalide '{value}' (format attendu : YYYY-MM)")
    return value


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse les arguments CLI."""
    parser = argparse.ArgumentParser(
        prog="frais-courses",
        description="Calcul des frais de service, commissions et collecte mensuelle des courses",
    )
    parser.add_argument("input_dir", help="Répertoire contenant les exports CSV")
    parser.add_argument("output_file", help="Fichier Excel de sortie")
    parser.add_argument(
        "--config-dir",
        default="./config/",
        help="Répertoire de configuration YAML (défaut : ./config/)",
    )
    parser.add_argument(
        "--periode",
        type=_periode,
        default=None,
        help="Mois de collecte à recalculer, YYYY-MM (défaut : toutes les périodes)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=VALID_LOG_LEVELS,
        help="Niveau de log (défaut : INFO)",
    )
    return parser.parse_args(args)


def main(args: list[str] | None = None) -> None:
    """Point d'entrée principal."""
    parsed = parse_args(args)

    logging.basicConfig(
        level=getattr(logging, parsed.log_level),
        format=LOG_FORMAT,
    )

    config_dir = Path(parsed.config_dir)
    try:
        config = load_config(config_dir)
    except ConfigError as e:
        logger.error("Erreur de configuration : %s", e)
        sys.exit(2)

    try:
        orchestrator = PipelineOrchestrator()
        orchestrator.run(
            input_dir=Path(parsed.input_dir),
            output_path=Path(parsed.output_file),
            config=config,
            periode=parsed.periode,
        )
    except (NoResultError, ParseError) as e:
        print(f"ERREUR : {e}")
        sys.exit(3)
    except Exception:
        logger.exception("Erreur inattendue")
        sys.exit(1)


if __name__ == "__main__":
    main()
