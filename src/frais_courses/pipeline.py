"""Orchestrateur du pipeline de traitement complet."""

from __future__ import annotations

import datetime
import fnmatch
import logging
import unicodedata
from collections import Counter
from io import BytesIO
from pathlib import Path

from frais_courses.config.loader import AppConfig
from frais_courses.controls.ledger_checker import LedgerChecker
from frais_courses.controls.split_checker import SplitChecker
from frais_courses.engine import compute_breakdowns, recompute_collecte
from frais_courses.engine.amounts import is_valid_periode, periode_of
from frais_courses.engine.collecte import COLLECTABLE_STATUS, summarize_collectes
from frais_courses.exporters.excel import export, print_summary
from frais_courses.models import Anomaly, CollecteFrais, FeeBreakdown, NoResultError, ParseResult
from frais_courses.parsers import ExportParser

logger = logging.getLogger(__name__)

REQUIRED_FILES = ("orders", "drivers")

SEVERITY_RANK = {"info": 0, "warning": 1, "error": 2}


def dedupe_anomalies(anomalies: list[Anomaly]) -> list[Anomaly]:
    """Une seule anomalie par (type, référence), la plus grave, à la place de la première."""
    kept: dict[tuple[str, str], Anomaly] = {}
    for anomaly in anomalies:
        key = (anomaly.type, anomaly.reference)
        current = kept.get(key)
        if current is None or SEVERITY_RANK.get(anomaly.severity, 0) > SEVERITY_RANK.get(current.severity, 0):
            kept[key] = anomaly
    return list(kept.values())


class PipelineOrchestrator:
    """Orchestre le pipeline CSV → Détail des courses + Collecte → Excel."""

    def run(
        self,
        input_dir: Path,
        output_path: Path,
        config: AppConfig,
        periode: str | None = None,
        now: datetime.datetime | None = None,
    ) -> None:
        """Exécute le pipeline complet."""
        files = self._detect_files(input_dir, config.sources.files)
        self._check_required(files)

        result = ExportParser().parse(files, config)
        breakdowns, collectes, anomalies = self._process_parse_result(result, config, periode, now)

        export(breakdowns, collectes, anomalies, output_path)
        print_summary(breakdowns, collectes, anomalies)

    def run_from_buffers(
        self,
        files: dict[str, bytes],
        config: AppConfig,
        periode: str | None = None,
        now: datetime.datetime | None = None,
    ) -> tuple[list[FeeBreakdown], list[CollecteFrais], list[Anomaly], dict[str, object]]:
        """Exécute le pipeline à partir de fichiers en mémoire.

        Args:
            files: Dictionnaire {nom_fichier: contenu_bytes}.
            config: Configuration de l'application.
            periode: Mois à recalculer (``YYYY-MM``) ; toutes les périodes si absent.

        Returns:
            Tuple (détails des courses, lignes de collecte, anomalies, résumé).
        """
        buffers = self._detect_files_from_buffers(files, config.sources.files)
        self._check_required(buffers)

        result = ExportParser().parse(buffers, config)
        breakdowns, collectes, anomalies = self._process_parse_result(result, config, periode, now)
        summary = self._build_summary(result, breakdowns, collectes)

        return breakdowns, collectes, anomalies, summary

    @staticmethod
    def _check_required(files: dict[str, Path | BytesIO]) -> None:
        missing = [key for key in REQUIRED_FILES if key not in files]
        if missing:
            raise NoResultError(
                f"Fichiers d'export introuvables : {', '.join(missing)}. "
                "Vérifiez les fichiers CSV et la configuration."
            )

    def _process_parse_result(
        self,
        result: ParseResult,
        config: AppConfig,
        periode: str | None,
        now: datetime.datetime | None,
    ) -> tuple[list[FeeBreakdown], list[CollecteFrais], list[Anomaly]]:
        """Calcule les détails, recalcule la collecte et exécute les contrôles."""
        if not result.orders:
            raise NoResultError("Aucune course exploitable. Vérifiez les fichiers CSV et la configuration.")

        anomalies = list(result.anomalies)
        drivers = {d.id: d for d in result.drivers}

        breakdowns, engine_anomalies = compute_breakdowns(result.orders, drivers, config)
        anomalies.extend(engine_anomalies)
        logger.info("%d courses calculées, %d écartées", len(breakdowns), len(result.orders) - len(breakdowns))

        if periode is not None:
            if not is_valid_periode(periode):
                raise ValueError(f"Période invalide : '{periode}' (format attendu : YYYY-MM)")
            periodes = [periode]
        else:
            periodes = sorted(
                {periode_of(o.created_at) for o in result.orders if o.status == COLLECTABLE_STATUS}
            )

        collectes: list[CollecteFrais] = [c for c in result.collectes if c.periode not in periodes]
        for p in periodes:
            recomputed = recompute_collecte(result.orders, drivers, p, config, existing=result.collectes, now=now)
            collectes.extend(recomputed.collectes)
            anomalies.extend(recomputed.anomalies)
        collectes.sort(key=lambda c: c.id)

        # Contrôles de cohérence
        split_anomalies = SplitChecker.check(breakdowns)
        logger.info("SplitChecker: %d anomalies détectées", len(split_anomalies))

        ledger_anomalies = LedgerChecker.check(collectes)
        logger.info("LedgerChecker: %d anomalies détectées", len(ledger_anomalies))

        anomalies.extend(split_anomalies)
        anomalies.extend(ledger_anomalies)

        # Une course invalide est signalée par le calcul des détails et par la collecte.
        return breakdowns, collectes, dedupe_anomalies(anomalies)

    @staticmethod
    def _build_summary(
        result: ParseResult,
        breakdowns: list[FeeBreakdown],
        collectes: list[CollecteFrais],
    ) -> dict[str, object]:
        """Résumé : courses par statut, totaux de répartition, collecte par période."""
        courses_par_statut: Counter[str] = Counter(o.status for o in result.orders)

        repartition = {
            "prix_total": sum(b.total_price for b in breakdowns),
            "chauffeurs": sum(b.driver_earnings for b in breakdowns),
            "prestataires": sum(b.prestataire_earnings for b in breakdowns),
            "plateforme": sum(b.platform_total for b in breakdowns),
            "frais_service": sum(b.service_fee for b in breakdowns),
            "commission_supplementaire": sum(b.supplementary_commission for b in breakdowns),
        }

        collecte_par_periode = {
            p: summarize_collectes(c for c in collectes if c.periode == p)
            for p in sorted({c.periode for c in collectes})
        }

        return {
            "nb_courses": len(result.orders),
            "nb_courses_calculees": len(breakdowns),
            "courses_par_statut": dict(courses_par_statut),
            "repartition": repartition,
            "collecte": summarize_collectes(collectes),
            "collecte_par_periode": collecte_par_periode,
        }

    @staticmethod
    def _detect_files(input_dir: Path, file_patterns: dict[str, str]) -> dict[str, Path | BytesIO]:
        """Détecte les fichiers CSV dans input_dir via les patterns glob."""
        found: dict[str, Path | BytesIO] = {}
        for file_key, pattern in file_patterns.items():
            matches = sorted(input_dir.glob(pattern))
            if not matches:
                # macOS returns NFD filenames; retry with NFD-normalized pattern
                nfd_pattern = unicodedata.normalize("NFD", pattern)
                if nfd_pattern != pattern:
                    matches = sorted(input_dir.glob(nfd_pattern))
            if matches:
                if len(matches) > 1:
                    logger.warning("Plusieurs fichiers pour '%s', utilisation de %s", file_key, matches[0].name)
                found[file_key] = matches[0]
            else:
                logger.info("Aucun fichier trouvé pour '%s' (%s)", file_key, pattern)
        return found

    @staticmethod
    def _detect_files_from_buffers(
        files: dict[str, bytes],
        file_patterns: dict[str, str],
    ) -> dict[str, Path | BytesIO]:
        """Associe les fichiers en mémoire aux tables via fnmatch sur les patterns."""
        found: dict[str, Path | BytesIO] = {}
        for file_key, pattern in file_patterns.items():
            match_pattern = pattern.split("/")[-1]
            candidates = [match_pattern]
            nfd_pattern = unicodedata.normalize("NFD", match_pattern)
            if nfd_pattern != match_pattern:
                candidates.append(nfd_pattern)

            matched = sorted(
                (filename, content)
                for filename, content in files.items()
                if any(fnmatch.fnmatch(filename.split("/")[-1], c) for c in candidates)
            )
            if matched:
                found[file_key] = BytesIO(matched[0][1])
        return found
