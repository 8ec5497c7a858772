"""Chargement et validation de la configuration YAML."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from frais_courses.models import ConfigError, FraisServiceConfig, MissingConfigurationError

logger = logging.getLogger(__name__)

SUPPORTED_ENCODINGS = {"utf-8", "utf-8-sig", "latin-1", "iso-8859-1"}
SUPPORTED_SEPARATORS = {",", ";"}
REQUIRED_SOURCES = ("orders", "drivers")
KNOWN_SOURCES = {"orders", "drivers", "prestataires", "collecte"}


@dataclass
class TarifConfig:
    """Paramètres tarifaires communs (non frozen, dataclass technique)."""

    tarif_minute_attente: float = 42.0
    minutes_gratuites: int = 5
    seuil_distance_metres: float = 1000.0
    commission_chauffeur_defaut: float = 95.0


@dataclass
class SourcesConfig:
    """Motifs des fichiers d'export et format CSV."""

    files: dict[str, str]
    encoding: str = "utf-8"
    separator: str = ","


@dataclass
class AppConfig:
    """Configuration complète de l'application (non frozen, dataclass technique)."""

    frais: FraisServiceConfig
    tarifs: TarifConfig = field(default_factory=TarifConfig)
    sources: SourcesConfig = field(
        default_factory=lambda: SourcesConfig(
            files={
                "orders": "orders*.csv",
                "drivers": "drivers*.csv",
                "prestataires": "prestataires*.csv",
                "collecte": "collecte_frais*.csv",
            }
        )
    )


def _load_yaml(filepath: Path, *, required_config: bool = False) -> dict[str, object]:
    """Charge un fichier YAML et retourne son contenu."""
    if not filepath.exists():
        if required_config:
            raise MissingConfigurationError(
                f"Configuration des frais absente : {filepath}, aucun taux par défaut n'est appliqué"
            )
        raise ConfigError(f"Fichier de configuration manquant : {filepath}")
    try:
        with open(filepath, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML malformé dans {filepath} : {e}") from e
    if data is None and required_config:
        raise MissingConfigurationError(f"Configuration des frais vide : {filepath}")
    if not isinstance(data, dict):
        raise ConfigError(f"Le fichier {filepath} doit contenir un mapping YAML (reçu : {type(data).__name__})")
    return data


def _require_key(data: dict[str, object], key: str, context: str) -> object:
    """Vérifie qu'une clé existe dans un dictionnaire."""
    if key not in data:
        raise ConfigError(f"Clé obligatoire '{key}' manquante dans {context}")
    return data[key]


def _require_percent(value: object, key: str, context: str, *, strict_upper: bool = False) -> float:
    """Valide un pourcentage : nombre fini entre 0 et 100."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' doit être un nombre dans {context} (reçu : {value!r})")
    rate = float(value)
    if not math.isfinite(rate) or rate < 0:
        raise ConfigError(f"'{key}' invalide dans {context} : {rate}% (doit être entre 0 et 100)")
    if rate > 100 or (strict_upper and rate == 100):
        raise ConfigError(
            f"'{key}' invalide dans {context} : {rate}% "
            f"(doit être {'strictement inférieur à' if strict_upper else 'au plus'} 100)"
        )
    return rate


def _require_positive(value: object, key: str, context: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' doit être un nombre dans {context} (reçu : {value!r})")
    number = float(value)
    if not math.isfinite(number) or number < 0:
        raise ConfigError(f"'{key}' doit être un nombre positif dans {context} (reçu : {number})")
    return number


def validate_frais(data: dict[str, object], context: str = "frais_service.yaml") -> FraisServiceConfig:
    """Valide et extrait la configuration des frais de service."""
    frais_service = _require_percent(
        _require_key(data, "frais_service_prestataire", context),
        "frais_service_prestataire",
        context,
        strict_upper=True,
    )
    commission = _require_percent(
        _require_key(data, "commission_prestataire", context), "commission_prestataire", context
    )
    commission_salarie = _require_percent(
        _require_key(data, "commission_salarie_tapea", context), "commission_salarie_tapea", context
    )
    return FraisServiceConfig(
        frais_service_prestataire=frais_service,
        commission_prestataire=commission,
        commission_salarie_tapea=commission_salarie,
    )


def _validate_tarifs(data: dict[str, object]) -> TarifConfig:
    """Valide et extrait les paramètres tarifaires."""
    context = "tarifs.yaml"
    defaults = TarifConfig()

    attente = data.get("attente", {})
    if not isinstance(attente, dict):
        raise ConfigError(f"'attente' doit être un mapping dans {context}")
    tarif_minute = _require_positive(
        attente.get("tarif_minute", defaults.tarif_minute_attente), "attente.tarif_minute", context
    )
    minutes_gratuites = attente.get("minutes_gratuites", defaults.minutes_gratuites)
    if isinstance(minutes_gratuites, bool) or not isinstance(minutes_gratuites, int) or minutes_gratuites < 0:
        raise ConfigError(
            f"'attente.minutes_gratuites' doit être un entier positif dans {context} (reçu : {minutes_gratuites!r})"
        )

    distance = data.get("distance", {})
    if not isinstance(distance, dict):
        raise ConfigError(f"'distance' doit être un mapping dans {context}")
    seuil = _require_positive(
        distance.get("seuil_metres", defaults.seuil_distance_metres), "distance.seuil_metres", context
    )

    commission_defaut = _require_percent(
        data.get("commission_chauffeur_defaut", defaults.commission_chauffeur_defaut),
        "commission_chauffeur_defaut",
        context,
    )

    return TarifConfig(
        tarif_minute_attente=tarif_minute,
        minutes_gratuites=minutes_gratuites,
        seuil_distance_metres=seuil,
        commission_chauffeur_defaut=commission_defaut,
    )


def _validate_sources(data: dict[str, object]) -> SourcesConfig:
    """Valide et extrait la configuration des fichiers d'export."""
    context = "sources.yaml"

    files = _require_key(data, "files", context)
    if not isinstance(files, dict) or len(files) == 0:
        raise ConfigError(f"'files' doit contenir au moins un pattern dans {context}")
    for source_key, pattern in files.items():
        if str(source_key) not in KNOWN_SOURCES:
            raise ConfigError(
                f"Source inconnue '{source_key}' dans {context}. "
                f"Sources acceptées : {', '.join(sorted(KNOWN_SOURCES))}"
            )
        if not pattern or not str(pattern).strip():
            raise ConfigError(f"Pattern fichier vide pour '{source_key}' dans {context}")
    for source_key in REQUIRED_SOURCES:
        if source_key not in files:
            raise ConfigError(f"Pattern obligatoire '{source_key}' manquant dans {context}")

    encoding = str(data.get("encoding", "utf-8"))
    if encoding not in SUPPORTED_ENCODINGS:
        raise ConfigError(
            f"Encodage '{encoding}' non supporté dans {context}. "
            f"Encodages acceptés : {', '.join(sorted(SUPPORTED_ENCODINGS))}"
        )

    separator = str(data.get("separator", ","))
    if separator not in SUPPORTED_SEPARATORS:
        raise ConfigError(
            f"Séparateur '{separator}' non supporté dans {context}. "
            f"Séparateurs acceptés : {', '.join(sorted(SUPPORTED_SEPARATORS))}"
        )

    return SourcesConfig(
        files={str(k): str(v) for k, v in files.items()},
        encoding=encoding,
        separator=separator,
    )


def load_config(config_dir: Path) -> AppConfig:
    """Charge et valide la configuration complète depuis un répertoire.

    ``frais_service.yaml`` est obligatoire : son absence lève
    ``MissingConfigurationError``. ``tarifs.yaml`` et ``sources.yaml`` sont
    optionnels et complétés par les valeurs par défaut.

    Args:
        config_dir: Répertoire contenant les fichiers YAML de configuration.

    Returns:
        AppConfig validée.

    Raises:
        ConfigError: Si un fichier est malformé ou contient des valeurs invalides.
    """
    logger.info("Chargement de la configuration depuis %s", config_dir)

    frais = validate_frais(_load_yaml(config_dir / "frais_service.yaml", required_config=True))
    config = AppConfig(frais=frais)

    tarifs_path = config_dir / "tarifs.yaml"
    if tarifs_path.exists():
        config.tarifs = _validate_tarifs(_load_yaml(tarifs_path))

    sources_path = config_dir / "sources.yaml"
    if sources_path.exists():
        config.sources = _validate_sources(_load_yaml(sources_path))

    logger.debug(
        "frais_service_prestataire=%s%% commission_prestataire=%s%% commission_salarie_tapea=%s%%",
        frais.frais_service_prestataire,
        frais.commission_prestataire,
        frais.commission_salarie_tapea,
    )
    logger.debug(
        "attente: %s XPF/min après %s min gratuites", config.tarifs.tarif_minute_attente, config.tarifs.minutes_gratuites
    )

    return config
