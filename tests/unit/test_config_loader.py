"""Tests unitaires pour config/loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from frais_courses.config.loader import AppConfig, load_config, validate_frais
from frais_courses.models import ConfigError, MissingConfigurationError

FRAIS_YAML = """\
frais_service_prestataire: 15
commission_prestataire: 5
commission_salarie_tapea: 0
"""


def _write(directory: Path, name: str, content: str) -> None:
    (directory / name).write_text(content, encoding="utf-8")


class TestLoadConfig:
    def test_repository_config(self, fixtures_dir: Path) -> None:
        config = load_config(fixtures_dir / "config")
        assert isinstance(config, AppConfig)
        assert config.frais.frais_service_prestataire == 15.0
        assert config.tarifs.tarif_minute_attente == 42.0
        assert config.tarifs.minutes_gratuites == 5
        assert config.tarifs.seuil_distance_metres == 1000.0
        assert config.sources.files["orders"] == "orders*.csv"
        assert config.sources.separator == ","

    def test_only_frais_uses_defaults(self, tmp_path: Path) -> None:
        _write(tmp_path, "frais_service.yaml", FRAIS_YAML)
        config = load_config(tmp_path)
        assert config.frais.commission_prestataire == 5.0
        assert config.tarifs.commission_chauffeur_defaut == 95.0
        assert "collecte" in config.sources.files

    def test_missing_frais_file(self, tmp_path: Path) -> None:
        with pytest.raises(MissingConfigurationError, match="aucun taux par défaut"):
            load_config(tmp_path)

    def test_empty_frais_file(self, tmp_path: Path) -> None:
        _write(tmp_path, "frais_service.yaml", "")
        with pytest.raises(MissingConfigurationError):
            load_config(tmp_path)

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        _write(tmp_path, "frais_service.yaml", "frais_service_prestataire: [15\n")
        with pytest.raises(ConfigError, match="YAML malformé"):
            load_config(tmp_path)

    def test_tarifs_override(self, tmp_path: Path) -> None:
        _write(tmp_path, "frais_service.yaml", FRAIS_YAML)
        _write(tmp_path, "tarifs.yaml", "attente:\n  tarif_minute: 50\n  minutes_gratuites: 3\n")
        config = load_config(tmp_path)
        assert config.tarifs.tarif_minute_attente == 50.0
        assert config.tarifs.minutes_gratuites == 3
        assert config.tarifs.seuil_distance_metres == 1000.0

    def test_negative_free_minutes(self, tmp_path: Path) -> None:
        _write(tmp_path, "frais_service.yaml", FRAIS_YAML)
        _write(tmp_path, "tarifs.yaml", "attente:\n  minutes_gratuites: -1\n")
        with pytest.raises(ConfigError, match="minutes_gratuites"):
            load_config(tmp_path)

    def test_unknown_source(self, tmp_path: Path) -> None:
        _write(tmp_path, "frais_service.yaml", FRAIS_YAML)
        _write(tmp_path, "sources.yaml", "files:\n  orders: o.csv\n  drivers: d.csv\n  rides: r.csv\n")
        with pytest.raises(ConfigError, match="Source inconnue 'rides'"):
            load_config(tmp_path)

    def test_required_source_missing(self, tmp_path: Path) -> None:
        _write(tmp_path, "frais_service.yaml", FRAIS_YAML)
        _write(tmp_path, "sources.yaml", "files:\n  orders: o.csv\n")
        with pytest.raises(ConfigError, match="'drivers'"):
            load_config(tmp_path)

    def test_unsupported_separator(self, tmp_path: Path) -> None:
        _write(tmp_path, "frais_service.yaml", FRAIS_YAML)
        _write(tmp_path, "sources.yaml", "files:\n  orders: o.csv\n  drivers: d.csv\nseparator: '|'\n")
        with pytest.raises(ConfigError, match="Séparateur"):
            load_config(tmp_path)


class TestValidateFrais:
    def test_valid(self) -> None:
        frais = validate_frais(
            {"frais_service_prestataire": 15, "commission_prestataire": 0, "commission_salarie_tapea": 10}
        )
        assert frais.commission_salarie_tapea == 10.0

    def test_missing_key(self) -> None:
        with pytest.raises(ConfigError, match="commission_prestataire"):
            validate_frais({"frais_service_prestataire": 15, "commission_salarie_tapea": 0})

    def test_service_fee_of_100_rejected(self) -> None:
        with pytest.raises(ConfigError, match="strictement inférieur"):
            validate_frais(
                {"frais_service_prestataire": 100, "commission_prestataire": 0, "commission_salarie_tapea": 0}
            )

    def test_commission_of_100_accepted(self) -> None:
        frais = validate_frais(
            {"frais_service_prestataire": 15, "commission_prestataire": 100, "commission_salarie_tapea": 0}
        )
        assert frais.commission_prestataire == 100.0

    @pytest.mark.parametrize("value", [-1, "15", True, 150])
    def test_invalid_values(self, value: object) -> None:
        with pytest.raises(ConfigError):
            validate_frais(
                {"frais_service_prestataire": value, "commission_prestataire": 0, "commission_salarie_tapea": 0}
            )
