from __future__ import annotations

from pathlib import Path

import pytest

from frais_courses.config.loader import AppConfig
from frais_courses.models import FraisServiceConfig


@pytest.fixture
def fixtures_dir() -> Path:
    """Chemin vers le répertoire de fixtures."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_config() -> AppConfig:
    """AppConfig valide : 15 % de frais de service, pas de commission supplémentaire."""
    return AppConfig(
        frais=FraisServiceConfig(
            frais_service_prestataire=15.0,
            commission_prestataire=0.0,
            commission_salarie_tapea=0.0,
        )
    )
