"""Validation et application des taux saisis par l'administration."""

from __future__ import annotations

import dataclasses
import math
from typing import Any

from pydantic import BaseModel, field_validator

from frais_courses.config.loader import AppConfig


def _check_percent(value: float | None, label: str, *, strict_upper: bool = False) -> float | None:
    """Pourcentage fini dans [0, 100] (ou [0, 100[ si ``strict_upper``)."""
    if value is None:
        return None
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"{label} invalide : {value}%")
    if value > 100 or (strict_upper and value == 100):
        raise ValueError(f"{label} hors bornes : {value}%")
    return value


class FraisOverridesSchema(BaseModel):
    """Schéma Pydantic des taux modifiables par requête."""

    frais_service_prestataire: float | None = None
    commission_prestataire: float | None = None
    commission_salarie_tapea: float | None = None
    tarif_minute_attente: float | None = None
    minutes_gratuites: int | None = None

    @field_validator("frais_service_prestataire")
    @classmethod
    def validate_frais_service(cls, v: float | None) -> float | None:
        return _check_percent(v, "Frais de service", strict_upper=True)

    @field_validator("commission_prestataire", "commission_salarie_tapea")
    @classmethod
    def validate_commission(cls, v: float | None) -> float | None:
        return _check_percent(v, "Commission")

    @field_validator("tarif_minute_attente")
    @classmethod
    def validate_tarif(cls, v: float | None) -> float | None:
        if v is not None and (not math.isfinite(v) or v < 0):
            raise ValueError(f"Tarif d'attente invalide : {v}")
        return v

    @field_validator("minutes_gratuites")
    @classmethod
    def validate_minutes(cls, v: int | None) -> int | None:
        if v is not None and v < 0:
            raise ValueError(f"Minutes gratuites négatives : {v}")
        return v


def apply_overrides(config: AppConfig, overrides: dict[str, Any] | FraisOverridesSchema) -> AppConfig:
    """Applique les taux saisis à une copie de la configuration (merge partiel)."""
    if isinstance(overrides, FraisOverridesSchema):
        schema = overrides
    else:
        schema = FraisOverridesSchema.model_validate(overrides)

    frais_changes = {
        key: value
        for key, value in schema.model_dump(
            include={"frais_service_prestataire", "commission_prestataire", "commission_salarie_tapea"}
        ).items()
        if value is not None
    }
    tarif_changes: dict[str, Any] = {}
    if schema.tarif_minute_attente is not None:
        tarif_changes["tarif_minute_attente"] = schema.tarif_minute_attente
    if schema.minutes_gratuites is not None:
        tarif_changes["minutes_gratuites"] = schema.minutes_gratuites

    if not frais_changes and not tarif_changes:
        return config

    replacements: dict[str, Any] = {}
    if frais_changes:
        replacements["frais"] = dataclasses.replace(config.frais, **frais_changes)
    if tarif_changes:
        replacements["tarifs"] = dataclasses.replace(config.tarifs, **tarif_changes)
    return dataclasses.replace(config, **replacements)
