"""Endpoints de l'API : calcul des courses, collecte, export Excel, configuration et santé."""

from __future__ import annotations

import dataclasses
import datetime
import json
import logging
from typing import Any

from fastapi import APIRouter, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError

from frais_courses.config.loader import AppConfig
from frais_courses.engine import compute_breakdown, mark_paid, recompute_collecte
from frais_courses.engine.amounts import is_valid_periode
from frais_courses.engine.collecte import filter_collectes, summarize_collectes
from frais_courses.exporters.excel import export_to_bytes
from frais_courses.models import (
    Anomaly,
    CollecteFrais,
    ConfigError,
    FeeBreakdown,
    InvalidOrderError,
    LedgerError,
    NoResultError,
    Order,
    ParseError,
    RoundingDriftError,
    StatusTransitionError,
)
from frais_courses.parsers.orders import collecte_from_record, driver_from_record, order_from_record
from frais_courses.pipeline import PipelineOrchestrator
from frais_courses.status import (
    LEGAL_TRANSITIONS,
    ORDER_STATUSES,
    is_known_status,
    is_terminal,
    status_label,
    validate_transition,
)

from .overrides import FraisOverridesSchema, apply_overrides
from .serializers import serialize_breakdown, serialize_collecte, serialize_recompute, serialize_response

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
MAX_FILES = 10
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class BreakdownRequest(BaseModel):
    order: dict[str, Any]
    driver: dict[str, Any] | None = None
    overrides: FraisOverridesSchema | None = None


class RecalculateRequest(BaseModel):
    periode: str
    orders: list[dict[str, Any]]
    drivers: list[dict[str, Any]]
    existing: list[dict[str, Any]] = []
    overrides: FraisOverridesSchema | None = None
    statut: str = "all"


class MarkPaidRequest(BaseModel):
    entry: dict[str, Any]
    montant: int | None = None
    solde: bool = False


class TransitionRequest(BaseModel):
    current: str
    target: str


async def _validate_and_read_files(
    files: list[UploadFile],
) -> dict[str, bytes]:
    """Valide les uploads et retourne un dict {filename: bytes}."""
    if len(files) > MAX_FILES:
        raise HTTPException(
            status_code=422,
            detail=f"Trop de fichiers : {len(files)} (maximum {MAX_FILES}).",
        )

    files_dict: dict[str, bytes] = {}
    for f in files:
        filename = f.filename or "unknown"
        if not filename.lower().endswith(".csv"):
            raise HTTPException(
                status_code=422,
                detail=f"Extension invalide pour '{filename}' : seuls les fichiers .csv sont acceptés.",
            )
        content = await f.read()
        if len(content) > MAX_FILE_SIZE:
            raise HTTPException(
                status_code=413,
                detail=f"Fichier '{filename}' trop volumineux : {len(content)} octets (maximum {MAX_FILE_SIZE}).",
            )
        files_dict[filename] = content

    return files_dict


def _resolve_config(request: Request, overrides: FraisOverridesSchema | str | None) -> AppConfig:
    """Applique les taux saisis (objet ou JSON de formulaire) à une copie de la configuration."""
    config: AppConfig = request.app.state.config
    if overrides is None or overrides == "":
        return config
    if isinstance(overrides, str):
        try:
            overrides_dict = json.loads(overrides)
        except json.JSONDecodeError as e:
            raise HTTPException(status_code=422, detail=f"JSON overrides invalide : {e}")
        try:
            return apply_overrides(config, overrides_dict)
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=f"Overrides invalides : {e}")
    return apply_overrides(config, overrides)


def _run_pipeline(
    files_dict: dict[str, bytes], config: AppConfig, periode: str | None
) -> tuple[list[FeeBreakdown], list[CollecteFrais], list[Anomaly], dict[str, object]]:
    pipeline = PipelineOrchestrator()
    try:
        return pipeline.run_from_buffers(files_dict, config, periode)
    except ParseError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except (NoResultError, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ConfigError as e:
        logger.error("Erreur de configuration : %s", e)
        raise HTTPException(status_code=500, detail="Erreur de configuration interne")


@router.post("/api/process")
async def process(
    request: Request,
    files: list[UploadFile],
    overrides: str | None = Form(None),
    periode: str | None = Form(None),
) -> JSONResponse:
    """Upload CSV → JSON (détail des courses, collecte, anomalies, résumé)."""
    files_dict = await _validate_and_read_files(files)
    config = _resolve_config(request, overrides)

    breakdowns, collectes, anomalies, summary = _run_pipeline(files_dict, config, periode)
    return JSONResponse(content=serialize_response(breakdowns, collectes, anomalies, summary))


@router.post("/api/download/excel")
async def download_excel(
    request: Request,
    files: list[UploadFile],
    overrides: str | None = Form(None),
    periode: str | None = Form(None),
) -> StreamingResponse:
    """Upload CSV → fichier .xlsx en téléchargement."""
    files_dict = await _validate_and_read_files(files)
    config = _resolve_config(request, overrides)

    breakdowns, collectes, anomalies, _summary = _run_pipeline(files_dict, config, periode)

    buffer = export_to_bytes(breakdowns, collectes, anomalies)
    today = datetime.date.today().isoformat()
    filename = f"frais-courses-{periode or today}.xlsx"

    return StreamingResponse(
        buffer,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/api/breakdown")
async def breakdown(request: Request, body: BreakdownRequest) -> JSONResponse:
    """Détail d'une course : tarif, frais de service, commissions et répartition."""
    config = _resolve_config(request, body.overrides)
    try:
        order = order_from_record(body.order)
        driver = (
            driver_from_record(body.driver, config.tarifs.commission_chauffeur_defaut)
            if body.driver is not None
            else None
        )
        result = compute_breakdown(order, driver, config)
    except (InvalidOrderError, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    except RoundingDriftError as e:
        logger.error("Écart d'arrondi : %s", e)
        raise HTTPException(status_code=500, detail="Erreur interne de répartition")
    return JSONResponse(content=serialize_breakdown(result))


@router.post("/api/collecte/recalculate")
async def recalculate_collecte(request: Request, body: RecalculateRequest) -> JSONResponse:
    """Recalcule la collecte d'une période ; les courses illisibles sont écartées et signalées."""
    if not is_valid_periode(body.periode):
        raise HTTPException(status_code=422, detail=f"Période invalide : '{body.periode}' (format attendu : YYYY-MM)")
    config = _resolve_config(request, body.overrides)

    orders: list[Order] = []
    parse_anomalies: list[Anomaly] = []
    for record in body.orders:
        try:
            orders.append(order_from_record(record))
        except InvalidOrderError as e:
            parse_anomalies.append(
                Anomaly(
                    type="invalid_order",
                    severity="error",
                    reference=str(record.get("id", "?")),
                    detail=str(e),
                    expected_value=None,
                    actual_value=None,
                )
            )
    try:
        drivers = {
            d.id: d
            for d in (driver_from_record(r, config.tarifs.commission_chauffeur_defaut) for r in body.drivers)
        }
        existing = [collecte_from_record(r) for r in body.existing]
    except (InvalidOrderError, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))

    existing_periodes = {c.periode for c in existing}
    if existing_periodes - {body.periode}:
        raise HTTPException(
            status_code=422,
            detail=f"Lignes de collecte hors période {body.periode} : {', '.join(sorted(existing_periodes))}",
        )

    result = recompute_collecte(orders, drivers, body.periode, config, existing=existing)
    summary = summarize_collectes(result.collectes)
    try:
        shown = filter_collectes(result.collectes, body.statut)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    result = dataclasses.replace(result, collectes=shown, anomalies=parse_anomalies + result.anomalies)
    return JSONResponse(content=serialize_recompute(result, summary))


@router.post("/api/collecte/mark-paid")
async def collecte_mark_paid(body: MarkPaidRequest) -> JSONResponse:
    """Enregistre un règlement (acompte ou solde) sur une ligne de collecte."""
    try:
        entry = collecte_from_record(body.entry)
    except (InvalidOrderError, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    try:
        updated = mark_paid(entry, body.montant, solde=body.solde)
    except LedgerError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return JSONResponse(content=serialize_collecte(updated))


@router.get("/api/config/frais")
async def config_frais(request: Request) -> JSONResponse:
    """Retourne les taux de frais et les paramètres tarifaires en vigueur."""
    config: AppConfig = request.app.state.config
    return JSONResponse(content={
        "frais_service_prestataire": config.frais.frais_service_prestataire,
        "commission_prestataire": config.frais.commission_prestataire,
        "commission_salarie_tapea": config.frais.commission_salarie_tapea,
        "tarifs": {
            "tarif_minute_attente": config.tarifs.tarif_minute_attente,
            "minutes_gratuites": config.tarifs.minutes_gratuites,
            "seuil_distance_metres": config.tarifs.seuil_distance_metres,
            "commission_chauffeur_defaut": config.tarifs.commission_chauffeur_defaut,
        },
    })


@router.get("/api/statuts")
async def statuts() -> JSONResponse:
    """Statuts de course, libellés et transitions autorisées."""
    return JSONResponse(content=[
        {
            "value": status,
            "label": status_label(status),
            "terminal": is_terminal(status),
            "transitions": sorted(LEGAL_TRANSITIONS.get(status, ())),
        }
        for status in ORDER_STATUSES
    ])


@router.post("/api/statuts/transition")
async def statut_transition(body: TransitionRequest) -> JSONResponse:
    """Valide un changement de statut de course et retourne le nouveau statut."""
    unknown = [s for s in (body.current, body.target) if not is_known_status(s)]
    if unknown:
        raise HTTPException(status_code=422, detail=f"Statut de commande inconnu : '{unknown[0]}'")
    try:
        status = validate_transition(body.current, body.target)
    except StatusTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return JSONResponse(content={"status": status, "label": status_label(status), "terminal": is_terminal(status)})


@router.get("/api/health")
async def health() -> dict[str, str]:
    """Health check."""
    return {"status": "ok"}
