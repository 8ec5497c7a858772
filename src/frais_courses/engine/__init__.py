"""Moteur de calcul des frais, commissions et collectes."""

from __future__ import annotations

from frais_courses.engine.breakdown import (
    compute_breakdown,
    compute_breakdowns,
)
from frais_courses.engine.collecte import (
    mark_paid,
    recompute_collecte,
)

__all__ = [
    "compute_breakdown",
    "compute_breakdowns",
    "mark_paid",
    "recompute_collecte",
]
