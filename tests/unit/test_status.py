"""Tests unitaires pour le cycle de vie des commandes."""

from __future__ import annotations

import pytest

from frais_courses.models import StatusTransitionError
from frais_courses.status import (
    LEGAL_TRANSITIONS,
    ORDER_STATUSES,
    STATUS_LABELS,
    can_transition,
    is_known_status,
    is_terminal,
    status_label,
    validate_transition,
)


class TestStatuses:
    def test_sixteen_statuses(self) -> None:
        assert len(ORDER_STATUSES) == 16
        assert set(ORDER_STATUSES) == set(LEGAL_TRANSITIONS)
        assert set(ORDER_STATUSES) == set(STATUS_LABELS)

    def test_transitions_target_known_statuses(self) -> None:
        for targets in LEGAL_TRANSITIONS.values():
            assert targets <= set(ORDER_STATUSES)

    def test_terminal(self) -> None:
        assert is_terminal("payment_confirmed")
        assert is_terminal("cancelled")
        assert not is_terminal("completed")
        assert not is_terminal("inconnu")

    def test_labels(self) -> None:
        assert status_label("payment_confirmed") == "Paiement confirmé"
        assert status_label("mystery") == "mystery"

    def test_known(self) -> None:
        assert is_known_status("at_stop_2")
        assert not is_known_status("")


class TestTransitions:
    def test_happy_path(self) -> None:
        path = [
            "pending",
            "accepted",
            "driver_enroute",
            "driver_arrived",
            "in_progress",
            "at_stop_1",
            "in_progress",
            "completed",
            "payment_pending",
            "payment_confirmed",
        ]
        for current, target in zip(path, path[1:]):
            assert validate_transition(current, target) == target

    def test_payment_retry(self) -> None:
        assert can_transition("payment_pending", "payment_failed")
        assert can_transition("payment_failed", "payment_pending")

    def test_cannot_leave_terminal(self) -> None:
        with pytest.raises(StatusTransitionError, match="interdite"):
            validate_transition("payment_confirmed", "pending")

    def test_cannot_skip_to_payment(self) -> None:
        assert not can_transition("pending", "payment_confirmed")

    def test_unknown_status(self) -> None:
        with pytest.raises(StatusTransitionError, match="inconnu"):
            validate_transition("pending", "teleported")
