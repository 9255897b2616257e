from __future__ import annotations

import logging
import threading
from decimal import Decimal
from typing import Optional, Union

from domain.errors import ThresholdConfigError
from domain.models import (
    ResolvedThresholds,
    RoleKind,
    Standing,
    Team,
    TeamThresholds,
    ThresholdSet,
)
from domain.repositories import ThresholdSettingsRepository

log = logging.getLogger(__name__)

Points = Union[int, Decimal]


def winning_team(bullas_total: Points, beras_total: Points, tie_winner: Team = Team.BERAS) -> Team:
    """
    Decide which team is ahead.

    Bullas only win with strictly more points. Equal totals go to
    `tie_winner`, which defaults to beras.
    """

    if bullas_total > beras_total:
        return Team.BULLAS
    if beras_total > bullas_total:
        return Team.BERAS
    return tie_winner


def resolve_thresholds(
    bullas_total: Points,
    beras_total: Points,
    winning: ThresholdSet,
    losing: ThresholdSet,
    tie_winner: Team = Team.BERAS,
) -> ResolvedThresholds:
    """Map each team to the threshold set it is judged by right now."""

    if winning is None or losing is None:
        raise ThresholdConfigError("Both winning and losing thresholds are required.")
    winning.validate()
    losing.validate()

    leader = winning_team(bullas_total, beras_total, tie_winner)
    return ResolvedThresholds(
        winning_team=leader,
        by_team={leader: winning, leader.opponent: losing},
    )


class ThresholdStore:
    """
    Holds the active `TeamThresholds`.

    The value is immutable; updates build a new value, persist it and swap
    the reference, so readers always see one consistent pair of sets.
    """

    def __init__(
        self,
        settings_repo: Optional[ThresholdSettingsRepository] = None,
        initial: Optional[TeamThresholds] = None,
    ) -> None:
        self._settings_repo = settings_repo
        self._lock = threading.Lock()
        self._current = initial or TeamThresholds()

    def load(self) -> TeamThresholds:
        """Replace the active thresholds with whatever is persisted, if anything."""

        if self._settings_repo is None:
            return self._current

        stored = self._settings_repo.load()
        if stored is None:
            log.info("No stored thresholds, using defaults")
            return self._current

        stored.validate()
        with self._lock:
            self._current = stored
        return stored

    def current(self) -> TeamThresholds:
        with self._lock:
            return self._current

    def update(self, standing: Standing, role: RoleKind, minimum: int) -> TeamThresholds:
        if isinstance(minimum, bool) or not isinstance(minimum, int) or minimum <= 0:
            raise ThresholdConfigError("Threshold minimum must be a positive integer.")

        with self._lock:
            current = self._current
            updated = current.with_standing(
                standing,
                current.for_standing(standing).with_role(role, minimum),
            )
            updated.validate()
            if self._settings_repo is not None:
                self._settings_repo.save(updated)
            self._current = updated

        log.info("%s team %s threshold set to %s", standing.value, role.value, minimum)
        return updated
