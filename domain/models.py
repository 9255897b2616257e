from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, Optional

from .errors import ThresholdConfigError


class Team(str, Enum):
    BULLAS = "bullas"
    BERAS = "beras"

    @property
    def opponent(self) -> "Team":
        return Team.BERAS if self is Team.BULLAS else Team.BULLAS


class Standing(str, Enum):
    """Whether a team is currently ahead or behind on total points."""

    WINNING = "winning"
    LOSING = "losing"


class RoleKind(str, Enum):
    WHITELIST = "whitelist"
    MOOLALIST = "moolalist"
    FREE_MINT = "freemint"


ALL_BADGES: FrozenSet[RoleKind] = frozenset(RoleKind)


@dataclass
class UserAccount:
    """
    A member of the points ledger.

    `discord_id` can be missing on rows created by the web flow before the
    link completes; such rows are ignored by everything except storage.
    """

    discord_id: Optional[str]
    address: Optional[str] = None
    points: Decimal = Decimal(0)
    team: Optional[Team] = None


@dataclass
class LinkToken:
    """One-time token handed to the wallet-link web flow."""

    token: str
    discord_id: str
    used: bool = False


@dataclass(frozen=True)
class ThresholdSet:
    """
    Minimum points for each badge role.

    The three tiers are independent: nothing requires
    `whitelist >= moolalist >= free_mint`.
    """

    whitelist: int
    moolalist: int
    free_mint: int

    def for_role(self, kind: RoleKind) -> int:
        if kind is RoleKind.WHITELIST:
            return self.whitelist
        if kind is RoleKind.MOOLALIST:
            return self.moolalist
        return self.free_mint

    def with_role(self, kind: RoleKind, minimum: int) -> "ThresholdSet":
        if kind is RoleKind.WHITELIST:
            return replace(self, whitelist=minimum)
        if kind is RoleKind.MOOLALIST:
            return replace(self, moolalist=minimum)
        return replace(self, free_mint=minimum)

    def validate(self) -> None:
        for kind in RoleKind:
            value = self.for_role(kind)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ThresholdConfigError(
                    f"{kind.value} threshold must be an integer, got {value!r}"
                )
            if value < 0:
                raise ThresholdConfigError(
                    f"{kind.value} threshold must not be negative, got {value}"
                )


DEFAULT_WINNING_THRESHOLDS = ThresholdSet(whitelist=1000, moolalist=500, free_mint=200)
DEFAULT_LOSING_THRESHOLDS = ThresholdSet(whitelist=800, moolalist=400, free_mint=150)


@dataclass(frozen=True)
class TeamThresholds:
    """Threshold sets for whichever team is winning and whichever is losing."""

    winning: ThresholdSet = DEFAULT_WINNING_THRESHOLDS
    losing: ThresholdSet = DEFAULT_LOSING_THRESHOLDS

    def for_standing(self, standing: Standing) -> ThresholdSet:
        return self.winning if standing is Standing.WINNING else self.losing

    def with_standing(self, standing: Standing, thresholds: ThresholdSet) -> "TeamThresholds":
        if standing is Standing.WINNING:
            return replace(self, winning=thresholds)
        return replace(self, losing=thresholds)

    def validate(self) -> None:
        self.winning.validate()
        self.losing.validate()


@dataclass(frozen=True)
class ResolvedThresholds:
    """Threshold set to apply to each team for one evaluation."""

    winning_team: Team
    by_team: Dict[Team, ThresholdSet]

    def for_team(self, team: Team) -> ThresholdSet:
        return self.by_team[team]


@dataclass(frozen=True)
class TeamTotals:
    bullas: Decimal = Decimal(0)
    beras: Decimal = Decimal(0)

    def for_team(self, team: Team) -> Decimal:
        return self.bullas if team is Team.BULLAS else self.beras


@dataclass(frozen=True)
class RoleDiff:
    """
    Role changes for one member.

    `add` and `remove` together cover every badge kind, so applying a diff
    yields the desired state whatever the member currently holds.
    """

    discord_id: str
    add: FrozenSet[RoleKind] = field(default_factory=frozenset)
    remove: FrozenSet[RoleKind] = field(default_factory=frozenset)
