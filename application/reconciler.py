from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Awaitable, Callable, Collection, Dict, List, Optional, Sequence, Tuple

from domain.errors import RoleSyncInProgress, RoleUpdateError
from domain.models import (
    ALL_BADGES,
    ResolvedThresholds,
    RoleDiff,
    RoleKind,
    Team,
    TeamTotals,
    ThresholdSet,
    UserAccount,
)
from domain.repositories import RoleActuator, UserRepository

from .thresholds import ThresholdStore, resolve_thresholds

log = logging.getLogger(__name__)

DEFAULT_MEMBER_TIMEOUT = 5.0
DEFAULT_RETRY_BACKOFFS: Tuple[float, ...] = (0.6, 1.2, 2.4)


def desired_roles(points: Decimal, thresholds: ThresholdSet) -> Dict[RoleKind, bool]:
    """Each badge is granted independently when points reach its threshold."""

    return {kind: points >= thresholds.for_role(kind) for kind in RoleKind}


def is_eligible(user: UserAccount, excluded: Collection[str]) -> bool:
    return bool(user.discord_id) and user.team is not None and user.discord_id not in excluded


def reconcile(
    members: Sequence[UserAccount],
    thresholds: ResolvedThresholds,
    excluded: Collection[str] = (),
) -> List[RoleDiff]:
    """
    Compute the badge changes for every eligible member, in input order.

    Members without an identity or a team, and excluded members, produce no
    diff at all.
    """

    diffs: List[RoleDiff] = []
    for user in members:
        if not is_eligible(user, excluded):
            continue

        wanted = desired_roles(user.points, thresholds.for_team(user.team))
        add = frozenset(kind for kind, granted in wanted.items() if granted)
        diffs.append(RoleDiff(discord_id=user.discord_id, add=add, remove=ALL_BADGES - add))
    return diffs


def team_totals(members: Sequence[UserAccount], excluded: Collection[str] = ()) -> TeamTotals:
    bullas = Decimal(0)
    beras = Decimal(0)
    for user in members:
        if not is_eligible(user, excluded):
            continue
        if user.team is Team.BULLAS:
            bullas += user.points
        else:
            beras += user.points
    return TeamTotals(bullas=bullas, beras=beras)


@dataclass
class RoleSyncReport:
    """Outcome of one role sync run."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False
    winning_team: Optional[Team] = None
    totals: TeamTotals = field(default_factory=TeamTotals)
    failed_ids: List[str] = field(default_factory=list)

    def summary(self) -> str:
        text = (
            f"Role sync {'cancelled' if self.cancelled else 'completed'}: "
            f"{self.succeeded} updated, {self.failed} failed, {self.skipped} skipped "
            f"out of {self.total} users."
        )
        if self.winning_team is not None:
            text += f" Winning team: {self.winning_team.value}."
        return text


class RoleSyncService:
    """
    Single entry point for scheduled and manual badge role syncs.

    Only one run can be active at a time; members are processed one after
    another in the order the repository returns them.
    """

    def __init__(
        self,
        user_repo: UserRepository,
        threshold_store: ThresholdStore,
        excluded: Collection[str] = (),
        *,
        tie_winner: Team = Team.BERAS,
        member_timeout: float = DEFAULT_MEMBER_TIMEOUT,
        retry_backoffs: Sequence[float] = DEFAULT_RETRY_BACKOFFS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._user_repo = user_repo
        self._threshold_store = threshold_store
        self._excluded = frozenset(excluded)
        self._tie_winner = tie_winner
        self._member_timeout = member_timeout
        self._retry_backoffs = tuple(retry_backoffs)
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._stop_requested = False

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def request_stop(self) -> None:
        """Ask the active run to stop before the next member."""

        self._stop_requested = True

    async def run(self, actuator: RoleActuator) -> RoleSyncReport:
        if self._lock.locked():
            raise RoleSyncInProgress("A role sync is already running.")

        async with self._lock:
            self._stop_requested = False
            log.info("Starting role sync")

            # Anything failing up to the reconcile step aborts the run before
            # a single role is touched.
            await actuator.ensure_ready()
            thresholds = self._threshold_store.current()
            thresholds.validate()
            users = await asyncio.to_thread(self._user_repo.get_all_eligible_users, self._excluded)

            totals = team_totals(users, self._excluded)
            resolved = resolve_thresholds(
                totals.bullas,
                totals.beras,
                thresholds.winning,
                thresholds.losing,
                self._tie_winner,
            )
            diffs = reconcile(users, resolved, self._excluded)

            report = RoleSyncReport(
                total=len(users),
                skipped=len(users) - len(diffs),
                winning_team=resolved.winning_team,
                totals=totals,
            )
            log.info(
                "Syncing roles for %d users (bullas=%s, beras=%s, winning=%s)",
                len(diffs),
                totals.bullas,
                totals.beras,
                resolved.winning_team.value,
            )

            for diff in diffs:
                if self._stop_requested:
                    report.cancelled = True
                    log.warning("Role sync stopped before %s", diff.discord_id)
                    break

                try:
                    await asyncio.wait_for(self._apply(actuator, diff), self._member_timeout)
                except asyncio.TimeoutError:
                    log.warning("Timed out updating roles for user %s", diff.discord_id)
                    report.failed += 1
                    report.failed_ids.append(diff.discord_id)
                except RoleUpdateError as exc:
                    log.warning("Error updating roles for user %s: %s", diff.discord_id, exc.reason)
                    report.failed += 1
                    report.failed_ids.append(diff.discord_id)
                except Exception:
                    # CancelledError is a BaseException and still ends the run.
                    log.exception("Error updating roles for user %s", diff.discord_id)
                    report.failed += 1
                    report.failed_ids.append(diff.discord_id)
                else:
                    report.succeeded += 1

            log.info(report.summary())
            return report

    async def _apply(self, actuator: RoleActuator, diff: RoleDiff) -> None:
        member = await actuator.resolve_member(diff.discord_id)
        if member is None:
            raise RoleUpdateError("member not found in guild")

        for attempt in range(len(self._retry_backoffs) + 1):
            try:
                await actuator.set_roles(member, diff.add, diff.remove)
                return
            except RoleUpdateError as exc:
                if not exc.retryable or attempt >= len(self._retry_backoffs):
                    raise
                delay = self._retry_backoffs[attempt]
                log.info("Retrying roles for user %s in %.1fs: %s", diff.discord_id, delay, exc.reason)
                await self._sleep(delay)
