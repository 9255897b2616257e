from __future__ import annotations

import csv
import logging
import os
from dataclasses import dataclass, field
from typing import AbstractSet, Callable, Collection, List, Sequence

from domain.models import RoleKind, Team, UserAccount
from domain.repositories import UserRepository

from .thresholds import winning_team

log = logging.getLogger(__name__)

WINNING_TOP_COUNT = 2000
LOSING_TOP_COUNT = 700

RoleLookup = Callable[[str], AbstractSet[RoleKind]]

_ROLE_COLUMNS = (RoleKind.WHITELIST, RoleKind.MOOLALIST, RoleKind.FREE_MINT)


@dataclass
class Snapshot:
    """Files written for one snapshot, in upload order."""

    winning_team: Team
    paths: List[str] = field(default_factory=list)

    def cleanup(self) -> None:
        for path in self.paths:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass


def _write_csv(
    path: str,
    users: Sequence[UserAccount],
    role_lookup: RoleLookup,
    include_discord_id: bool,
) -> None:
    header = ["address", "points"] + [kind.value for kind in _ROLE_COLUMNS]
    if include_discord_id:
        header.insert(0, "discord_id")

    with open(path, "w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh)
        writer.writerow(header)
        for user in users:
            held = role_lookup(user.discord_id)
            row = [user.address or "", str(user.points)]
            row += ["Y" if kind in held else "N" for kind in _ROLE_COLUMNS]
            if include_discord_id:
                row.insert(0, user.discord_id)
            writer.writerow(row)


def take_snapshot(
    user_repo: UserRepository,
    role_lookup: RoleLookup,
    out_dir: str,
    excluded: Collection[str] = (),
    tie_winner: Team = Team.BERAS,
) -> Snapshot:
    """
    Export the standings used for the airdrop:
    - top players of the winning team,
    - top players of the losing team,
    - every player of both teams, with Discord IDs.
    """

    totals = user_repo.get_team_totals(excluded)
    leader = winning_team(totals.bullas, totals.beras, tie_winner)
    trailer = leader.opponent

    winning_top = user_repo.get_top_users(limit=WINNING_TOP_COUNT, team=leader, excluded=excluded)
    losing_top = user_repo.get_top_users(limit=LOSING_TOP_COUNT, team=trailer, excluded=excluded)
    everyone = user_repo.get_top_users(team=leader, excluded=excluded)
    everyone += user_repo.get_top_users(team=trailer, excluded=excluded)
    everyone.sort(key=lambda user: user.points, reverse=True)

    os.makedirs(out_dir, exist_ok=True)
    snapshot = Snapshot(winning_team=leader)
    files = (
        (f"top_{WINNING_TOP_COUNT}_{leader.value}.csv", winning_top, False),
        (f"top_{LOSING_TOP_COUNT}_{trailer.value}.csv", losing_top, False),
        ("all_players.csv", everyone, True),
    )
    for name, users, include_discord_id in files:
        path = os.path.join(out_dir, name)
        _write_csv(path, users, role_lookup, include_discord_id)
        snapshot.paths.append(path)

    log.info(
        "Snapshot written: %d %s, %d %s, %d total",
        len(winning_top),
        leader.value,
        len(losing_top),
        trailer.value,
        len(everyone),
    )
    return snapshot
