from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from decimal import Decimal
from typing import Collection, Iterator, List, Optional, Sequence, Tuple

from domain.errors import RepositoryError
from domain.models import Team, TeamTotals, UserAccount
from domain.repositories import UserRepository

_COLUMNS = "discord_id, address, points, team"


def _exclusion_clause(excluded: Collection[str]) -> Tuple[str, List[str]]:
    ids = [str(discord_id) for discord_id in excluded]
    if not ids:
        return "", []
    placeholders = ", ".join("?" for _ in ids)
    return f" AND discord_id NOT IN ({placeholders})", ids


class SqliteUserRepository(UserRepository):
    """
    SQLite-backed implementation of `UserRepository`.

    Mirrors the hosted `users` table closely enough for local runs and
    tests. It is self-initialising: the table is created if needed.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._ensure_table()

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path)

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        try:
            with self._get_connection() as conn:
                yield conn.cursor()
                conn.commit()
        except sqlite3.Error as exc:
            raise RepositoryError(f"users query failed: {exc}") from exc

    def _ensure_table(self) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    discord_id TEXT UNIQUE,
                    address TEXT,
                    points NUMERIC NOT NULL DEFAULT 0,
                    team TEXT
                )
                """
            )

    @staticmethod
    def _to_domain(row: Sequence) -> UserAccount:
        team = row[3]
        return UserAccount(
            discord_id=str(row[0]) if row[0] is not None else None,
            address=row[1],
            points=Decimal(str(row[2] if row[2] is not None else 0)),
            team=Team(team) if team in {t.value for t in Team} else None,
        )

    def add_user(self, user: UserAccount) -> None:
        """Insert a user row; the hosted backend does this from the web link flow."""

        with self._cursor() as cur:
            cur.execute(
                f"INSERT OR IGNORE INTO users ({_COLUMNS}) VALUES (?, ?, ?, ?)",
                (
                    user.discord_id,
                    user.address,
                    str(user.points),
                    user.team.value if user.team else None,
                ),
            )

    def get_user(self, discord_id: str) -> Optional[UserAccount]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM users WHERE discord_id = ?", (discord_id,))
            row = cur.fetchone()
            if not row:
                return None
            return self._to_domain(row)

    def get_all_eligible_users(self, excluded: Collection[str] = ()) -> List[UserAccount]:
        clause, params = _exclusion_clause(excluded)
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM users WHERE discord_id IS NOT NULL{clause} ORDER BY rowid",
                params,
            )
            return [self._to_domain(row) for row in cur.fetchall()]

    def update_points(self, discord_id: str, points: Decimal) -> None:
        with self._cursor() as cur:
            cur.execute(
                "UPDATE users SET points = ? WHERE discord_id = ?",
                (str(points), discord_id),
            )

    def transfer(self, sender_id: str, receiver_id: str, amount: Decimal) -> None:
        with self._cursor() as cur:
            for discord_id, delta in ((sender_id, -amount), (receiver_id, amount)):
                cur.execute(
                    "UPDATE users SET points = points + ? WHERE discord_id = ?",
                    (str(delta), discord_id),
                )
                if cur.rowcount != 1:
                    raise RepositoryError(f"transfer failed: no user {discord_id}")

    def set_team(self, discord_id: str, team: Team) -> None:
        with self._cursor() as cur:
            cur.execute(
                "UPDATE users SET team = ? WHERE discord_id = ?",
                (team.value, discord_id),
            )

    def get_team_totals(self, excluded: Collection[str] = ()) -> TeamTotals:
        clause, params = _exclusion_clause(excluded)
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT team, COALESCE(SUM(points), 0)
                FROM users
                WHERE discord_id IS NOT NULL AND team IS NOT NULL{clause}
                GROUP BY team
                """,
                params,
            )
            sums = {team: Decimal(str(total)) for team, total in cur.fetchall()}
        return TeamTotals(
            bullas=sums.get(Team.BULLAS.value, Decimal(0)),
            beras=sums.get(Team.BERAS.value, Decimal(0)),
        )

    def get_top_users(
        self,
        limit: Optional[int] = None,
        team: Optional[Team] = None,
        excluded: Collection[str] = (),
    ) -> List[UserAccount]:
        clause, params = _exclusion_clause(excluded)
        sql = f"SELECT {_COLUMNS} FROM users WHERE discord_id IS NOT NULL{clause}"
        if team is not None:
            sql += " AND team = ?"
            params.append(team.value)
        sql += " ORDER BY points DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        with self._cursor() as cur:
            cur.execute(sql, params)
            return [self._to_domain(row) for row in cur.fetchall()]
