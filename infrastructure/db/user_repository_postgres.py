from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal
from typing import Collection, Iterator, List, Optional

import psycopg2

from domain.errors import RepositoryError
from domain.models import Team, TeamTotals, UserAccount
from domain.repositories import UserRepository

_COLUMNS = "discord_id, address, points, team"

# Rows without a Discord ID belong to wallets whose link flow never finished.
_ELIGIBLE = "discord_id IS NOT NULL AND NOT (discord_id = ANY(%s::text[]))"


class PostgresUserRepository(UserRepository):
    """
    Postgres-backed implementation of `UserRepository`.

    Works against the `users` table of the hosted backend, which the web
    wallet-link flow also writes to. Exclusions are applied in SQL so
    excluded accounts never leave the database.
    """

    def __init__(self, db_params: dict) -> None:
        self._db_params = db_params
        self._ensure_table()

    def _get_connection(self):
        return psycopg2.connect(**self._db_params)

    @contextmanager
    def _cursor(self) -> Iterator:
        try:
            with self._get_connection() as conn:
                with conn.cursor() as cur:
                    yield cur
                conn.commit()
        except psycopg2.Error as exc:
            raise RepositoryError(f"users query failed: {exc}") from exc

    def _ensure_table(self) -> None:
        """
        Ensure that the `users` table exists.

        Schema (minimal):
          - discord_id TEXT UNIQUE
          - address TEXT
          - points NUMERIC
          - team TEXT  -- 'bullas' | 'beras' | NULL
        """

        with self._cursor() as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id BIGSERIAL PRIMARY KEY,
                    discord_id TEXT UNIQUE,
                    address TEXT,
                    points NUMERIC NOT NULL DEFAULT 0,
                    team TEXT
                )
                """
            )

    @staticmethod
    def _to_domain(row) -> UserAccount:
        team = row[3]
        return UserAccount(
            discord_id=str(row[0]) if row[0] is not None else None,
            address=row[1],
            points=Decimal(row[2]) if row[2] is not None else Decimal(0),
            team=Team(team) if team in {t.value for t in Team} else None,
        )

    def get_user(self, discord_id: str) -> Optional[UserAccount]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM users WHERE discord_id = %s",
                (discord_id,),
            )
            row = cur.fetchone()
            if not row:
                return None
            return self._to_domain(row)

    def get_all_eligible_users(self, excluded: Collection[str] = ()) -> List[UserAccount]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM users WHERE {_ELIGIBLE} ORDER BY id",
                (list(excluded),),
            )
            return [self._to_domain(row) for row in cur.fetchall()]

    def update_points(self, discord_id: str, points: Decimal) -> None:
        with self._cursor() as cur:
            cur.execute(
                "UPDATE users SET points = %s WHERE discord_id = %s",
                (points, discord_id),
            )

    def transfer(self, sender_id: str, receiver_id: str, amount: Decimal) -> None:
        with self._cursor() as cur:
            for discord_id, delta in ((sender_id, -amount), (receiver_id, amount)):
                cur.execute(
                    "UPDATE users SET points = points + %s WHERE discord_id = %s",
                    (delta, discord_id),
                )
                if cur.rowcount != 1:
                    raise RepositoryError(f"transfer failed: no user {discord_id}")

    def set_team(self, discord_id: str, team: Team) -> None:
        with self._cursor() as cur:
            cur.execute(
                "UPDATE users SET team = %s WHERE discord_id = %s",
                (team.value, discord_id),
            )

    def get_team_totals(self, excluded: Collection[str] = ()) -> TeamTotals:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT team, COALESCE(SUM(points), 0)
                FROM users
                WHERE {_ELIGIBLE} AND team IS NOT NULL
                GROUP BY team
                """,
                (list(excluded),),
            )
            sums = {team: Decimal(total) for team, total in cur.fetchall()}
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
        sql = f"SELECT {_COLUMNS} FROM users WHERE {_ELIGIBLE}"
        params: list = [list(excluded)]
        if team is not None:
            sql += " AND team = %s"
            params.append(team.value)
        sql += " ORDER BY points DESC"
        if limit is not None:
            sql += " LIMIT %s"
            params.append(limit)

        with self._cursor() as cur:
            cur.execute(sql, params)
            return [self._to_domain(row) for row in cur.fetchall()]
