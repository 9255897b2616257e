from __future__ import annotations

from typing import Optional

import psycopg2

from domain.errors import RepositoryError
from domain.models import Standing, TeamThresholds, ThresholdSet
from domain.repositories import ThresholdSettingsRepository


class PostgresThresholdSettingsRepository(ThresholdSettingsRepository):
    """
    Postgres-backed threshold settings, one `role_thresholds` row per
    standing. Both rows are written in a single transaction.
    """

    def __init__(self, db_params: dict) -> None:
        self._db_params = db_params
        self._ensure_table()

    def _get_connection(self):
        return psycopg2.connect(**self._db_params)

    def _ensure_table(self) -> None:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS role_thresholds (
                        standing TEXT PRIMARY KEY,
                        whitelist INTEGER NOT NULL,
                        moolalist INTEGER NOT NULL,
                        free_mint INTEGER NOT NULL
                    )
                    """
                )
                conn.commit()

    def load(self) -> Optional[TeamThresholds]:
        try:
            with self._get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        "SELECT standing, whitelist, moolalist, free_mint FROM role_thresholds"
                    )
                    rows = {
                        row[0]: ThresholdSet(whitelist=row[1], moolalist=row[2], free_mint=row[3])
                        for row in cur.fetchall()
                    }
        except psycopg2.Error as exc:
            raise RepositoryError(f"could not load thresholds: {exc}") from exc

        winning = rows.get(Standing.WINNING.value)
        losing = rows.get(Standing.LOSING.value)
        if winning is None or losing is None:
            return None
        return TeamThresholds(winning=winning, losing=losing)

    def save(self, thresholds: TeamThresholds) -> None:
        try:
            with self._get_connection() as conn:
                with conn.cursor() as cur:
                    for standing in Standing:
                        values = thresholds.for_standing(standing)
                        cur.execute(
                            """
                            INSERT INTO role_thresholds (standing, whitelist, moolalist, free_mint)
                            VALUES (%s, %s, %s, %s)
                            ON CONFLICT (standing) DO UPDATE SET
                                whitelist = EXCLUDED.whitelist,
                                moolalist = EXCLUDED.moolalist,
                                free_mint = EXCLUDED.free_mint
                            """,
                            (standing.value, values.whitelist, values.moolalist, values.free_mint),
                        )
                    conn.commit()
        except psycopg2.Error as exc:
            raise RepositoryError(f"could not save thresholds: {exc}") from exc
