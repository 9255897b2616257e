from __future__ import annotations

import sqlite3
from typing import Optional

from domain.errors import RepositoryError
from domain.models import Standing, TeamThresholds, ThresholdSet
from domain.repositories import ThresholdSettingsRepository


class SqliteThresholdSettingsRepository(ThresholdSettingsRepository):
    """
    Stores the winning/losing threshold sets in a `role_thresholds` table,
    one row per standing.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._ensure_table()

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path)

    def _ensure_table(self) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
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
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute("SELECT standing, whitelist, moolalist, free_mint FROM role_thresholds")
            rows = {
                row[0]: ThresholdSet(whitelist=row[1], moolalist=row[2], free_mint=row[3])
                for row in cur.fetchall()
            }

        # Both standings are always written together, so a partial table is
        # treated the same as an empty one.
        winning = rows.get(Standing.WINNING.value)
        losing = rows.get(Standing.LOSING.value)
        if winning is None or losing is None:
            return None
        return TeamThresholds(winning=winning, losing=losing)

    def save(self, thresholds: TeamThresholds) -> None:
        try:
            with self._get_connection() as conn:
                cur = conn.cursor()
                for standing in Standing:
                    values = thresholds.for_standing(standing)
                    cur.execute(
                        """
                        INSERT INTO role_thresholds (standing, whitelist, moolalist, free_mint)
                        VALUES (?, ?, ?, ?)
                        ON CONFLICT (standing) DO UPDATE SET
                            whitelist = excluded.whitelist,
                            moolalist = excluded.moolalist,
                            free_mint = excluded.free_mint
                        """,
                        (standing.value, values.whitelist, values.moolalist, values.free_mint),
                    )
                conn.commit()
        except sqlite3.Error as exc:
            raise RepositoryError(f"could not save thresholds: {exc}") from exc
