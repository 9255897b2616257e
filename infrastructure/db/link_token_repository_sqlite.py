from __future__ import annotations

import sqlite3

from domain.errors import RepositoryError
from domain.models import LinkToken
from domain.repositories import LinkTokenRepository


class SqliteLinkTokenRepository(LinkTokenRepository):
    """
    SQLite-backed implementation of `LinkTokenRepository`.

    Manages the `tokens` table read by the wallet-link web flow.
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
                CREATE TABLE IF NOT EXISTS tokens (
                    token TEXT PRIMARY KEY,
                    discord_id TEXT NOT NULL,
                    used INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            conn.commit()

    def insert_token(self, token: LinkToken) -> None:
        try:
            with self._get_connection() as conn:
                cur = conn.cursor()
                cur.execute(
                    "INSERT INTO tokens (token, discord_id, used) VALUES (?, ?, ?)",
                    (token.token, token.discord_id, int(token.used)),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise RepositoryError(f"could not store link token: {exc}") from exc
