from __future__ import annotations

import psycopg2

from domain.errors import RepositoryError
from domain.models import LinkToken
from domain.repositories import LinkTokenRepository


class PostgresLinkTokenRepository(LinkTokenRepository):
    """
    Postgres-backed implementation of `LinkTokenRepository`.

    The bot only inserts unused tokens; the web flow marks them used when
    the wallet link completes.
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
                    CREATE TABLE IF NOT EXISTS tokens (
                        token TEXT PRIMARY KEY,
                        discord_id TEXT NOT NULL,
                        used BOOLEAN NOT NULL DEFAULT FALSE
                    )
                    """
                )
                conn.commit()

    def insert_token(self, token: LinkToken) -> None:
        try:
            with self._get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        "INSERT INTO tokens (token, discord_id, used) VALUES (%s, %s, %s)",
                        (token.token, token.discord_id, token.used),
                    )
                    conn.commit()
        except psycopg2.Error as exc:
            raise RepositoryError(f"could not store link token: {exc}") from exc
