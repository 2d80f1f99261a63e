from typing import Optional

import psycopg
from psycopg import sql

TABLE = "registration_session_blobs"


class PostgresBlobStorage:
    def __init__(self, conn: psycopg.Connection, table: str = TABLE):
        self.conn = conn
        self.table = table

    def _statement(self, template: str) -> sql.Composed:
        return sql.SQL(template).format(sql.Identifier(self.table))

    def setup(self) -> None:
        with self.conn.cursor() as cur:
            cur.execute(
                self._statement(
                    """
                    CREATE TABLE IF NOT EXISTS {} (
                        key TEXT PRIMARY KEY,
                        blob TEXT NOT NULL,
                        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                    )
                    """
                )
            )

    def save(self, key: str, blob: str) -> None:
        with self.conn.cursor() as cur:
            cur.execute(
                self._statement(
                    """
                    INSERT INTO {} (key, blob, updated_at)
                    VALUES (%s, %s, now())
                    ON CONFLICT (key) DO UPDATE
                    SET blob = EXCLUDED.blob, updated_at = EXCLUDED.updated_at
                    """
                ),
                (key, blob),
            )

    def load(self, key: str) -> Optional[str]:
        with self.conn.cursor() as cur:
            cur.execute(self._statement("SELECT blob FROM {} WHERE key = %s"), (key,))
            row = cur.fetchone()
        return row[0] if row else None

    def remove(self, key: str) -> None:
        with self.conn.cursor() as cur:
            cur.execute(self._statement("DELETE FROM {} WHERE key = %s"), (key,))
