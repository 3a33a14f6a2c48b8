import logging
from contextlib import contextmanager
from typing import Any, Iterator

import psycopg
from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from ledger_api.core.config import Settings
from ledger_api.core.errors import StoreError

logger = logging.getLogger(__name__)


def build_pool(settings: Settings) -> ConnectionPool:
    kwargs: dict[str, Any] = {"row_factory": dict_row}
    if settings.db_statement_timeout_ms:
        kwargs["options"] = f"-c statement_timeout={settings.db_statement_timeout_ms}"
    return ConnectionPool(
        settings.database_url,
        min_size=settings.db_pool_min,
        max_size=settings.db_pool_max,
        timeout=settings.db_pool_timeout,
        max_waiting=settings.db_pool_max_waiting,
        open=False,
        kwargs=kwargs,
    )


def rollback_quietly(conn) -> None:
    try:
        conn.rollback()
    except psycopg.Error:
        logger.exception("Rollback failed")


class LedgerStore:
    """Handle over the connection pool, passed to request handlers.

    ``write_unit`` is the only way mutations reach the database: everything
    executed on the yielded cursor commits together or not at all.
    """

    def __init__(self, pool) -> None:
        self._pool = pool

    @classmethod
    def from_settings(cls, settings: Settings) -> "LedgerStore":
        return cls(build_pool(settings))

    def open(self) -> None:
        self._pool.open()

    def close(self) -> None:
        self._pool.close()

    @contextmanager
    def _connection(self):
        try:
            with self._pool.connection() as conn:
                yield conn
        except PoolTimeout as exc:
            logger.error("Timed out waiting for a pooled connection")
            raise StoreError("Database timeout") from exc
        except errors.QueryCanceled as exc:
            logger.error("Statement cancelled: %s", exc)
            raise StoreError("Database timeout") from exc
        except psycopg.Error as exc:
            logger.exception("Database error")
            raise StoreError("Internal server error") from exc

    @contextmanager
    def write_unit(self) -> Iterator[Any]:
        with self._connection() as conn:
            try:
                with conn.cursor() as cur:
                    yield cur
                conn.commit()
            except BaseException:
                logger.debug("Rolling back write unit")
                rollback_quietly(conn)
                raise

    @contextmanager
    def read_unit(self) -> Iterator[Any]:
        with self._connection() as conn:
            try:
                with conn.cursor() as cur:
                    yield cur
            finally:
                rollback_quietly(conn)
