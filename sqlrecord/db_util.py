"""
PostgreSQL connection utilities.

This module provides :class:`DbUtil` for opening and closing caller-owned
connections and running a unit of work in a transaction. Connection
parameters can be passed explicitly or read from environment variables
(e.g. ``DATABASE_HOST``, ``DATABASE_NAME``).
"""

import logging
import os
from contextlib import contextmanager
from typing import Dict, Iterator, Type

import psycopg2 as psycopg
from psycopg2.extras import register_uuid

logger = logging.getLogger("sqlrecord.db_util")

ConnectionType: Type[psycopg.extensions.connection] = psycopg.extensions.connection


class DbUtil:
    """
    PostgreSQL connection manager.

    Uses psycopg2 under the hood. Parameters not provided in ``params``
    fall back to environment variables: ``DATABASE_HOST``, ``DATABASE_NAME``,
    ``DATABASE_USER``, ``DATABASE_PASS``, ``DATABASE_PORT``.

    Can be used as a context manager: the connection is opened on enter and
    closed on exit. Executor operations accept a ``DbUtil`` wherever they
    accept a connection.
    """

    connection: Type[psycopg.extensions.connection] = None

    def __init__(self, params: Dict = None):
        """
        Build connection params from ``params`` and env (e.g. DATABASE_*).
        """
        params = params or {}
        self.connection_params = {
            "host": params.get("host") or os.getenv("DATABASE_HOST"),
            "database": params.get("database") or os.getenv("DATABASE_NAME"),
            "user": params.get("user") or os.getenv("DATABASE_USER"),
            "password": params.get("password") or os.getenv("DATABASE_PASS"),
            "port": params.get("port") or os.getenv("DATABASE_PORT"),
        }
        self.connection = None

    def connect(self) -> None:
        """
        Open a connection and register UUID adaptation on it. Raises on failure.
        """
        try:
            self.connection = psycopg.connect(**self.connection_params)
            register_uuid(conn_or_curs=self.connection)
        except Exception as error:
            logger.error("DB: Error creating connection", exc_info=True)
            raise RuntimeError("Failed to create DB Connection") from error

    def get_connection(self) -> ConnectionType:
        """Return the open connection, connecting first if needed."""
        if not self.connection:
            self.connect()
        return self.connection

    def disconnect(self, do_commit: bool = False) -> None:
        """
        Close the connection. If ``do_commit`` is True, commit before closing.
        """
        if not self.connection:
            return
        try:
            if do_commit:
                self.commit()
        finally:
            try:
                self.connection.close()
            except Exception:
                logger.warning("DB: Error closing connection", exc_info=True)
            self.connection = None

    def commit(self) -> None:
        """
        Commit the current transaction. Raises if there is no connection or commit fails.
        """
        if not self.connection:
            raise RuntimeError("No connection found to commit")
        try:
            self.connection.commit()
        except Exception:
            logger.error("DB: Error committing", exc_info=True)
            raise

    def rollback(self) -> None:
        """
        Roll back the current transaction. Raises if there is no connection.
        """
        if not self.connection:
            raise RuntimeError("No connection found to roll back")
        self.connection.rollback()

    @contextmanager
    def transaction(self) -> Iterator[ConnectionType]:
        """
        Run a block as one transaction on this connection.

        Commits when the block completes and rolls back, then re-raises, when
        it raises::

            with db.transaction() as conn:
                executor.execute(conn, "INSERT INTO villains(id, name) VALUES (:id, :name)",
                                 {"id": villain_id, "name": "Joker"})
                executor.execute(conn, "INSERT INTO battles(villain_id) VALUES (:id)",
                                 {"id": villain_id})
        """
        connection = self.get_connection()
        try:
            yield connection
        except BaseException:
            logger.error("DB: Rolling back transaction", exc_info=True)
            connection.rollback()
            raise
        else:
            self.commit()

    def __enter__(self) -> "DbUtil":
        self.get_connection()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()
