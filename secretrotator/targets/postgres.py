"""PostgreSQL target: ALTER ROLE through an admin connection."""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional

import psycopg2
from psycopg2 import sql

from ..utils.errors import TargetError, create_error_suggestions
from .base import Target, TargetKind

logger = logging.getLogger(__name__)

DEFAULT_PORT = 5432
DEFAULT_SSL_MODE = "prefer"


def _describe(error: psycopg2.Error) -> str:
    """Server message of a driver error."""
    return (getattr(error, "pgerror", None) or str(error)).strip()


class PostgresTarget(Target):
    """Updates role passwords in a PostgreSQL server."""

    kind = TargetKind.POSTGRES

    def __init__(
        self,
        host: str,
        database: str,
        admin_username: str,
        admin_password: str,
        port: int = DEFAULT_PORT,
        ssl_mode: str = DEFAULT_SSL_MODE,
        connect_timeout: Optional[float] = None,
        connect: Optional[Callable[..., Any]] = None,
    ):
        """
        Initialize PostgreSQL target.

        Args:
            host: Server host name
            database: Database used for the admin and verification connections
            admin_username: Role allowed to ALTER other roles
            admin_password: Password of the admin role
            port: Server port
            ssl_mode: libpq ``sslmode``
            connect_timeout: Connection timeout in seconds
            connect: Connection factory (``psycopg2.connect`` unless given, mostly for tests)
        """
        self.host = host
        self.port = port
        self.database = database
        self.admin_username = admin_username
        self._admin_password = admin_password
        self.ssl_mode = ssl_mode
        self.connect_timeout = connect_timeout
        self._connect = connect or psycopg2.connect

    def connection_params(self, username: str, password: str, database: Optional[str] = None) -> Dict[str, Any]:
        params = {
            "host": self.host,
            "port": self.port,
            "dbname": database or self.database,
            "user": username,
            "password": password,
            "sslmode": self.ssl_mode,
        }
        if self.connect_timeout:
            params["connect_timeout"] = max(1, int(self.connect_timeout))
        return params

    @contextmanager
    def _connection(self, username: str, password: str, database: Optional[str] = None) -> Iterator[Any]:
        conn = self._connect(**self.connection_params(username, password, database))
        try:
            yield conn
        finally:
            conn.close()

    def update_password(self, username: str, new_password: str) -> None:
        logger.info("Updating password for PostgreSQL role %s on %s:%s", username, self.host, self.port)
        query = sql.SQL("ALTER ROLE {} WITH PASSWORD %s").format(sql.Identifier(username))

        try:
            with self._connection(self.admin_username, self._admin_password) as conn:
                with conn.cursor() as cursor:
                    cursor.execute(query, (new_password,))
                conn.commit()
        except psycopg2.Error as e:
            raise TargetError(
                f"Failed to update PostgreSQL password for role '{username}'",
                target_type=self.target_type,
                username=username,
                details=_describe(e),
                suggestions=create_error_suggestions("target_failed"),
            ) from e

        logger.info("Successfully updated password for PostgreSQL role %s", username)

    def verify_connection(self, username: str, password: str, database: Optional[str] = None) -> None:
        logger.info("Verifying new credentials for PostgreSQL role %s", username)
        try:
            with self._connection(username, password, database) as conn:
                with conn.cursor() as cursor:
                    cursor.execute("SELECT 1")
                    cursor.fetchone()
        except psycopg2.Error as e:
            raise TargetError(
                f"New password for PostgreSQL role '{username}' was not accepted",
                target_type=self.target_type,
                username=username,
                details=_describe(e),
                suggestions=create_error_suggestions("target_failed"),
            ) from e

        logger.info("Verified new credentials for PostgreSQL role %s", username)

    def __repr__(self) -> str:
        return f"<PostgresTarget {self.admin_username}@{self.host}:{self.port}/{self.database}>"
