"""Registry store — persists hosts and their services to SQLite."""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator

from tailnet.db import connect, init_db
from tailnet.registry.models import Host, RegistrySnapshot, Service

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """The underlying storage engine failed; fatal to the current request."""


class RegistryStore:
    """CRUD wrapper around the ``hosts`` / ``services`` tables.

    Every public method runs under one lock and, for mutations, inside a
    single transaction, so a host delete and its service cascade are never
    observed half-applied.

    Args:
        conn: An open :class:`sqlite3.Connection` with the schema applied.
              The store takes ownership of it.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = threading.RLock()

    @classmethod
    def open(cls, path: str | Path) -> "RegistryStore":
        """Connect to *path*, create the schema if needed and return a store."""
        try:
            conn = connect(path)
            init_db(conn)
        except (sqlite3.Error, OSError) as exc:
            raise StoreError(f"Cannot open registry database {path}: {exc}") from exc
        logger.debug("registry store opened at %s", path)
        return cls(conn)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------ #
    # Hosts                                                                #
    # ------------------------------------------------------------------ #

    def upsert_host(self, name: str, address: str) -> Host:
        """Insert the host for *address*, or rename it if it already exists."""
        with self._transaction() as conn:
            self._upsert_host(conn, name, address)
            row = conn.execute("SELECT * FROM hosts WHERE address = ?", (address,)).fetchone()
        logger.debug("upsert_host address=%s name=%s", address, name)
        return Host.from_row(row)

    def get_host(self, address: str) -> Host | None:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM hosts WHERE address = ?", (address,)).fetchone()
        return Host.from_row(row) if row else None

    def delete_host(self, address: str) -> bool:
        """Delete the host and every service registered on its address.

        Returns:
            ``True`` if the host existed.
        """
        with self._transaction() as conn:
            # Explicit delete; the FK cascade alone depends on the pragma
            removed = conn.execute("DELETE FROM services WHERE address = ?", (address,)).rowcount
            deleted = conn.execute("DELETE FROM hosts WHERE address = ?", (address,)).rowcount
        logger.debug("delete_host address=%s found=%s services=%d", address, bool(deleted), removed)
        return deleted > 0

    def list_hosts(self) -> list[Host]:
        with self._read() as conn:
            return self._list_hosts(conn)

    # ------------------------------------------------------------------ #
    # Services                                                             #
    # ------------------------------------------------------------------ #

    def upsert_service(
        self,
        address: str,
        port: int,
        service_name: str,
        owning_host_name: str,
    ) -> Service:
        """Insert or replace the service registered on ``(address, port)``.

        If no host exists for *address* one is created first, named
        *owning_host_name*. An existing host keeps its current name.
        """
        with self._transaction() as conn:
            exists = conn.execute("SELECT 1 FROM hosts WHERE address = ?", (address,)).fetchone()
            if not exists:
                self._upsert_host(conn, owning_host_name, address)
                logger.info("auto-provisioned host %s (%s)", address, owning_host_name)
            self._upsert_service(conn, address, port, service_name, owning_host_name)
            row = conn.execute(
                "SELECT * FROM services WHERE address = ? AND port = ?", (address, port)
            ).fetchone()
        logger.debug("upsert_service %s:%d name=%s", address, port, service_name)
        return Service.from_row(row)

    def bulk_upsert(self, entries: Iterable[tuple[str, str, dict[int, str]]]) -> tuple[int, int]:
        """Upsert hosts together with their services in a single transaction.

        Args:
            entries: ``(address, host_name, {port: service_name})`` triples.
                     Each service takes its host's name as ``host_name``.

        Returns:
            ``(hosts, services)`` written. On failure nothing is written.
        """
        hosts = services = 0
        with self._transaction() as conn:
            for address, name, ports in entries:
                self._upsert_host(conn, name, address)
                hosts += 1
                for port, service_name in ports.items():
                    self._upsert_service(conn, address, port, service_name, name)
                    services += 1
        logger.debug("bulk_upsert hosts=%d services=%d", hosts, services)
        return hosts, services

    def get_service(self, address: str, port: int) -> Service | None:
        with self._read() as conn:
            row = conn.execute(
                "SELECT * FROM services WHERE address = ? AND port = ?", (address, port)
            ).fetchone()
        return Service.from_row(row) if row else None

    def delete_service(self, address: str, port: int) -> bool:
        """Returns ``True`` if a row was removed."""
        with self._transaction() as conn:
            deleted = conn.execute(
                "DELETE FROM services WHERE address = ? AND port = ?", (address, port)
            ).rowcount
        logger.debug("delete_service %s:%d found=%s", address, port, bool(deleted))
        return deleted > 0

    def list_services(self) -> list[Service]:
        with self._read() as conn:
            return self._list_services(conn)

    # ------------------------------------------------------------------ #
    # Read views                                                           #
    # ------------------------------------------------------------------ #

    def snapshot(self) -> RegistrySnapshot:
        """Group every host with its services, read in one consistent pass."""
        with self._read() as conn:
            hosts = self._list_hosts(conn)
            services = self._list_services(conn)
        return RegistrySnapshot.build(hosts, services)

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _upsert_host(conn: sqlite3.Connection, name: str, address: str) -> None:
        conn.execute(
            """
            INSERT INTO hosts (name, address, updated_at)
            VALUES (?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(address) DO UPDATE SET
                name       = excluded.name,
                updated_at = CURRENT_TIMESTAMP
            """,
            (name, address),
        )

    @staticmethod
    def _upsert_service(
        conn: sqlite3.Connection,
        address: str,
        port: int,
        service_name: str,
        owning_host_name: str,
    ) -> None:
        conn.execute(
            """
            INSERT INTO services (address, port, name, host_name, updated_at)
            VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(address, port) DO UPDATE SET
                name       = excluded.name,
                host_name  = excluded.host_name,
                updated_at = CURRENT_TIMESTAMP
            """,
            (address, port, service_name, owning_host_name),
        )

    @staticmethod
    def _list_hosts(conn: sqlite3.Connection) -> list[Host]:
        cur = conn.execute("SELECT * FROM hosts ORDER BY name, address")
        return [Host.from_row(row) for row in cur.fetchall()]

    @staticmethod
    def _list_services(conn: sqlite3.Connection) -> list[Service]:
        cur = conn.execute("SELECT * FROM services ORDER BY host_name, address, port")
        return [Service.from_row(row) for row in cur.fetchall()]

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as exc:
                logger.exception("registry read failed")
                raise StoreError(str(exc)) from exc

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                # Commits on success, rolls back on any exception
                with self._conn:
                    yield self._conn
            except sqlite3.Error as exc:
                logger.exception("registry write failed")
                raise StoreError(str(exc)) from exc
