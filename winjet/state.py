from __future__ import annotations

import json
import logging
import os
import sqlite3
from pathlib import Path
from threading import Lock
from typing import Any, Iterable

from pydantic import ValidationError

from . import db
from .docker_ops import ContainerRecord
from .errors import ConnectivityError, ParseError, PersistenceError
from .models import ServiceConfig

_LOGGER = logging.getLogger(__name__)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def parse_env_entry(entry: str) -> tuple[str, Any]:
    """Split ``KEY=VALUE`` on the first ``=`` and decode VALUE as JSON."""
    key, sep, raw = entry.partition("=")
    if not sep:
        raise ParseError(entry, "missing '='")
    if not key:
        raise ParseError(entry, "empty key")
    try:
        return key, json.loads(raw, parse_constant=_reject_constant)
    except ValueError as e:
        raise ParseError(entry, f"value is not JSON: {e}") from e


def parse_environment(entries: Iterable[str]) -> dict[str, Any]:
    # Malformed entries are dropped without logging; a container can carry dozens.
    out: dict[str, Any] = {}
    for entry in entries:
        try:
            key, value = parse_env_entry(entry)
        except ParseError:
            continue
        out[key] = value
    return out


def derive_from(record: ContainerRecord) -> ServiceConfig:
    """Build a new service config describing an existing container.

    The stop grace period cannot be read back from Docker and keeps its default.
    """
    return ServiceConfig(
        image=record.image,
        container_name=record.name,
        environment=parse_environment(record.env),
        devices=list(record.devices),
        cap_add=list(record.cap_add),
        ports=list(record.ports),
        volumes=list(record.volumes),
        restart=record.restart,
    )


class ServiceStateStore:
    """Persistence for the single service record.

    Threading
    ---------
    The store is used from worker threads. One sqlite connection is shared and
    every statement runs under ``self._lock``.
    """

    NAME = "State"

    def __init__(self, conn: sqlite3.Connection, path: Path) -> None:
        self._conn = conn
        self._lock = Lock()
        self.path = path

    @classmethod
    def open(cls, data_dir: str | os.PathLike[str]) -> ServiceStateStore:
        try:
            path = db.resolve_db_path(data_dir)
            conn = db.connect(path)
        except (OSError, sqlite3.Error) as e:
            raise ConnectivityError(cls.NAME, f"cannot open state store in {data_dir}: {e}") from e
        try:
            db.init_db(conn)
        except sqlite3.Error as e:
            conn.close()
            raise ConnectivityError(cls.NAME, f"cannot initialise state store at {path}: {e}") from e
        _LOGGER.debug("State store opened at %s", path)
        return cls(conn, path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def load(self) -> ServiceConfig | None:
        try:
            with self._lock:
                rows = db.fetch_services(self._conn, limit=2)
        except sqlite3.Error as e:
            raise PersistenceError(f"Reading the service record failed: {e}") from e

        if not rows:
            return None
        if len(rows) > 1:
            raise PersistenceError("State store holds more than one service record.")
        try:
            return ServiceConfig.model_validate_json(rows[0]["content"])
        except ValidationError as e:
            raise PersistenceError(f"Stored service record {rows[0]['id']} is invalid: {e}") from e

    def commit(self, config: ServiceConfig, exists_in_store: bool) -> None:
        """Write ``config``: upsert by id when it already exists, plain insert otherwise.

        ``exists_in_store`` must come from the last successful load or commit;
        no existence check is made here. A stale False on an id that is
        already stored fails on the primary key.
        """
        content = config.model_dump_json()
        try:
            with self._lock, self._conn:
                if exists_in_store:
                    db.upsert_service(self._conn, config.id, content)
                    db.log_event(self._conn, "INFO", f"Updated service record {config.id} ({config.container_name})")
                else:
                    db.insert_service(self._conn, config.id, content)
                    db.log_event(self._conn, "INFO", f"Created service record {config.id} ({config.container_name})")
        except sqlite3.Error as e:
            raise PersistenceError(f"Writing service record {config.id} failed: {e}") from e

    def count(self) -> int:
        with self._lock:
            return db.count_services(self._conn)

    def recent_events(self, limit: int = 100) -> list[dict[str, Any]]:
        try:
            with self._lock:
                return db.latest_events(self._conn, limit)
        except sqlite3.Error as e:
            raise PersistenceError(f"Reading events failed: {e}") from e
