"""SQLite-backed storage for audit records plus file storage for raw Lighthouse reports.

The audits table is append-only: rows are inserted once and the only later
mutation is attaching the path of the raw report. Raw reports are kept out of
the table, one JSON file per audit under the results directory.

Uses SQLAlchemy 2.x style with DeclarativeBase.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import BigInteger, Column, Float, Index, Integer, String, create_engine, desc, func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from lighthouse_pulse.exceptions import AuditNotFoundError, AuditStorageError
from lighthouse_pulse.models import AuditRecord, NewAudit

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"

INSERT_COLUMNS: tuple[str, ...] = tuple(NewAudit.model_fields)


class Base(DeclarativeBase):
    """Declarative base for the audit tables."""


class AuditRow(Base):
    """One stored audit. Column names equal the AuditRecord field names."""

    __tablename__ = "audits"
    __table_args__ = (
        Index("idx_audits_url_timestamp", "url", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    url = Column(String, nullable=False)
    timestamp = Column(BigInteger, nullable=False)
    performance_score = Column(Integer, nullable=True)
    accessibility_score = Column(Integer, nullable=True)
    best_practices_score = Column(Integer, nullable=True)
    seo_score = Column(Integer, nullable=True)
    lcp = Column(Float, nullable=True)
    fcp = Column(Float, nullable=True)
    tbt = Column(Float, nullable=True)
    cls = Column(Float, nullable=True)
    speed_index = Column(Float, nullable=True)
    git_commit = Column(String, nullable=True)
    git_branch = Column(String, nullable=True)
    artifact_path = Column(String, nullable=True)


class AuditStore:
    """Owns the audit database engine and the raw result directory.

    Construct once per process, call open() before use and close() on shutdown
    (or use it as a context manager).
    """

    def __init__(self, database_path: str, results_path: str | None = None) -> None:
        self.database_path = database_path
        self.results_path = Path(results_path) if results_path else None
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None
        self._lock = threading.RLock()

    @property
    def in_memory(self) -> bool:
        return self.database_path == MEMORY_PATH

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def _create_engine(self) -> Engine:
        if self.in_memory:
            # One shared connection, otherwise every session sees its own empty database.
            return create_engine(
                "sqlite://",
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(
            f"sqlite:///{self.database_path}",
            connect_args={"check_same_thread": False},
        )

    def open(self) -> AuditStore:
        """Connect to the database and create the schema and result directory if missing."""
        if self._engine is not None:
            return self
        engine: Engine | None = None
        try:
            if not self.in_memory:
                Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)
            if self.results_path is not None:
                self.results_path.mkdir(parents=True, exist_ok=True)
            engine = self._create_engine()
            Base.metadata.create_all(bind=engine)
        except (SQLAlchemyError, OSError) as exc:
            if engine is not None:
                engine.dispose()
            raise AuditStorageError(
                f"Could not open audit store at {self.database_path}: {exc}",
                details={"database_path": self.database_path},
            ) from exc
        self._engine = engine
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        logger.info("Opened audit store %s", self.database_path)
        return self

    def close(self) -> None:
        with self._lock:
            if self._engine is None:
                return
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
        logger.info("Closed audit store %s", self.database_path)

    def __enter__(self) -> AuditStore:
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """Yield a session under the store lock, committing on success and rolling back on any error."""
        with self._lock:
            if self._session_factory is None:
                raise AuditStorageError("Audit store is not open")
            session = self._session_factory()
            try:
                yield session
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise AuditStorageError(f"Audit store operation failed: {exc}") from exc
            except BaseException:
                session.rollback()
                raise
            finally:
                session.close()

    @staticmethod
    def _to_record(row: AuditRow) -> AuditRecord:
        return AuditRecord.model_validate(row, from_attributes=True)

    @staticmethod
    def _new_row(audit: NewAudit) -> AuditRow:
        return AuditRow(**audit.model_dump(include=set(INSERT_COLUMNS)), artifact_path=None)

    def insert(self, audit: NewAudit) -> AuditRecord:
        """Persist a new audit and return it with its store-assigned id.

        Args:
            audit: The audit to store. artifact_path is always stored as NULL.

        Returns:
            The stored AuditRecord.
        """
        with self._session() as session:
            row = self._new_row(audit)
            session.add(row)
            session.flush()
            record = self._to_record(row)
        logger.info("Saved audit %s for %s (branch=%s)", record.id, audit.url, audit.git_branch)
        return record

    def insert_with_artifact(self, audit: NewAudit, payload: dict[str, Any]) -> AuditRecord:
        """Persist an audit together with its raw report, all or nothing.

        The row, the report file and the artifact reference are written in one
        transaction. If any step fails the row is rolled back and a report file
        already written is removed.

        Returns:
            The stored AuditRecord with artifact_path set.
        """
        written: Path | None = None
        try:
            with self._session() as session:
                row = self._new_row(audit)
                session.add(row)
                session.flush()
                reference = self.save_raw_result(row.id, payload)
                if self.results_path is not None:
                    written = Path(reference)
                row.artifact_path = reference
                session.flush()
                record = self._to_record(row)
        except BaseException:
            if written is not None:
                written.unlink(missing_ok=True)
            raise
        logger.info("Saved audit %s for %s (branch=%s)", record.id, audit.url, audit.git_branch)
        return record

    def get(self, audit_id: int) -> AuditRecord:
        """Load an audit by id.

        Raises:
            AuditNotFoundError: If no audit has that id.
        """
        with self._session() as session:
            row = session.get(AuditRow, audit_id)
            if row is None:
                raise AuditNotFoundError(audit_id)
            return self._to_record(row)

    def latest(self, url: str, branch: str | None = None) -> AuditRecord | None:
        """Return the newest audit for a URL, optionally restricted to one exact branch."""
        records = self.history(url, 1, branch=branch)
        return records[0] if records else None

    def history(self, url: str, limit: int, branch: str | None = None) -> list[AuditRecord]:
        """Return up to ``limit`` audits for a URL, newest first.

        Args:
            url: The audited URL.
            limit: Maximum number of records, at least 1.
            branch: When given, only audits whose git_branch equals it exactly.

        Returns:
            Records ordered by timestamp descending. Empty when nothing matches.
        """
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        query = select(AuditRow).where(AuditRow.url == url)
        if branch is not None:
            query = query.where(AuditRow.git_branch == branch)
        # Ties on timestamp resolve to the later insert.
        query = query.order_by(desc(AuditRow.timestamp), desc(AuditRow.id)).limit(limit)
        with self._session() as session:
            return [self._to_record(row) for row in session.scalars(query)]

    def count(self, url: str | None = None) -> int:
        query = select(func.count()).select_from(AuditRow)
        if url is not None:
            query = query.where(AuditRow.url == url)
        with self._session() as session:
            return int(session.scalar(query) or 0)

    def attach_artifact(self, audit_id: int, reference: str) -> None:
        """Record where the raw report of an audit lives. Calling again overwrites.

        Raises:
            AuditNotFoundError: If no audit has that id.
        """
        with self._session() as session:
            result = session.execute(
                update(AuditRow).where(AuditRow.id == audit_id).values(artifact_path=reference)
            )
            if result.rowcount == 0:
                raise AuditNotFoundError(audit_id)

    def save_raw_result(self, audit_id: int, payload: dict[str, Any]) -> str:
        """Write the raw Lighthouse report of an audit and return its reference.

        Files are named ``<id>-<epoch ms>.json``. Stores without a results
        directory keep nothing and return ``<memory:<id>>``.
        """
        if self.results_path is None:
            return f"<memory:{audit_id}>"
        file_path = self.results_path / f"{audit_id}-{int(time.time() * 1000)}.json"
        try:
            file_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            raise AuditStorageError(
                f"Could not write raw result for audit {audit_id}: {exc}",
                details={"path": str(file_path)},
            ) from exc
        logger.info("Saved raw result for audit %s to %s", audit_id, file_path)
        return str(file_path)
