"""
Partition Store.

============================================================
PURPOSE
============================================================
The storage boundary of the partition lifecycle manager.

PartitionStore is the interface the archiving service drives;
PostgresPartitionStore implements it with raw DDL/DML issued
through SQLAlchemy, since partitions, compression directives
and VACUUM have no ORM equivalent.

============================================================
SAFETY
============================================================
- Every identifier passes partitions.validate_identifier and
  is quoted by the dialect's identifier preparer
- Values (statuses, batch sizes, names in catalog lookups)
  are always bound parameters
- compact_partition takes an ACCESS EXCLUSIVE lock for its
  whole duration; only call it from maintenance jobs

============================================================
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Sequence

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection, Engine

from core.constants import COMPRESSIBLE_INVOICE_COLUMNS, INVOICE_TABLE

from .partitions import (
    INDEX_COLUMNS,
    archive_name,
    index_name,
    is_partition_name,
    validate_identifier,
)


logger = logging.getLogger(__name__)


# ============================================================
# INTERFACE
# ============================================================

class PartitionStore(ABC):
    """Operations the archiving service issues against storage."""

    @abstractmethod
    def partition_exists(self, name: str) -> bool:
        pass

    @abstractmethod
    def create_partition(self, name: str, start: datetime, next_start: datetime) -> None:
        """Create a live partition for the half-open range [start, next_start)."""
        pass

    @abstractmethod
    def create_indexes(self, name: str) -> None:
        """Create the student+status, type+status and due_date+status indexes."""
        pass

    @abstractmethod
    def list_partitions(self) -> List[str]:
        """Names of live invoice partitions, in catalog order."""
        pass

    @abstractmethod
    def count_records(self, name: str) -> int:
        pass

    @abstractmethod
    def count_settled(self, name: str, in_flight: Sequence[str]) -> int:
        """Rows whose status is outside the in-flight set."""
        pass

    @abstractmethod
    def partition_size(self, name: str) -> str:
        """Human-readable storage footprint of one partition."""
        pass

    @abstractmethod
    def is_compressed(self, name: str) -> bool:
        pass

    @abstractmethod
    def archive_records(
        self,
        name: str,
        in_flight: Sequence[str],
        batch_size: int,
    ) -> int:
        """
        Move settled rows into the archive twin.

        Creates the twin if absent. Returns the number of rows moved.
        """
        pass

    @abstractmethod
    def compress_partition(self, name: str) -> None:
        """Apply compression directives to the large columns."""
        pass

    @abstractmethod
    def compact_partition(self, name: str) -> None:
        """Blocking reclaim pass over the partition."""
        pass

    @abstractmethod
    def drop_partition(self, name: str) -> None:
        """Drop the live partition and its archive twin."""
        pass

    @abstractmethod
    def total_size(self) -> str:
        """Human-readable footprint of all invoice storage."""
        pass


# ============================================================
# POSTGRESQL
# ============================================================

class PostgresPartitionStore(PartitionStore):
    """
    PartitionStore over a PostgreSQL range-partitioned invoices table.

    Requires PostgreSQL 14+ for per-column lz4 compression.
    """

    def __init__(
        self,
        engine: Engine,
        parent_table: str = INVOICE_TABLE,
        compression_codec: str = "lz4",
    ):
        self._engine = engine
        self._parent = validate_identifier(parent_table)
        self._codec = compression_codec
        self._preparer = engine.dialect.identifier_preparer

    def _quote(self, identifier: str) -> str:
        return self._preparer.quote(validate_identifier(identifier))

    @staticmethod
    def _bound_literal(value: datetime) -> str:
        # Partition bounds cannot be bound parameters in DDL
        return value.strftime("'%Y-%m-%d %H:%M:%S+00'")

    # --------------------------------------------------------
    # CATALOG
    # --------------------------------------------------------

    def partition_exists(self, name: str) -> bool:
        stmt = text(
            "SELECT EXISTS ("
            " SELECT 1 FROM pg_class c"
            " JOIN pg_namespace n ON n.oid = c.relnamespace"
            " WHERE c.relname = :name AND n.nspname = current_schema()"
            ")"
        )
        with self._engine.connect() as conn:
            return bool(conn.execute(stmt, {"name": validate_identifier(name)}).scalar())

    def list_partitions(self) -> List[str]:
        stmt = text(
            "SELECT child.relname FROM pg_inherits i"
            " JOIN pg_class child ON child.oid = i.inhrelid"
            " JOIN pg_class parent ON parent.oid = i.inhparent"
            " WHERE parent.relname = :parent"
        )
        with self._engine.connect() as conn:
            names = conn.execute(stmt, {"parent": self._parent}).scalars().all()
        return [name for name in names if is_partition_name(name)]

    def count_records(self, name: str) -> int:
        with self._engine.connect() as conn:
            return conn.execute(text(f"SELECT count(*) FROM {self._quote(name)}")).scalar() or 0

    def count_settled(self, name: str, in_flight: Sequence[str]) -> int:
        stmt = text(
            f"SELECT count(*) FROM {self._quote(name)} WHERE status NOT IN :statuses"
        ).bindparams(bindparam("statuses", expanding=True))
        with self._engine.connect() as conn:
            return conn.execute(stmt, {"statuses": list(in_flight)}).scalar() or 0

    def partition_size(self, name: str) -> str:
        stmt = text("SELECT pg_size_pretty(pg_total_relation_size(CAST(:name AS regclass)))")
        with self._engine.connect() as conn:
            return conn.execute(stmt, {"name": validate_identifier(name)}).scalar() or "0 bytes"

    def is_compressed(self, name: str) -> bool:
        stmt = text(
            "SELECT count(*) FROM pg_attribute a"
            " JOIN pg_class c ON c.oid = a.attrelid"
            " WHERE c.relname = :name AND a.attname IN :columns"
            " AND a.attcompression = :codec"
        ).bindparams(bindparam("columns", expanding=True))
        params = {
            "name": validate_identifier(name),
            "columns": list(COMPRESSIBLE_INVOICE_COLUMNS),
            "codec": "l" if self._codec == "lz4" else "p",
        }
        with self._engine.connect() as conn:
            compressed = conn.execute(stmt, params).scalar() or 0
        return compressed == len(COMPRESSIBLE_INVOICE_COLUMNS)

    def total_size(self) -> str:
        stmt = text(
            "SELECT pg_size_pretty(COALESCE(SUM(pg_total_relation_size(c.oid)), 0))"
            " FROM pg_class c"
            " JOIN pg_namespace n ON n.oid = c.relnamespace"
            " WHERE c.relkind = 'r' AND n.nspname = current_schema()"
            " AND c.relname LIKE :pattern"
        )
        with self._engine.connect() as conn:
            return conn.execute(stmt, {"pattern": f"{self._parent}\\_%"}).scalar() or "0 bytes"

    # --------------------------------------------------------
    # DDL / DML
    # --------------------------------------------------------

    def create_partition(self, name: str, start: datetime, next_start: datetime) -> None:
        stmt = text(
            f"CREATE TABLE {self._quote(name)} PARTITION OF {self._quote(self._parent)}"
            f" FOR VALUES FROM ({self._bound_literal(start)}) TO ({self._bound_literal(next_start)})"
        )
        with self._engine.begin() as conn:
            conn.execute(stmt)
        logger.info(f"Created partition {name} [{start.date()}, {next_start.date()})")

    def create_indexes(self, name: str) -> None:
        with self._engine.begin() as conn:
            for suffix, columns in INDEX_COLUMNS.items():
                conn.execute(text(
                    f"CREATE INDEX IF NOT EXISTS {self._quote(index_name(name, suffix))}"
                    f" ON {self._quote(name)} ({', '.join(columns)})"
                ))
        logger.debug(f"Ensured {len(INDEX_COLUMNS)} indexes on {name}")

    def archive_records(
        self,
        name: str,
        in_flight: Sequence[str],
        batch_size: int,
    ) -> int:
        live = self._quote(name)
        archive = self._quote(archive_name(name))
        move = text(
            f"WITH moved AS ("
            f" DELETE FROM {live} WHERE ctid IN ("
            f"  SELECT ctid FROM {live} WHERE status NOT IN :statuses LIMIT :batch_size"
            f" ) RETURNING *"
            f") INSERT INTO {archive} SELECT * FROM moved"
        ).bindparams(bindparam("statuses", expanding=True))
        params = {"statuses": list(in_flight), "batch_size": batch_size}

        with self._engine.begin() as conn:
            conn.execute(text(
                f"CREATE TABLE IF NOT EXISTS {archive}"
                f" (LIKE {live} INCLUDING DEFAULTS INCLUDING CONSTRAINTS)"
            ))

        total = 0
        while True:
            # One transaction per batch keeps lock time bounded
            with self._engine.begin() as conn:
                moved = self._execute_rowcount(conn, move, params)
            total += moved
            if moved < batch_size:
                break

        logger.info(f"Moved {total} settled invoices from {name} to its archive")
        return total

    @staticmethod
    def _execute_rowcount(conn: Connection, stmt, params) -> int:
        result = conn.execute(stmt, params)
        return max(result.rowcount, 0)

    def compress_partition(self, name: str) -> None:
        with self._engine.begin() as conn:
            for column in COMPRESSIBLE_INVOICE_COLUMNS:
                conn.execute(text(
                    f"ALTER TABLE {self._quote(name)}"
                    f" ALTER COLUMN {self._preparer.quote(column)} SET COMPRESSION {self._codec}"
                ))
        logger.info(f"Applied {self._codec} compression to {name}")

    def compact_partition(self, name: str) -> None:
        # VACUUM cannot run inside a transaction block
        with self._engine.connect() as conn:
            conn = conn.execution_options(isolation_level="AUTOCOMMIT")
            conn.execute(text(f"VACUUM FULL {self._quote(name)}"))
        logger.info(f"Compacted {name}")

    def drop_partition(self, name: str) -> None:
        with self._engine.begin() as conn:
            conn.execute(text(f"DROP TABLE IF EXISTS {self._quote(name)} CASCADE"))
            conn.execute(text(f"DROP TABLE IF EXISTS {self._quote(archive_name(name))} CASCADE"))
        logger.info(f"Dropped {name} and its archive")
