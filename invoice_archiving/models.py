"""
Invoice Archiving Models.

============================================================
PURPOSE
============================================================
Value objects for the partition lifecycle:

1. PartitionStatus - age-derived lifecycle status
2. ArchivingPolicy - thresholds, merged per call over defaults
3. PartitionInfo - one quarterly partition as seen in the catalog
4. ArchiveResult - outcome of one archiving run
5. ArchivingStats - read-only aggregate over all partitions

None of these are persisted. A partition's status is never
stored; it is recomputed from its age on every read.

============================================================
"""

from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from core.exceptions import InvalidPolicyError


# ============================================================
# PARTITION STATUS
# ============================================================

class PartitionStatus(Enum):
    """Lifecycle status of an invoice partition."""
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"
    COMPRESSED = "COMPRESSED"
    DELETED = "DELETED"  # transition label only, never reported by the catalog


# ============================================================
# ARCHIVING POLICY
# ============================================================

@dataclass(frozen=True)
class ArchivingPolicy:
    """
    Archiving thresholds.

    Supplied per call as a partial override merged over the
    defaults, see merged().
    """

    archive_after_months: int = 12
    """Move settled invoices to the archive twin after this age."""

    compress_after_months: int = 24
    """Compress the partition in place after this age."""

    delete_after_years: int = 7
    """Drop the partition and its archive twin after this age."""

    batch_size: int = 1000
    """Rows moved per archive statement."""

    enable_compression: bool = True

    enable_partitioning: bool = True
    """When False, create_partitions does nothing."""

    def __post_init__(self):
        for name in ("archive_after_months", "compress_after_months", "delete_after_years", "batch_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidPolicyError(name, value, "must be an integer")
            if value <= 0:
                raise InvalidPolicyError(name, value, "must be positive")

        for name in ("enable_compression", "enable_partitioning"):
            if not isinstance(getattr(self, name), bool):
                raise InvalidPolicyError(name, getattr(self, name), "must be a boolean")

        if self.compress_after_months < self.archive_after_months:
            raise InvalidPolicyError(
                "compress_after_months",
                self.compress_after_months,
                "must not be earlier than archive_after_months",
            )

    @classmethod
    def merged(
        cls,
        overrides: Union["ArchivingPolicy", Mapping[str, Any], None] = None,
    ) -> "ArchivingPolicy":
        """Merge a partial override over the defaults."""
        if overrides is None:
            return cls()
        if isinstance(overrides, ArchivingPolicy):
            return overrides

        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in overrides.items():
            if key not in known:
                raise InvalidPolicyError(key, value, "unknown policy field")
            if value is not None:
                values[key] = value
        return replace(cls(), **values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============================================================
# PARTITION INFO
# ============================================================

@dataclass
class PartitionInfo:
    """One quarterly invoice partition."""
    partition_name: str
    partition_key: str
    year: int
    quarter: int
    start_date: datetime
    end_date: datetime
    record_count: int
    total_size: str
    status: PartitionStatus
    compressed: bool = False
    """Whether compression directives are already applied."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "partition_name": self.partition_name,
            "partition_key": self.partition_key,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "record_count": self.record_count,
            "total_size": self.total_size,
            "status": self.status.value,
            "compressed": self.compressed,
        }


# ============================================================
# RESULTS
# ============================================================

@dataclass
class ArchiveResult:
    """Outcome of one archive_old_invoices run."""
    archived_count: int = 0
    compressed_count: int = 0
    deleted_count: int = 0
    processed_partitions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "archived_count": self.archived_count,
            "compressed_count": self.compressed_count,
            "deleted_count": self.deleted_count,
            "processed_partitions": list(self.processed_partitions),
        }


@dataclass
class ArchivingStats:
    """Aggregate view over all invoice partitions."""
    total_partitions: int = 0
    partitions_by_status: Dict[PartitionStatus, int] = field(default_factory=dict)
    records_by_status: Dict[PartitionStatus, int] = field(default_factory=dict)
    total_records: int = 0
    oldest_date: Optional[datetime] = None
    newest_date: Optional[datetime] = None
    total_size: str = "0 bytes"

    @property
    def active_records(self) -> int:
        return self.records_by_status.get(PartitionStatus.ACTIVE, 0)

    @property
    def archived_records(self) -> int:
        return self.records_by_status.get(PartitionStatus.ARCHIVED, 0)

    @property
    def compressed_records(self) -> int:
        return self.records_by_status.get(PartitionStatus.COMPRESSED, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_partitions": self.total_partitions,
            "partitions_by_status": {s.value: n for s, n in self.partitions_by_status.items()},
            "records_by_status": {s.value: n for s, n in self.records_by_status.items()},
            "total_records": self.total_records,
            "oldest_date": self.oldest_date.isoformat() if self.oldest_date else None,
            "newest_date": self.newest_date.isoformat() if self.newest_date else None,
            "total_size": self.total_size,
        }
