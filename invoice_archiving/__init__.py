"""
Invoice Archiving Package.

============================================================
PURPOSE
============================================================
Time-partitioned storage lifecycle for invoices.

Quarterly partitions named invoices_<year>_q<quarter> are
created ahead of use and aged through:

    ACTIVE -> ARCHIVED -> COMPRESSED -> DELETED

Status is derived from partition age on every read.

============================================================
"""

from .models import (
    ArchiveResult,
    ArchivingPolicy,
    ArchivingStats,
    PartitionInfo,
    PartitionStatus,
)
from .scheduler import ArchivingRun, ArchivingScheduler
from .service import InvoiceArchivingService
from .store import PartitionStore, PostgresPartitionStore

__all__ = [
    "ArchiveResult",
    "ArchivingPolicy",
    "ArchivingStats",
    "PartitionInfo",
    "PartitionStatus",
    "ArchivingRun",
    "ArchivingScheduler",
    "InvoiceArchivingService",
    "PartitionStore",
    "PostgresPartitionStore",
]
