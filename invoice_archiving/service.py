"""
Invoice Archiving Service.

============================================================
PURPOSE
============================================================
Lifecycle manager for quarterly invoice partitions.

Key responsibilities:
- Create quarterly partitions ahead of use (idempotent)
- Report every partition with its age-derived status
- Transition partitions ACTIVE -> ARCHIVED -> COMPRESSED -> DELETED
- Aggregate statistics over all partitions

============================================================
FAILURE SEMANTICS
============================================================
- Store errors are logged and re-raised as InternalError with
  a fixed per-operation message; the original error is kept
  as the cause
- archive_old_invoices does not roll back partitions already
  transitioned when a later one fails; re-running is safe
  because every transition predicate is idempotent

CRITICAL: Compression compacts the partition under an
exclusive lock. Run archiving from the scheduler or the
maintenance script, never from a request handler.

============================================================
"""

import logging
from typing import Any, List, Mapping, Optional, Union

from core.clock import ClockFactory, ClockProtocol
from core.constants import IN_FLIGHT_INVOICE_STATUSES, QUARTERS_PER_YEAR
from core.exceptions import InternalError, SchoolOpsException

from .models import (
    ArchiveResult,
    ArchivingPolicy,
    ArchivingStats,
    PartitionInfo,
    PartitionStatus,
)
from .partitions import (
    age_in_months,
    age_in_years,
    derive_status,
    parse_partition_name,
    partition_key,
    partition_name,
    quarter_range,
)
from .store import PartitionStore


logger = logging.getLogger(__name__)


PolicyOverrides = Union[ArchivingPolicy, Mapping[str, Any], None]


class InvoiceArchivingService:
    """
    Partition lifecycle manager for invoices.

    The store is the only shared resource and no application
    lock is taken: a single scheduled job is expected to drive
    archiving at any one time.
    """

    def __init__(
        self,
        store: PartitionStore,
        policy: PolicyOverrides = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._store = store
        self._default_policy = ArchivingPolicy.merged(policy)
        self._clock = clock or ClockFactory.get_clock()

    @property
    def default_policy(self) -> ArchivingPolicy:
        return self._default_policy

    def _resolve_policy(self, overrides: PolicyOverrides) -> ArchivingPolicy:
        if overrides is None:
            return self._default_policy
        if isinstance(overrides, ArchivingPolicy):
            return overrides
        base = self._default_policy.to_dict()
        base.update({k: v for k, v in overrides.items() if v is not None})
        return ArchivingPolicy.merged(base)

    # --------------------------------------------------------
    # PARTITION CREATION
    # --------------------------------------------------------

    def create_partitions(self, year: int, policy: PolicyOverrides = None) -> None:
        """
        Ensure the four quarterly partitions for a year exist.

        Existing partitions are left untouched, so calling this
        twice issues no creation statements the second time.
        """
        resolved = self._resolve_policy(policy)
        if not resolved.enable_partitioning:
            logger.info(f"Partitioning disabled, skipping partition creation for {year}")
            return

        try:
            for quarter in range(1, QUARTERS_PER_YEAR + 1):
                name = partition_name(year, quarter)
                start, _, next_start = quarter_range(year, quarter)

                if self._store.partition_exists(name):
                    logger.debug(f"Partition {name} already exists")
                    continue

                self._store.create_partition(name, start, next_start)
                self._store.create_indexes(name)
                logger.info(f"Created invoice partition {name}")
        except SchoolOpsException:
            raise
        except Exception as e:
            logger.error(f"Error creating partitions for {year}: {e}", exc_info=True)
            raise InternalError(
                "Failed to create partitions",
                operation="create_partitions",
                context={"year": year},
                cause=e,
            ) from e

    # --------------------------------------------------------
    # INTROSPECTION
    # --------------------------------------------------------

    def get_partition_info(self, policy: PolicyOverrides = None) -> List[PartitionInfo]:
        """
        Describe every invoice partition.

        Status is recomputed from age against the policy on each
        call. Order is whatever the catalog returns; sort by
        partition_key if order matters.
        """
        resolved = self._resolve_policy(policy)
        now = self._clock.now()

        try:
            partitions = []
            for name in self._store.list_partitions():
                year, quarter = parse_partition_name(name)
                start, end, _ = quarter_range(year, quarter)
                partitions.append(PartitionInfo(
                    partition_name=name,
                    partition_key=partition_key(year, quarter),
                    year=year,
                    quarter=quarter,
                    start_date=start,
                    end_date=end,
                    record_count=self._store.count_records(name),
                    total_size=self._store.partition_size(name),
                    status=derive_status(end, now, resolved),
                    compressed=self._store.is_compressed(name),
                ))
            return partitions
        except Exception as e:
            logger.error(f"Error getting partition information: {e}", exc_info=True)
            raise InternalError(
                "Failed to get partition information",
                operation="get_partition_info",
                cause=e,
            ) from e

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    def archive_old_invoices(self, policy: PolicyOverrides = None) -> ArchiveResult:
        """
        Apply at most one lifecycle transition to each partition.

        First matching rule wins:
        1. older than delete_after_years -> drop live + archive
        2. older than compress_after_months and not yet
           compressed (compression enabled) -> compress in place
        3. older than archive_after_months, not compressed, with
           settled rows left in the live partition -> archive
        """
        resolved = self._resolve_policy(policy)
        result = ArchiveResult()

        try:
            partitions = self.get_partition_info(resolved)
            now = self._clock.now()

            for partition in partitions:
                months = age_in_months(partition.end_date, now)
                years = age_in_years(partition.end_date, now)

                if years > resolved.delete_after_years:
                    self._delete_partition(partition)
                    result.deleted_count += partition.record_count
                    result.processed_partitions.append(f"DELETED:{partition.partition_name}")

                elif (
                    months > resolved.compress_after_months
                    and resolved.enable_compression
                    and not partition.compressed
                ):
                    self._compress_partition(partition)
                    result.compressed_count += partition.record_count
                    result.processed_partitions.append(f"COMPRESSED:{partition.partition_name}")

                elif months > resolved.archive_after_months and not partition.compressed:
                    moved = self._archive_partition(partition, resolved)
                    if moved:
                        result.archived_count += moved
                        result.processed_partitions.append(f"ARCHIVED:{partition.partition_name}")

            logger.info(
                f"Archiving complete: archived={result.archived_count} "
                f"compressed={result.compressed_count} deleted={result.deleted_count} "
                f"partitions={len(result.processed_partitions)}"
            )
            return result
        except Exception as e:
            logger.error(
                f"Error archiving invoices after {result.processed_partitions}: {e}",
                exc_info=True,
            )
            raise InternalError(
                "Failed to archive invoices",
                operation="archive_old_invoices",
                context={"processed_partitions": list(result.processed_partitions)},
                cause=e,
            ) from e

    def _archive_partition(self, partition: PartitionInfo, policy: ArchivingPolicy) -> int:
        name = partition.partition_name
        if self._store.count_settled(name, IN_FLIGHT_INVOICE_STATUSES) == 0:
            logger.debug(f"No settled invoices left in {name}")
            return 0

        moved = self._store.archive_records(name, IN_FLIGHT_INVOICE_STATUSES, policy.batch_size)
        logger.info(f"Archived {moved} invoices from {name}")
        return moved

    def _compress_partition(self, partition: PartitionInfo) -> None:
        name = partition.partition_name
        logger.info(f"Compressing {name} ({partition.record_count} records, {partition.total_size})")
        self._store.compress_partition(name)
        self._store.compact_partition(name)

    def _delete_partition(self, partition: PartitionInfo) -> None:
        name = partition.partition_name
        logger.warning(f"Deleting {name} and its archive ({partition.record_count} records)")
        self._store.drop_partition(name)

    # --------------------------------------------------------
    # STATISTICS
    # --------------------------------------------------------

    def get_archiving_stats(self, policy: PolicyOverrides = None) -> ArchivingStats:
        """Read-only aggregate over all partitions."""
        try:
            partitions = self.get_partition_info(policy)

            stats = ArchivingStats(
                total_partitions=len(partitions),
                partitions_by_status={status: 0 for status in PartitionStatus if status != PartitionStatus.DELETED},
                records_by_status={status: 0 for status in PartitionStatus if status != PartitionStatus.DELETED},
            )
            for partition in partitions:
                stats.partitions_by_status[partition.status] += 1
                stats.records_by_status[partition.status] += partition.record_count
                stats.total_records += partition.record_count

            if partitions:
                stats.oldest_date = min(p.start_date for p in partitions)
                stats.newest_date = max(p.end_date for p in partitions)

            stats.total_size = self._store.total_size()
            return stats
        except Exception as e:
            logger.error(f"Error getting archiving statistics: {e}", exc_info=True)
            raise InternalError(
                "Failed to get archiving statistics",
                operation="get_archiving_stats",
                cause=e,
            ) from e
