"""
Quarterly Partition Arithmetic.

============================================================
PURPOSE
============================================================
Pure functions for quarter boundaries, partition naming and
age-based status derivation.

- Q1 = Jan-Mar, Q2 = Apr-Jun, Q3 = Jul-Sep, Q4 = Oct-Dec
- Storage ranges are half-open [start, next_quarter_start)
- end_date is reported as the last second of the quarter
- Names are built from integers only and then checked
  against an allow-list before reaching any SQL statement

============================================================
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Tuple

from core.clock import ensure_utc
from core.constants import ARCHIVE_SUFFIX, INVOICE_TABLE, MONTHS_PER_QUARTER, QUARTERS_PER_YEAR
from core.exceptions import InvalidPartitionNameError

from .models import ArchivingPolicy, PartitionStatus


PARTITION_NAME_PATTERN = re.compile(r"^invoices_(\d{4})_q([1-4])$")

_IDENTIFIER_PATTERN = re.compile(
    r"^invoices(_\d{4}_q[1-4](_archive|_(student_status|type_status|due_date_status)_idx)?)?$"
)

INDEX_COLUMNS = {
    "student_status": ("student_id", "status"),
    "type_status": ("type", "status"),
    "due_date_status": ("due_date", "status"),
}


# ============================================================
# QUARTERS
# ============================================================

def quarter_for(dt: datetime) -> int:
    """Quarter (1-4) containing dt."""
    return (dt.month - 1) // MONTHS_PER_QUARTER + 1


def quarter_range(year: int, quarter: int) -> Tuple[datetime, datetime, datetime]:
    """
    Boundaries of a quarter.

    Returns:
        (start, end_inclusive, next_start); end_inclusive is the
        last second of the quarter, next_start the exclusive
        upper bound used for storage routing.
    """
    if not 1 <= quarter <= QUARTERS_PER_YEAR:
        raise ValueError(f"quarter must be 1-4, got {quarter}")

    start = datetime(year, (quarter - 1) * MONTHS_PER_QUARTER + 1, 1, tzinfo=timezone.utc)
    if quarter == QUARTERS_PER_YEAR:
        next_start = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        next_start = datetime(year, quarter * MONTHS_PER_QUARTER + 1, 1, tzinfo=timezone.utc)

    return start, next_start - timedelta(seconds=1), next_start


# ============================================================
# NAMING
# ============================================================

def partition_key(year: int, quarter: int) -> str:
    return f"{year}_q{quarter}"


def partition_name(year: int, quarter: int) -> str:
    return validate_identifier(f"{INVOICE_TABLE}_{partition_key(year, quarter)}")


def archive_name(name: str) -> str:
    """Name of the archive twin of a live partition."""
    return validate_identifier(f"{name}{ARCHIVE_SUFFIX}")


def index_name(name: str, suffix: str) -> str:
    return validate_identifier(f"{name}_{suffix}_idx")


def parse_partition_name(name: str) -> Tuple[int, int]:
    """Recover (year, quarter) from a live partition name."""
    match = PARTITION_NAME_PATTERN.match(name)
    if not match:
        raise InvalidPartitionNameError(name)
    return int(match.group(1)), int(match.group(2))


def is_partition_name(name: str) -> bool:
    return PARTITION_NAME_PATTERN.match(name) is not None


def validate_identifier(identifier: str) -> str:
    """Allow-list check for every identifier placed into DDL."""
    if not _IDENTIFIER_PATTERN.match(identifier):
        raise InvalidPartitionNameError(identifier)
    return identifier


# ============================================================
# AGE
# ============================================================

def months_between(earlier: datetime, later: datetime) -> int:
    """Whole calendar months elapsed from earlier to later (negative if reversed)."""
    earlier = ensure_utc(earlier)
    later = ensure_utc(later)
    if later < earlier:
        return -months_between(later, earlier)

    months = (later.year - earlier.year) * 12 + (later.month - earlier.month)
    if (later.day, later.time()) < (earlier.day, earlier.time()):
        months -= 1
    return months


def age_in_months(end_date: datetime, now: datetime) -> int:
    return months_between(end_date, now)


def age_in_years(end_date: datetime, now: datetime) -> int:
    months = months_between(end_date, now)
    return months // 12 if months >= 0 else 0


def derive_status(end_date: datetime, now: datetime, policy: ArchivingPolicy) -> PartitionStatus:
    """
    Age-only status of a partition.

    Compared against compress_after_months first, then
    archive_after_months; first match wins.
    """
    age = age_in_months(end_date, now)
    if age > policy.compress_after_months:
        return PartitionStatus.COMPRESSED
    if age > policy.archive_after_months:
        return PartitionStatus.ARCHIVED
    return PartitionStatus.ACTIVE
