"""
Core Module - Constants.

============================================================
RESPONSIBILITY
============================================================
Defines system-wide constants shared by the invoice archiving
and analytics pipeline packages.

============================================================
"""

from typing import Tuple

# ============================================================
# SYSTEM CONSTANTS
# ============================================================

SECONDS_PER_MINUTE = 60

# ============================================================
# INVOICE STORAGE
# ============================================================

INVOICE_TABLE = "invoices"
"""Partitioned parent table holding all invoices."""

ARCHIVE_SUFFIX = "_archive"

IN_FLIGHT_INVOICE_STATUSES: Tuple[str, ...] = ("DRAFT", "SENT", "VIEWED")
"""Invoices in these statuses stay in the live partition when archiving."""

COMPRESSIBLE_INVOICE_COLUMNS: Tuple[str, ...] = ("line_items", "metadata")
"""Large variable-length columns that receive compression directives."""

QUARTERS_PER_YEAR = 4
MONTHS_PER_QUARTER = 3

# ============================================================
# ANALYTICS
# ============================================================

BLOOMS_MASTERY_THRESHOLD = 70.0
STRUGGLING_PERCENTAGE = 60.0
EXCEPTIONAL_PERCENTAGE = 95.0

ENGAGEMENT_BASE_SCORE = 50
ENGAGEMENT_MIN_SCORE = 0
ENGAGEMENT_MAX_SCORE = 100

SYSTEM_TRIGGER = "system"
