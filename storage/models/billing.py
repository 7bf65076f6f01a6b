"""
Billing Domain ORM Models.

============================================================
PURPOSE
============================================================
The invoices (fee challans) table. On PostgreSQL it is a
range-partitioned parent keyed on created_at; the quarterly
partitions and their archive twins are created, compressed
and dropped by invoice_archiving.

============================================================
DATA LIFECYCLE ROLE
============================================================
- Stage: BILLING
- Mutability: APPEND-MOSTLY (status transitions only)
- Retention: archived after 12 months, deleted after 7 years
  (default ArchivingPolicy)

============================================================
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import Date, DateTime, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, JSONDocument, generate_id


class Invoice(Base):
    """
    A billed fee invoice.

    The primary key includes created_at because PostgreSQL
    requires the partition key in every unique constraint.
    """

    __tablename__ = "invoices"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        primary_key=True,
        server_default=func.now(),
        comment="Partition key"
    )
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="DRAFT",
        comment="DRAFT, SENT and VIEWED are in flight; anything else is settled"
    )
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    line_items: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSONDocument, nullable=True)
    metadata_: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSONDocument, nullable=True)

    __table_args__ = (
        {"postgresql_partition_by": "RANGE (created_at)"},
    )
