"""
Repository Layer Package.

============================================================
PURPOSE
============================================================
The Repository Layer is the ONLY gateway to ORM-managed
storage. Invoice partitions are the exception: they are
managed through invoice_archiving.store, which issues DDL.

============================================================
ARCHITECTURE PRINCIPLES
============================================================
1. One repository per model
2. Session Injection: Sessions are injected, not created internally
3. Explicit Methods: clear method names per lookup key
4. Exception Handling: All DB errors wrapped in repository exceptions

============================================================
USAGE
============================================================

    from storage.database import transaction_scope
    from storage.repositories import ClassPerformanceRepository

    with transaction_scope(session_factory) as session:
        repo = ClassPerformanceRepository(session)
        performance = repo.get(class_id)

============================================================
"""

from storage.repositories.exceptions import (
    RepositoryException,
    RecordNotFoundError,
    DuplicateRecordError,
    IntegrityError,
    ConnectionError,
    QueryError,
)
from storage.repositories.base import BaseRepository
from storage.repositories.analytics import (
    ActivityGradeRepository,
    BloomsProgressionRepository,
    ClassPerformanceRepository,
    PerformanceAnalyticsRepository,
    StudentPerformanceRepository,
)

__all__ = [
    "RepositoryException",
    "RecordNotFoundError",
    "DuplicateRecordError",
    "IntegrityError",
    "ConnectionError",
    "QueryError",
    "BaseRepository",
    "ActivityGradeRepository",
    "BloomsProgressionRepository",
    "ClassPerformanceRepository",
    "PerformanceAnalyticsRepository",
    "StudentPerformanceRepository",
]
