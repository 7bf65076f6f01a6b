"""
Storage Package.

This package manages ORM persistence for the school
operations core.

Modules:
- database: Engine, sessions and transaction scope
- models/: ORM models (analytics rollups, invoices)
- repositories/: Data access layer
"""
