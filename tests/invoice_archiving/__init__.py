"""
Tests for the Invoice Archiving package.

Covers quarter arithmetic, status derivation, the lifecycle
rules of archive_old_invoices, SQL issued by the PostgreSQL
store and the maintenance scheduler.
"""
