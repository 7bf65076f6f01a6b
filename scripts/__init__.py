"""
Scripts Package.

Operational entry points.

Scripts:
- run_archiving: Invoice partition maintenance (create, inspect,
  archive, schedule)
"""
