"""
Audit package - append-only record of every billing mutation.

Entries are written after the business transaction commits, in their own
session. A failed audit write is logged and never fails the caller.
"""
