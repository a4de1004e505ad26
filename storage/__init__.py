"""
Storage Package.

This package manages all data persistence.

Modules:
- database: Engine and session management
- models/: ORM tables
- repositories/: SignalStore contract and implementations
"""

from storage.database import Database, DatabaseConfig


__all__ = ["Database", "DatabaseConfig"]
