from veilstat.adapters.sqlite.migrator import SQLiteMigrator

__all__ = ["SQLiteMigrator"]
