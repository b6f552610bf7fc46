from .trigger import MIGRATIONS_DIR, SCHEMA_PATH, MigrationTrigger, default_migration_name, is_schema_change

__all__ = ["MigrationTrigger", "SCHEMA_PATH", "MIGRATIONS_DIR", "is_schema_change", "default_migration_name"]
