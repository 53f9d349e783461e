"""
Error taxonomy shared by the reader, codec, mapper, writer and orchestrator.
"""


class MigrationError(Exception):
    pass


class ConfigError(MigrationError):
    def __init__(self, issues):
        self.issues = list(issues)
        message = "Invalid configuration: " + "; ".join(self.issues)
        super().__init__(message)


class SourceNotFound(MigrationError):
    def __init__(self, path, table=None):
        self.path = path
        self.table = table
        if table is None:
            message = f"Source store not found at {path}"
        else:
            message = f"Source store {path} has no table '{table}'"
        super().__init__(message)


class SourceVersionMismatch(MigrationError):
    def __init__(self, found, expected):
        self.found = found
        self.expected = expected
        message = f"Source store version {found} is not supported (expected {expected})"
        super().__init__(message)


class DecodeError(MigrationError):
    def __init__(self, table, offset, reason, record=None):
        self.table = table
        self.offset = offset
        self.reason = reason
        self.record = record
        where = f"byte offset {offset}"
        if record is not None:
            where = f"record {record}, {where}"
        message = f"Cannot decode {table} ({where}): {reason}"
        super().__init__(message)


class TargetExistsError(MigrationError):
    def __init__(self, path, table, rows):
        self.path = path
        self.table = table
        self.rows = rows
        if table is None:
            message = (
                f"Target {path} exists and is not an empty SQLite database. "
                "Will not overwrite it."
            )
        else:
            message = (
                f"Target database {path} already holds data "
                f"({rows} rows in '{table}'). Will not overwrite existing database."
            )
        super().__init__(message)


class ReferentialIntegrityError(MigrationError):
    def __init__(self, table, missing_id, kind="keyset"):
        self.table = table
        self.missing_id = missing_id
        self.kind = kind
        message = f"{table} references unknown {kind} {missing_id}"
        super().__init__(message)


class WriteError(MigrationError):
    def __init__(self, table, cause):
        self.table = table
        self.cause = cause
        message = f"Writing {table} failed: {cause}"
        super().__init__(message)


class VerificationMismatch(MigrationError):
    def __init__(self, table, expected, actual):
        self.table = table
        self.expected = expected
        self.actual = actual
        message = f"Row count mismatch for {table}: expected {expected}, found {actual}"
        super().__init__(message)


class TargetNotFound(MigrationError):
    def __init__(self, path):
        self.path = path
        message = f"Target database not found at {path}"
        super().__init__(message)


class TargetSchemaMismatch(MigrationError):
    def __init__(self, path, issues):
        self.path = path
        self.issues = list(issues)
        message = f"Target {path} has an unexpected schema: " + "; ".join(self.issues)
        super().__init__(message)
