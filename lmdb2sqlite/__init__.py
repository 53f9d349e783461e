"""
═══════════════════════════════════════════════════════════════
  Mint LMDB → SQLite Migration Tool (lmdb2sqlite)
═══════════════════════════════════════════════════════════════
"""

from pathlib import Path
from rich.console import Console

# ═════════════════════════════════════════════════════════════
# Shared console instance
# ═════════════════════════════════════════════════════════════

console = Console()

# ═════════════════════════════════════════════════════════════
# Constants
# ═════════════════════════════════════════════════════════════

DEFAULT_WORK_DIR = Path.home() / ".cdk-mintd"
CONFIG_FILE_NAME = "migration_config.json"
REPORT_FILE_NAME = "migration_report.html"

SOURCE_DB_FILE = "cdk-mintd.lmdb"
TARGET_DB_FILE = "cdk-mintd.sqlite"
AUTH_SOURCE_DB_FILE = "cdk-mintd-auth.lmdb"
AUTH_TARGET_DB_FILE = "cdk-mintd-auth.sqlite"

# Only this source layout version is understood by the codec
SOURCE_DB_VERSION = 5
TARGET_SCHEMA_VERSION = 1

POLICY_ABORT = "abort"
POLICY_SKIP = "skip"
ERROR_POLICIES = (POLICY_ABORT, POLICY_SKIP)

DEFAULT_CONFIG = {
    "on_decode_error": POLICY_ABORT,
    "on_missing_keyset": POLICY_ABORT,
    "auth_failure_fatal": True,
    "report": True,
}
