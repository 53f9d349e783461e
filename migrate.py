#!/usr/bin/env python3
"""
═══════════════════════════════════════════════════════════════
  Mint LMDB → SQLite Migration Tool
═══════════════════════════════════════════════════════════════

  Moves a mint's embedded LMDB store into SQLite:
    1. Check the source version and refuse populated targets
    2. Decode every record of the pinned source layout
    3. Map records onto the relational schema
    4. Write each table in its own transaction
    5. Verify row counts (and, with --verify-only, contents)

  Usage:
    pip install -e .
    python migrate.py --init        # Create config file (optional)
    python migrate.py --dry-run     # Decode everything, write nothing
    python migrate.py               # Run migration

═══════════════════════════════════════════════════════════════
"""

from lmdb2sqlite.cli import run

if __name__ == "__main__":
    run()
