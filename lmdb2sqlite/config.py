"""
Configuration loading and validation (migration_config.json).
"""

import sys
import json
from pathlib import Path

from rich.prompt import Confirm

from lmdb2sqlite import console, DEFAULT_CONFIG, ERROR_POLICIES
from lmdb2sqlite.errors import ConfigError


# ═════════════════════════════════════════════════════════════
# Migration policy settings
# ═════════════════════════════════════════════════════════════

class MigrationConfig:
    def __init__(
        self,
        on_decode_error: str = DEFAULT_CONFIG["on_decode_error"],
        on_missing_keyset: str = DEFAULT_CONFIG["on_missing_keyset"],
        auth_failure_fatal: bool = DEFAULT_CONFIG["auth_failure_fatal"],
        report: bool = DEFAULT_CONFIG["report"],
    ):
        self.on_decode_error = on_decode_error
        self.on_missing_keyset = on_missing_keyset
        self.auth_failure_fatal = auth_failure_fatal
        self.report = report

    def to_dict(self) -> dict:
        return {
            "on_decode_error": self.on_decode_error,
            "on_missing_keyset": self.on_missing_keyset,
            "auth_failure_fatal": self.auth_failure_fatal,
            "report": self.report,
        }


# ═════════════════════════════════════════════════════════════
# Configuration functions
# ═════════════════════════════════════════════════════════════

def init_config(config_file: Path):
    """Create a fresh migration_config.json with defaults."""
    if config_file.exists():
        console.print(f"  [yellow]⚠ Config file already exists:[/yellow] {config_file}")
        if not Confirm.ask("  Overwrite?", default=False):
            console.print("  [dim]Skipped. Edit the existing file manually.[/dim]")
            return

    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        config_file.write_text(json.dumps(DEFAULT_CONFIG, indent=2) + "\n")
    except PermissionError:
        console.print(
            f"\n[red]✗ Permission denied:[/red] Cannot write to {config_file}\n"
            "  Try running with appropriate permissions or check directory ownership.\n"
        )
        sys.exit(1)
    except OSError as e:
        console.print(
            f"\n[red]✗ Failed to create config file:[/red] {e}\n"
            "  Check disk space and directory permissions.\n"
        )
        sys.exit(1)

    console.print(f"  [green]✓[/green] Created [bold]{config_file}[/bold]")
    console.print("  [dim]Adjust the error policies if needed, then run:[/dim]")
    console.print("  [cyan]lmdb2sqlite[/cyan]\n")


def parse_config(data) -> MigrationConfig:
    """Validate a decoded config object, collecting every issue."""
    if not isinstance(data, dict):
        raise ConfigError([f"config must be a JSON object, got {type(data).__name__}"])

    errors = []
    for key in data:
        if key not in DEFAULT_CONFIG:
            errors.append(f"{key} — unknown setting")

    for key in ("on_decode_error", "on_missing_keyset"):
        value = data.get(key, DEFAULT_CONFIG[key])
        if value not in ERROR_POLICIES:
            errors.append(f"{key} — must be one of {', '.join(ERROR_POLICIES)}, got {value!r}")

    for key in ("auth_failure_fatal", "report"):
        value = data.get(key, DEFAULT_CONFIG[key])
        if not isinstance(value, bool):
            errors.append(f"{key} — must be true or false, got {value!r}")

    if errors:
        raise ConfigError(errors)

    merged = {**DEFAULT_CONFIG, **data}
    return MigrationConfig(**merged)


def load_config(config_file: Path) -> MigrationConfig:
    """Load migration_config.json, falling back to defaults when it is absent."""
    if not config_file.exists():
        return MigrationConfig()

    try:
        raw = config_file.read_text()
    except OSError as e:
        raise ConfigError([f"cannot read {config_file}: {e}"]) from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError([f"invalid JSON in {config_file.name}: {e}"]) from e

    return parse_config(data)
